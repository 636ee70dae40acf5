"""Property-based tests for SignalRegistry bookkeeping."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from procsignal.keys import decode_keys
from procsignal.manager import ProcessSignalManager
from procsignal.registry import SignalRegistry
from procsignal.terminal import TerminalModeCoordinator
from procsignal.types import EventKind, ShutdownMethod
from tests.fixtures.signals import FakeSource, NotATTY, Recorder

MANAGERS = 4

# (manager index, attach?) pairs
operations = st.lists(
    st.tuples(st.integers(min_value=0, max_value=MANAGERS - 1), st.booleans()),
    max_size=40,
)


def _registry() -> SignalRegistry:
    return SignalRegistry(
        terminal=TerminalModeCoordinator(NotATTY()), source_factory=FakeSource
    )


@pytest.mark.property
@pytest.mark.unit
class TestRegistryProperties:
    """Property-based tests for attach/detach sequences."""

    @given(ops=operations)
    @settings(max_examples=200)
    def test_shared_resources_follow_membership(self, ops) -> None:
        """Handlers and raw mode are held exactly while someone is attached."""
        registry = _registry()
        managers = [
            ProcessSignalManager(lambda m: None, lambda: None, registry=registry)
            for _ in range(MANAGERS)
        ]

        for index, attach in ops:
            if attach:
                managers[index].attach()
            else:
                managers[index].detach()

            attached = [m for m in managers if m.is_attached]
            assert registry.raw_refcount == len(attached) >= 0
            assert registry.is_installed == bool(attached)
            assert set(registry.members) == set(attached)

        source = registry._source
        assert source.install_count - source.uninstall_count == (1 if registry.members else 0)

    @given(ops=operations)
    def test_attach_state_matches_last_call(self, ops) -> None:
        """A manager is attached iff its last call was attach()."""
        registry = _registry()
        managers = [
            ProcessSignalManager(lambda m: None, lambda: None, registry=registry)
            for _ in range(MANAGERS)
        ]
        last: dict[int, bool] = {}

        for index, attach in ops:
            (managers[index].attach if attach else managers[index].detach)()
            last[index] = attach

        for index, manager in enumerate(managers):
            assert manager.is_attached == last.get(index, False)

    @given(
        order=st.permutations(list(range(MANAGERS))),
        kind=st.sampled_from(list(EventKind)),
    )
    def test_fan_out_reaches_every_member_once(self, order, kind) -> None:
        """Every attached manager sees each event exactly once, in attach order."""
        registry = _registry()
        seen: list[int] = []
        managers = [
            ProcessSignalManager(
                lambda m, i=i: seen.append(i),
                lambda i=i: seen.append(i),
                on_reload_requested=lambda i=i: seen.append(i),
                on_debug_requested=lambda i=i: seen.append(i),
                registry=registry,
            )
            for i in range(MANAGERS)
        ]
        for index in order:
            managers[index].attach()

        method = ShutdownMethod.SIGTERM if kind is EventKind.SHUTDOWN else None
        registry._source.fire(kind, method)

        assert seen == list(order)

    @given(data=st.binary(max_size=64))
    def test_decode_never_fails(self, data: bytes) -> None:
        """Arbitrary terminal input decodes to at most one event per byte."""
        events = decode_keys(data)
        assert len(events) <= len(data)
        for event in events:
            assert (event.method is not None) == (event.kind is EventKind.SHUTDOWN)


@pytest.mark.property
@pytest.mark.unit
class TestThrottleProperties:
    """Property-based tests for the keypress throttle."""

    @given(presses=st.integers(min_value=1, max_value=20))
    def test_burst_delivers_once(self, presses: int) -> None:
        """A burst of identical keypresses inside the window delivers once."""
        registry = _registry()
        rec = Recorder()
        manager = ProcessSignalManager(
            rec.on_shutdown, rec.on_info, keypress_throttle_ms=60_000, registry=registry
        )
        manager.attach()

        for _ in range(presses):
            registry._source.fire(EventKind.INFO, None, True)

        assert rec.count("info") == 1

    @given(presses=st.integers(min_value=1, max_value=20))
    def test_signals_never_throttled(self, presses: int) -> None:
        """Signal events bypass the throttle entirely."""
        registry = _registry()
        rec = Recorder()
        manager = ProcessSignalManager(
            rec.on_shutdown, rec.on_info, keypress_throttle_ms=60_000, registry=registry
        )
        manager.attach()

        for _ in range(presses):
            registry._source.fire(EventKind.INFO)

        assert rec.count("info") == presses
