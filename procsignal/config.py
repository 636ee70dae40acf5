"""
Settings for ProcessSignalManager.

Settings can be built in code, validated from a dict, or read from a section
of a YAML file:

    # etc/app.yaml
    signals:
      keypress_throttle_ms: 300
      keypresses: true
      callback_names:
        shutdown: db.on_shutdown

    settings = load_settings("etc/app.yaml")
    manager = ProcessSignalManager.from_settings(settings, on_shutdown, on_info)
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigError
from .types import EventKind

DEFAULT_KEYPRESS_THROTTLE_MS = 200
DEFAULT_SECTION = "signals"

DEFAULT_CALLBACK_NAMES = {
    EventKind.SHUTDOWN: "on_shutdown_requested",
    EventKind.RELOAD: "on_reload_requested",
    EventKind.INFO: "on_info_requested",
    EventKind.DEBUG: "on_debug_requested",
}


class ManagerSettings(BaseModel):
    """Tunables of a single ProcessSignalManager."""

    keypress_throttle_ms: int = Field(
        default=DEFAULT_KEYPRESS_THROTTLE_MS,
        ge=0,
        description="Minimum interval between two keypress events of one kind, 0 disables",
    )
    keypresses: bool = Field(
        default=True, description="Listen for keypresses when stdin is a TTY"
    )
    callback_names: dict[str, str] = Field(
        default_factory=dict,
        description="Display names used when reporting callback failures",
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("callback_names")
    @classmethod
    def validate_callback_names(cls, v: dict[str, str]) -> dict[str, str]:
        """Only the four event kinds can be renamed."""
        valid = {kind.value for kind in EventKind}
        unknown = sorted(set(v) - valid)
        if unknown:
            raise ValueError(
                f"unknown event kinds {unknown}, expected a subset of {sorted(valid)}"
            )
        return v

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ManagerSettings":
        """
        Validate a mapping into settings.

        Raises:
            ConfigError: If the mapping does not describe valid settings
        """
        try:
            return cls(**(data or {}))
        except ValidationError as e:
            raise ConfigError("invalid signal manager settings", errors=e.error_count()) from e

    def callback_name(self, kind: EventKind) -> str:
        """Display name for the callback handling the given event kind."""
        return self.callback_names.get(kind.value, DEFAULT_CALLBACK_NAMES[kind])


def load_settings(path: str | Path, section: str | None = DEFAULT_SECTION) -> ManagerSettings:
    """
    Load settings from a YAML file.

    Args:
        path: YAML file to read
        section: Top-level key holding the settings, or None to use the whole
                 document. A missing section yields default settings.

    Returns:
        Validated settings

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML, or holds
                     invalid settings
    """
    path = Path(path)
    try:
        with open(path) as f:
            doc = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError("settings file not found", path=str(path)) from e
    except yaml.YAMLError as e:
        raise ConfigError("settings file is not valid YAML", path=str(path)) from e

    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ConfigError("settings file must hold a mapping", path=str(path))

    data = doc.get(section) if section is not None else doc
    if data is not None and not isinstance(data, dict):
        raise ConfigError("settings section must be a mapping", path=str(path), section=section)

    return ManagerSettings.from_dict(data)
