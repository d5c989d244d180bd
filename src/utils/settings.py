"""
Engine settings persisted with QSettings.
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from PySide6.QtCore import QSettings

from src.utils.json_logger import get_logger

ORGANIZATION = "TrackSync"
APPLICATION = "TrackSync"

INTERVAL_POLICIES = ("reject", "clamp", "accept")

DEFAULT_SETTINGS: Dict[str, Any] = {
    "new_segment_length": 5.0,
    "interval_policy": "reject",
    "min_segment_length": 0.05,
    "snap_step": 0.0,
    "log_level": "INFO",
    "log_file": "",
}

_logger = get_logger("settings")


@dataclass
class EngineSettings:
    new_segment_length: float = DEFAULT_SETTINGS["new_segment_length"]
    interval_policy: str = DEFAULT_SETTINGS["interval_policy"]
    min_segment_length: float = DEFAULT_SETTINGS["min_segment_length"]
    snap_step: float = DEFAULT_SETTINGS["snap_step"]
    log_level: str = DEFAULT_SETTINGS["log_level"]
    log_file: str = DEFAULT_SETTINGS["log_file"]

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def open_settings(path: Optional[str] = None) -> QSettings:
    """Return the application QSettings, or an INI-backed one at ``path``."""
    if path:
        return QSettings(path, QSettings.Format.IniFormat)
    return QSettings(ORGANIZATION, APPLICATION)


def _coerce(default: Any, value: Any) -> Any:
    # QSettings may hand back strings depending on the backend
    if isinstance(default, bool):
        return str(value).lower() == "true"
    if isinstance(default, float):
        return float(value)
    if isinstance(default, int):
        return int(value)
    return str(value)


def load_settings(settings: Optional[QSettings] = None) -> EngineSettings:
    """Load settings, falling back to defaults for missing or invalid values."""
    if settings is None:
        settings = open_settings()

    values: Dict[str, Any] = {}
    for key, default in DEFAULT_SETTINGS.items():
        raw = settings.value(key, default)
        try:
            values[key] = _coerce(default, raw)
        except (TypeError, ValueError):
            _logger.warning(
                "Invalid setting value, using default",
                extra={"data": {"key": key, "value": str(raw)}},
            )
            values[key] = default

    if values["interval_policy"] not in INTERVAL_POLICIES:
        _logger.warning(
            "Unknown interval policy, using default",
            extra={"data": {"value": values["interval_policy"]}},
        )
        values["interval_policy"] = DEFAULT_SETTINGS["interval_policy"]

    if values["new_segment_length"] <= 0:
        values["new_segment_length"] = DEFAULT_SETTINGS["new_segment_length"]
    if values["min_segment_length"] <= 0:
        values["min_segment_length"] = DEFAULT_SETTINGS["min_segment_length"]
    if values["snap_step"] < 0:
        values["snap_step"] = 0.0

    return EngineSettings(**values)


def save_settings(engine_settings: EngineSettings, settings: Optional[QSettings] = None):
    if settings is None:
        settings = open_settings()
    for f in fields(engine_settings):
        settings.setValue(f.name, getattr(engine_settings, f.name))
    settings.sync()


def reset_settings(settings: Optional[QSettings] = None) -> EngineSettings:
    """Restore defaults and persist them."""
    defaults = EngineSettings()
    save_settings(defaults, settings)
    return defaults
