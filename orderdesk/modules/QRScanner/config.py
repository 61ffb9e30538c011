"""Typed configuration for the QR scanner module."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

from orderdesk.core.config_loader import ConfigLoader

from . import constants

MODULE_DIR = Path(__file__).resolve().parent
DEFAULT_CONFIG_PATH = MODULE_DIR / "config.txt"

_VALID_MODES = ("camera", "manual")


@dataclass(slots=True)
class ScannerConfig:
    """Tunable scanner settings; every field maps to a ``config.txt`` key."""

    default_mode: str = "camera"

    fps: int = constants.DEFAULT_FPS
    box_width: int = constants.DEFAULT_BOX_WIDTH
    box_height: int = constants.DEFAULT_BOX_HEIGHT
    mode_switch_delay_ms: int = constants.DEFAULT_MODE_SWITCH_DELAY_MS

    facing_mode: str = constants.DEFAULT_FACING_MODE
    camera_index: int = constants.DEFAULT_CAMERA_INDEX
    frame_width: int = constants.DEFAULT_FRAME_WIDTH
    frame_height: int = constants.DEFAULT_FRAME_HEIGHT

    stop_timeout_s: float = constants.DEFAULT_STOP_TIMEOUT_S
    start_timeout_s: float = constants.DEFAULT_START_TIMEOUT_S
    max_missed_frames: int = constants.DEFAULT_MAX_MISSED_FRAMES

    error_message: str = constants.CAMERA_ERROR_MESSAGE

    api_base_url: str = ""
    api_timeout_s: float = 10.0

    log_level: str = "info"
    log_max_bytes: int = constants.DEFAULT_LOG_MAX_BYTES
    log_backup_count: int = constants.DEFAULT_LOG_BACKUP_COUNT

    def __post_init__(self) -> None:
        if self.default_mode not in _VALID_MODES:
            raise ValueError(f"default_mode must be one of {_VALID_MODES}, got {self.default_mode!r}")
        if self.fps <= 0:
            raise ValueError("fps must be positive")
        if self.box_width <= 0 or self.box_height <= 0:
            raise ValueError("detection box dimensions must be positive")
        if self.mode_switch_delay_ms < 0:
            raise ValueError("mode_switch_delay_ms cannot be negative")
        if self.max_missed_frames <= 0:
            raise ValueError("max_missed_frames must be positive")

    @property
    def frame_interval(self) -> float:
        return 1.0 / float(self.fps)

    @property
    def mode_switch_delay(self) -> float:
        return self.mode_switch_delay_ms / 1000.0

    @property
    def box_size(self) -> tuple[int, int]:
        return self.box_width, self.box_height

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ScannerConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in values.items() if key in known})

    @classmethod
    def load(cls, config_path: Optional[Path] = None, args: Any = None) -> "ScannerConfig":
        """Build config from ``config.txt`` (strict) with optional CLI overrides."""
        defaults = asdict(cls())
        values = ConfigLoader.load(Path(config_path or DEFAULT_CONFIG_PATH), defaults, strict=True)
        config = cls.from_mapping(values)
        if args is not None:
            config = config._apply_args_override(args)
        return config

    @staticmethod
    def _args_overrides(args: Any) -> dict[str, Any]:
        values: dict[str, Any] = {}

        arg_mappings = {
            "mode": "default_mode",
            "fps": "fps",
            "camera_index": "camera_index",
            "api_url": "api_base_url",
            "log_level": "log_level",
        }

        for arg_name, config_key in arg_mappings.items():
            val = getattr(args, arg_name, None)
            if val is not None:
                values[config_key] = val

        box = getattr(args, "box", None)
        if box is not None:
            values["box_width"], values["box_height"] = box

        return values

    def _apply_args_override(self, args: Any) -> "ScannerConfig":
        values = asdict(self)
        values.update(self._args_overrides(args))
        return ScannerConfig(**values)

    def save_overrides(self, args: Any, config_path: Optional[Path] = None) -> bool:
        """Write the settings given on the command line back into ``config.txt``."""
        updates = {key: getattr(self, key) for key in self._args_overrides(args)}
        if not updates:
            return False
        return ConfigLoader.update_config_values(Path(config_path or DEFAULT_CONFIG_PATH), updates)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


__all__ = ["ScannerConfig", "DEFAULT_CONFIG_PATH"]
