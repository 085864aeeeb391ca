"""
Configuration model for the teleop pipeline.

Every tunable of the pipeline lives in a frozen dataclass that is rebuilt
whenever its source changes. Parsing never fails: a malformed field falls
back to its default and the rest of the document is still honoured.

JSON layout (all keys optional):

    {
        "joints": {
            "base":     {"min": 0,  "max": 180, "reversed": true,  "trim": 0},
            "shoulder": {"min": 20, "max": 160, "reversed": false, "trim": 0},
            "elbow":    {"min": 20, "max": 160, "reversed": true,  "trim": 0}
        },
        "smoothing_coefficient": 0.1,
        "filter_window_size": 3,
        "deadband_threshold": 1.5,
        "pinch_threshold": 0.05
    }

camelCase spellings of the global keys (``smoothingCoefficient`` ...) are
accepted as well.
"""

import json
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

# Servo travel accepted by the controller board
GLOBAL_MIN_ANGLE = 0
GLOBAL_MAX_ANGLE = 180

JOINT_NAMES = ("base", "shoulder", "elbow")

# Nordic UART service as exposed by the micro:bit firmware
UART_SERVICE_UUID = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
UART_RX_CHAR_UUID = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"
DEFAULT_DEVICE_PREFIX = "BBC micro:bit"


class ConfigParseError(ValueError):
    """A single configuration value could not be used."""


@dataclass(frozen=True)
class JointConfig:
    """
    Per-joint mapping limits.

    Attributes:
        min_angle: Lower bound of the joint's mapped range (degrees)
        max_angle: Upper bound of the joint's mapped range (degrees)
        reversed: Map the feature domain onto (max, min) instead of (min, max)
        trim: Calibration offset added after mapping (degrees)
    """
    min_angle: float
    max_angle: float
    reversed: bool = False
    trim: int = 0

    @property
    def output_range(self) -> Tuple[float, float]:
        """(out_min, out_max) used for interpolation."""
        if self.reversed:
            return self.max_angle, self.min_angle
        return self.min_angle, self.max_angle


def _default_base() -> JointConfig:
    return JointConfig(0, 180, reversed=True)


def _default_shoulder() -> JointConfig:
    return JointConfig(20, 160)


def _default_elbow() -> JointConfig:
    return JointConfig(20, 160, reversed=True)


@dataclass(frozen=True)
class PipelineConfig:
    """Everything the per-frame pipeline reads."""
    base: JointConfig = field(default_factory=_default_base)
    shoulder: JointConfig = field(default_factory=_default_shoulder)
    elbow: JointConfig = field(default_factory=_default_elbow)
    smoothing_coefficient: float = 0.1
    filter_window_size: int = 3
    deadband_threshold: float = 1.5
    pinch_threshold: float = 0.05

    def joint(self, name: str) -> JointConfig:
        """Look up a joint by name."""
        if name not in JOINT_NAMES:
            raise KeyError(name)
        return getattr(self, name)


@dataclass(frozen=True)
class TransportConfig:
    """Addressing constants for the BLE link."""
    device_prefix: str = DEFAULT_DEVICE_PREFIX
    address: Optional[str] = None
    service_uuid: str = UART_SERVICE_UUID
    rx_char_uuid: str = UART_RX_CHAR_UUID
    scan_timeout: float = 10.0
    connect_timeout: float = 20.0


# ============================================================================
# Field coercion
# ============================================================================

def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigParseError(f"expected a number, got {value!r}")
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise ConfigParseError(f"expected a number, got {value!r}")
    if not math.isfinite(out):
        raise ConfigParseError(f"expected a finite number, got {value!r}")
    return out


def _to_int(value: Any) -> int:
    # Trim fields arrive from text inputs; "7.9" means 7
    return int(_to_float(value))


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("true", "yes", "on", "1"):
            return True
        if text in ("false", "no", "off", "0"):
            return False
    raise ConfigParseError(f"expected a boolean, got {value!r}")


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def _field(raw: Mapping[str, Any], keys: Tuple[str, ...], default: Any, convert, check=None, where: str = ""):
    """Read one field, falling back to ``default`` on any problem."""
    value = _pick(raw, *keys)
    if value is None:
        return default
    try:
        out = convert(value)
        if check is not None and not check(out):
            raise ConfigParseError(f"value {out!r} out of range")
        return out
    except ConfigParseError as e:
        logger.warning(f"Config {where}{keys[0]}: {e}; using default {default!r}")
        return default


def parse_joint(raw: Any, default: JointConfig, name: str = "") -> JointConfig:
    """Parse one joint block, keeping the default for every bad field."""
    if raw is None:
        return default
    if not isinstance(raw, Mapping):
        logger.warning(f"Config joints.{name}: expected an object; using defaults")
        return default

    where = f"joints.{name}."
    in_travel = lambda v: GLOBAL_MIN_ANGLE <= v <= GLOBAL_MAX_ANGLE
    min_angle = _field(raw, ("min", "min_angle", "minAngle"), default.min_angle, _to_float, in_travel, where)
    max_angle = _field(raw, ("max", "max_angle", "maxAngle"), default.max_angle, _to_float, in_travel, where)
    if min_angle > max_angle:
        logger.warning(
            f"Config {where}min={min_angle} exceeds max={max_angle}; "
            f"using default limits ({default.min_angle}, {default.max_angle})"
        )
        min_angle, max_angle = default.min_angle, default.max_angle

    return JointConfig(
        min_angle=min_angle,
        max_angle=max_angle,
        reversed=_field(raw, ("reversed",), default.reversed, _to_bool, where=where),
        trim=_field(raw, ("trim",), default.trim, _to_int, where=where),
    )


def parse_config(raw: Optional[Mapping[str, Any]]) -> PipelineConfig:
    """
    Build a PipelineConfig from a loosely typed mapping.

    Args:
        raw: Decoded JSON document (or None for all defaults)

    Returns:
        A complete PipelineConfig; never raises for bad values.
    """
    defaults = PipelineConfig()
    if raw is None:
        return defaults
    if not isinstance(raw, Mapping):
        logger.warning("Config root is not an object; using defaults")
        return defaults

    joints_raw = raw.get("joints", {})
    if not isinstance(joints_raw, Mapping):
        logger.warning("Config joints: expected an object; using defaults")
        joints_raw = {}

    joints = {
        name: parse_joint(joints_raw.get(name), defaults.joint(name), name)
        for name in JOINT_NAMES
    }

    return PipelineConfig(
        **joints,
        smoothing_coefficient=_field(
            raw, ("smoothing_coefficient", "smoothingCoefficient"),
            defaults.smoothing_coefficient, _to_float, lambda v: 0.0 < v <= 1.0,
        ),
        filter_window_size=_field(
            raw, ("filter_window_size", "filterWindowSize"),
            defaults.filter_window_size, _to_int, lambda v: v >= 1,
        ),
        deadband_threshold=_field(
            raw, ("deadband_threshold", "deadbandThreshold"),
            defaults.deadband_threshold, _to_float, lambda v: v >= 0.0,
        ),
        pinch_threshold=_field(
            raw, ("pinch_threshold", "pinchThreshold"),
            defaults.pinch_threshold, _to_float, lambda v: v > 0.0,
        ),
    )


# ============================================================================
# Config Sources
# ============================================================================

class StaticConfigSource:
    """Config source that always returns the same configuration."""

    def __init__(self, config: Optional[PipelineConfig] = None):
        self._config = config or PipelineConfig()

    def current(self) -> PipelineConfig:
        return self._config


class FileConfigSource:
    """
    Hot-reloadable JSON config file.

    The file's mtime is checked on every ``current()`` call and the file is
    re-parsed only when it changed. A missing or undecodable file keeps the
    last good configuration.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._config = PipelineConfig()
        self._mtime: Optional[float] = None
        self._failed_mtime: Optional[float] = None
        self._missing_logged = False
        self.reload_count = 0

    def current(self) -> PipelineConfig:
        try:
            mtime = os.stat(self.path).st_mtime
        except OSError:
            if not self._missing_logged:
                logger.warning(f"Config file {self.path} not found; keeping current settings")
                self._missing_logged = True
            return self._config

        self._missing_logged = False
        # A file that fails to parse is read again on the next call
        if mtime != self._mtime and self._reload(mtime):
            self._mtime = mtime
        return self._config

    def _reload(self, mtime: float) -> bool:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            if mtime != self._failed_mtime:
                logger.warning(f"Could not read config {self.path}: {e}; keeping current settings")
                self._failed_mtime = mtime
            return False
        self._failed_mtime = None
        self._config = parse_config(raw)
        self.reload_count += 1
        logger.info(f"Loaded config from {self.path}")
        return True
