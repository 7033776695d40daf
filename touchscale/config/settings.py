"""Tunable constants for the touch scale engine."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

LOGGER = logging.getLogger("touchscale.config")


def _normalize_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "t", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "f", "no", "n", "off"}:
            return False
    return None


def _normalize_float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        candidate = float(value)
        return candidate if math.isfinite(candidate) else None
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return None
        trimmed = trimmed.replace(",", ".")
        try:
            candidate = float(trimmed)
        except ValueError:
            return None
        return candidate if math.isfinite(candidate) else None
    return None


def _normalize_int(value: Any) -> Optional[int]:
    float_candidate = _normalize_float(value)
    if float_candidate is None:
        return None
    return int(round(float_candidate))


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Numeric policy of the fusion, calibration and estimation stages.

    Force index values are dimensionless. Weights are grams, pressures hPa and
    accelerations m/s².
    """

    # Touch force index = pressure * total area * force_index_scaling
    force_index_scaling: float = 100.0
    # Noise gate for barometric deltas and minimum index for weight calibration
    min_detectable_pressure: float = 0.1
    # Corrected force index below this reads as 0 g
    force_epsilon: float = 0.0001
    min_detectable_weight: float = 0.5
    max_reasonable_weight: float = 300.0
    # g per force index unit before a reference weight calibration exists
    uncalibrated_conversion: float = 0.5

    barometric_gain: float = 0.1
    accelerometer_gain: float = 0.01
    accelerometer_limit: float = 1.0

    touch_weight: float = 0.9
    touch_barometric_weight: float = 0.05
    touch_accelerometer_weight: float = 0.05
    fallback_barometric_weight: float = 0.8
    fallback_accelerometer_weight: float = 0.2

    warning_weight_threshold: float = 200.0
    danger_weight_threshold: float = 250.0

    default_pressure_hpa: float = 1013.25
    default_acceleration: float = 9.81

    smooth_acceleration: bool = False
    smooth_force_index: bool = False
    acceleration_window: int = 15
    force_index_window: int = 10


_BOOL_FIELDS = {"smooth_acceleration", "smooth_force_index"}
_INT_FIELDS = {"acceleration_window", "force_index_window"}
_POSITIVE_FIELDS = {
    "force_index_scaling",
    "min_detectable_pressure",
    "max_reasonable_weight",
    "uncalibrated_conversion",
    "default_pressure_hpa",
}


def load_engine_config(raw: Optional[Mapping[str, Any]]) -> EngineConfig:
    """Build an :class:`EngineConfig` from a loosely typed mapping.

    Unknown keys are ignored. Values that cannot be parsed keep their default
    and are reported with a warning.
    """

    if not isinstance(raw, Mapping):
        return EngineConfig()

    defaults = EngineConfig()
    values: dict[str, Any] = {}
    for config_field in fields(EngineConfig):
        name = config_field.name
        if name not in raw or raw[name] is None:
            continue
        value = raw[name]
        default = getattr(defaults, name)
        if name in _BOOL_FIELDS:
            parsed: Any = _normalize_bool(value)
        elif name in _INT_FIELDS:
            parsed = _normalize_int(value)
            if parsed is not None and parsed < 1:
                parsed = None
        else:
            parsed = _normalize_float(value)
            if parsed is not None and parsed < 0:
                parsed = None
            if parsed is not None and name in _POSITIVE_FIELDS and parsed <= 0:
                parsed = None
        if parsed is None:
            LOGGER.warning("Invalid engine setting %s=%r; using %s", name, value, default)
            continue
        values[name] = parsed

    config = EngineConfig(**values)
    if config.danger_weight_threshold < config.warning_weight_threshold:
        LOGGER.warning(
            "danger_weight_threshold %.1f below warning threshold %.1f; using defaults",
            config.danger_weight_threshold,
            config.warning_weight_threshold,
        )
        values.pop("danger_weight_threshold", None)
        values.pop("warning_weight_threshold", None)
        config = EngineConfig(**values)
    return config


def dump_engine_config(config: EngineConfig) -> dict[str, Any]:
    return {config_field.name: getattr(config, config_field.name) for config_field in fields(EngineConfig)}


__all__ = ["EngineConfig", "load_engine_config", "dump_engine_config"]
