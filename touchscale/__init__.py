"""Touch surface scale engine."""

from .averager import CircularAverager
from .calibration import (
    CalibrationController,
    CalibrationData,
    CalibrationState,
    CalibrationStep,
    MeasurementAccuracy,
    StoredCalibration,
)
from .config import EngineConfig, load_engine_config
from .contact import ContactFrame, ContactFrameBuilder, Pointer, TouchEvent, TouchPhase
from .estimator import WeightEstimate, WeightEstimator, WeightStatus
from .fusion import FusionResult, SignalFusionEngine
from .sensors import AccelerationSample, PressureSample, PushSensorSource, SensorSource
from .session import CalibrationStore, MeasurementSession
from .state import MeasurementState, SessionState, ValueCell
from .trace import LoggingTracer, NullTracer, Tracer

__all__ = [
    "AccelerationSample",
    "CalibrationController",
    "CalibrationData",
    "CalibrationState",
    "CalibrationStep",
    "CalibrationStore",
    "CircularAverager",
    "ContactFrame",
    "ContactFrameBuilder",
    "EngineConfig",
    "FusionResult",
    "LoggingTracer",
    "MeasurementAccuracy",
    "MeasurementSession",
    "MeasurementState",
    "NullTracer",
    "Pointer",
    "PressureSample",
    "PushSensorSource",
    "SensorSource",
    "SessionState",
    "SignalFusionEngine",
    "StoredCalibration",
    "TouchEvent",
    "TouchPhase",
    "Tracer",
    "ValueCell",
    "WeightEstimate",
    "WeightEstimator",
    "WeightStatus",
    "load_engine_config",
]
