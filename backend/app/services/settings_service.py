"""
Settings service with atomic writes; also stores the scale calibration.
"""
import asyncio
import json
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from backend.config import AUTO_START, DEFAULT_CFG_DIR, STREAM_INTERVAL
from touchscale.calibration import StoredCalibration
from touchscale.units import WeightUnit

LOGGER = logging.getLogger("touchscale.backend.settings")

_SECTIONS = ("scale", "calibration", "ui")


class SettingsSchema(BaseModel):
    """Complete settings file layout"""

    model_config = ConfigDict(extra="allow")

    class ScaleSettings(BaseModel):
        # Overrides for touchscale.config.EngineConfig fields
        engine: Dict[str, Any] = Field(default_factory=dict)
        stream_interval: float = STREAM_INTERVAL
        auto_start: bool = AUTO_START

    class CalibrationSettings(BaseModel):
        zero_offset: float = 0.0
        weight_factor: float = 1.0
        calibrated: bool = False

    class UiSettings(BaseModel):
        unit: WeightUnit = WeightUnit.GRAMS

    class MetaSettings(BaseModel):
        version: int = 1
        updated_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    scale: ScaleSettings = Field(default_factory=ScaleSettings)
    calibration: CalibrationSettings = Field(default_factory=CalibrationSettings)
    ui: UiSettings = Field(default_factory=UiSettings)
    meta: MetaSettings = Field(default_factory=MetaSettings)


class SettingsService:
    """Thread-safe settings store with atomic writes"""

    def __init__(self, config_path: Path):
        self.config_path = config_path
        self._lock = threading.Lock()
        self._ensure_dir()

    def _ensure_dir(self) -> None:
        """Create the settings directory with private permissions"""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        except OSError as exc:
            LOGGER.error("Cannot create settings directory %s: %s", self.config_path.parent, exc)

    def _load_raw(self) -> Dict[str, Any]:
        """Raw settings without validation"""
        if not self.config_path.exists():
            return {}

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as exc:
            LOGGER.error("Failed to read settings %s: %s", self.config_path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _save_atomic(self, data: Dict[str, Any]) -> None:
        """Write settings through a temporary file and an atomic rename"""
        meta = data.get("meta")
        if not isinstance(meta, dict):
            meta = {}
            data["meta"] = meta
        meta["version"] = int(meta.get("version", 0)) + 1
        meta["updated_at"] = datetime.now(timezone.utc).isoformat()

        tmp_path = self.config_path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.config_path)

    def load(self) -> SettingsSchema:
        """Load and validate settings"""
        with self._lock:
            data = self._load_raw()
            try:
                return SettingsSchema(**data)
            except ValidationError as exc:
                LOGGER.warning("Invalid settings in %s, using defaults: %s", self.config_path, exc)
                return SettingsSchema()

    def save(self, updates: Dict[str, Any]) -> Tuple[SettingsSchema, Set[str]]:
        """
        Merge ``updates`` and return (updated settings, changed top-level keys)
        """
        with self._lock:
            current_data = self._load_raw()
            changed_fields: Set[str] = set()

            for key, value in updates.items():
                if key in _SECTIONS and isinstance(value, dict):
                    section = current_data.get(key)
                    if not isinstance(section, dict):
                        section = {}
                    merged = {**section, **value}
                    if merged != section or key not in current_data:
                        changed_fields.add(key)
                    current_data[key] = merged
                else:
                    if current_data.get(key) != value:
                        changed_fields.add(key)
                    current_data[key] = value

            if not changed_fields:
                return SettingsSchema(**current_data), changed_fields

            self._save_atomic(current_data)
            return SettingsSchema(**current_data), changed_fields


class SettingsCalibrationStore:
    """Calibration persistence backed by the ``calibration`` settings section.

    ``save`` hands the write to a single worker thread when called from a
    running event loop and returns immediately; writes land in call order and
    failures are only logged.
    """

    def __init__(self, service: SettingsService):
        self._service = service
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="calibration-store")

    def load(self) -> Optional[StoredCalibration]:
        if not self._service.config_path.exists():
            return None
        calibration = self._service.load().calibration
        return StoredCalibration(
            zero_offset=calibration.zero_offset,
            weight_factor=calibration.weight_factor,
            calibrated=calibration.calibrated,
        )

    def save(self, calibration: StoredCalibration) -> None:
        payload = {
            "calibration": {
                "zero_offset": calibration.zero_offset,
                "weight_factor": calibration.weight_factor,
                "calibrated": calibration.calibrated,
            }
        }
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(payload)
            return
        future = loop.run_in_executor(self._executor, self._write, payload)
        future.add_done_callback(_log_failed_write)

    def close(self) -> None:
        """Wait for queued writes to finish."""
        self._executor.shutdown(wait=True)

    def _write(self, payload: Dict[str, Any]) -> None:
        self._service.save(payload)
        LOGGER.info("Calibration saved to %s", self._service.config_path)


def _log_failed_write(future: "asyncio.Future[None]") -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        LOGGER.error("Failed to persist calibration: %s", exc)


# Singleton instance
_service_instance: Optional[SettingsService] = None
_service_lock = threading.Lock()


def get_settings_service(config_path: Optional[Path] = None) -> SettingsService:
    """Return the shared service, creating it on first use"""
    global _service_instance

    with _service_lock:
        if _service_instance is None:
            if config_path is None:
                config_path = DEFAULT_CFG_DIR / "config.json"
            _service_instance = SettingsService(config_path)

        return _service_instance
