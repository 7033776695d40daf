"""
Touch Scale Backend - FastAPI host for the measurement session
Includes: Scale lifecycle, Sensor/touch input, Calibration, Settings, Live streams
"""

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional
import asyncio
import json
import logging
import os
import queue
import time
from pathlib import Path

from backend.app.services.settings_service import SettingsCalibrationStore, get_settings_service
from backend.config import CFG_DIR_ENV, DEFAULT_CFG_DIR, DEFAULT_LOG_DIR, LOG_DIR_ENV
from backend.core.events import (
    CalibrationCompletedEvent,
    CalibrationResetEvent,
    ScaleEventBus,
    SessionStateEvent,
    TareDoneEvent,
    WeightWarningEvent,
    scale_event_bus,
)
from touchscale import (
    AccelerationSample,
    LoggingTracer,
    MeasurementSession,
    PressureSample,
    PushSensorSource,
    TouchEvent,
    TouchPhase,
    WeightStatus,
    load_engine_config,
)
from touchscale.contact import Pointer
from touchscale.units import WeightUnit, format_weight, toggle


def _setup_logging() -> logging.Logger:
    logger = logging.getLogger("touchscale")
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)
    log_dir = Path(os.getenv(LOG_DIR_ENV, DEFAULT_LOG_DIR))
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_dir / "app.log")
    except OSError:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    logger.addHandler(handler)
    return logger


_setup_logging()

LOG_SCALE = logging.getLogger("touchscale.backend.scale")
LOG_ENGINE = logging.getLogger("touchscale.engine")

# Configuration
CFG_DIR = Path(os.getenv(CFG_DIR_ENV, DEFAULT_CFG_DIR))
CONFIG_PATH = CFG_DIR / "config.json"
_settings_service = get_settings_service(CONFIG_PATH)

# Global state
pressure_source = PushSensorSource("pressure")
accelerometer_source = PushSensorSource("accelerometer")
scale_session: Optional[MeasurementSession] = None
calibration_store: Optional[SettingsCalibrationStore] = None
event_bus: ScaleEventBus = scale_event_bus
_unsubscribers: List[Any] = []


class PressureRequest(BaseModel):
    hpa: float


class AccelerationRequest(BaseModel):
    x: float
    y: float
    z: float


class PointerModel(BaseModel):
    size: float = Field(ge=0.0, le=1.0)
    pressure: float = Field(ge=0.0, le=1.0)


class TouchRequest(BaseModel):
    phase: TouchPhase
    pointers: List[PointerModel] = Field(default_factory=list)


class CalibrationRequest(BaseModel):
    known_grams: float


class CalibrationApplyRequest(BaseModel):
    zero_offset: float
    accel_baseline: float
    weight_factor: float


class UnitRequest(BaseModel):
    unit: Optional[WeightUnit] = None


def _with_success(result: Dict[str, Any]) -> Dict[str, Any]:
    result["success"] = result.get("ok", False)
    return result


def _not_initialized() -> Dict[str, Any]:
    return {"ok": False, "success": False, "reason": "service_not_initialized"}


def _current_unit() -> WeightUnit:
    return _settings_service.load().ui.unit


def _on_status_change(status: WeightStatus) -> None:
    session = scale_session
    if session is None or status not in (WeightStatus.WARNING, WeightStatus.DANGER):
        return
    grams = session.state.measurement.value.unclamped_weight
    LOG_SCALE.warning("Weight %s: %.1f g", status.value, grams)
    event_bus.publish(WeightWarningEvent(grams=grams, level=status.value))


def _on_active_change(active: bool) -> None:
    event_bus.publish(SessionStateEvent(active=active), force=True)


# ============= SCALE LIFECYCLE =============

def _create_session() -> MeasurementSession:
    global calibration_store
    settings = _settings_service.load()
    config = load_engine_config(settings.scale.engine)
    calibration_store = SettingsCalibrationStore(_settings_service)
    session = MeasurementSession(
        config=config,
        pressure_source=pressure_source,
        accelerometer_source=accelerometer_source,
        calibration_store=calibration_store,
        tracer=LoggingTracer(LOG_ENGINE),
    )
    LOG_SCALE.info(
        "Measurement session created (config=%s, auto_start=%s)",
        CONFIG_PATH,
        settings.scale.auto_start,
    )
    if settings.scale.auto_start:
        session.start()
    return session


async def init_scale() -> None:
    """Create the measurement session."""
    global scale_session
    if scale_session is not None:
        return
    try:
        scale_session = _create_session()
    except Exception as exc:
        LOG_SCALE.error("Failed to create measurement session: %s", exc)
        scale_session = None
        return
    _unsubscribers.append(scale_session.state.status.subscribe(_on_status_change))
    _unsubscribers.append(scale_session.state.session_active.subscribe(_on_active_change))


async def close_scale() -> None:
    """Stop the measurement session and flush pending calibration writes."""
    global scale_session, calibration_store
    while _unsubscribers:
        _unsubscribers.pop()()
    if scale_session is not None:
        try:
            scale_session.stop()
        except Exception as exc:
            LOG_SCALE.error("Failed to stop measurement session: %s", exc)
        finally:
            scale_session = None
    if calibration_store is not None:
        calibration_store.close()
        calibration_store = None

# ============= APP LIFECYCLE =============

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    await init_scale()
    yield
    await close_scale()

app = FastAPI(title="Touch Scale API", version="1.0", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "ok", "session": scale_session is not None}

# ============= SCALE ENDPOINTS =============

@app.post("/api/scale/start")
async def scale_start():
    session = scale_session
    if session is None:
        return _not_initialized()
    session.start()
    return _with_success(session.get_status())


@app.post("/api/scale/stop")
async def scale_stop():
    session = scale_session
    if session is None:
        return _not_initialized()
    session.stop()
    return {"ok": True, "success": True, "session_active": session.active}


@app.get("/api/scale/status")
async def scale_status():
    session = scale_session
    if session is None:
        return _not_initialized()
    return _with_success(session.get_status())


def _reading_payload(session: MeasurementSession, unit: WeightUnit) -> Dict[str, Any]:
    data = session.get_reading()
    if data.get("ok"):
        data["unit"] = unit.value
        data["display"] = format_weight(data["grams"], unit)
    return data


@app.get("/api/scale/read")
async def scale_read():
    session = scale_session
    if session is None:
        return _not_initialized()
    return _with_success(_reading_payload(session, _current_unit()))


async def _wait_for_client(websocket: WebSocket, timeout: float) -> None:
    """Sleep up to ``timeout``; raises WebSocketDisconnect as soon as the client leaves."""
    try:
        await asyncio.wait_for(websocket.receive_text(), timeout=timeout)
    except asyncio.TimeoutError:
        pass


@app.websocket("/ws/scale")
async def websocket_scale(websocket: WebSocket):
    """WebSocket endpoint for real-time weight data"""
    await websocket.accept()
    settings = _settings_service.load()
    interval = max(0.02, settings.scale.stream_interval)
    unit = settings.ui.unit

    try:
        while True:
            session = scale_session
            if session is None:
                await websocket.send_json(_not_initialized())
                await _wait_for_client(websocket, 1.0)
                continue
            await websocket.send_json(_reading_payload(session, unit))
            await _wait_for_client(websocket, interval)
    except WebSocketDisconnect:
        LOG_SCALE.info("Scale WebSocket disconnected")
    except Exception as exc:
        LOG_SCALE.error("WebSocket error: %s", exc)


@app.get("/api/scale/events")
async def scale_events(request: Request) -> StreamingResponse:
    client_host = request.client.host if request.client else "unknown"
    session = scale_session
    initial = [SessionStateEvent(active=session.active)] if session is not None else []
    token, event_queue = event_bus.subscribe(initial=initial)

    async def event_stream() -> AsyncGenerator[str, None]:
        LOG_SCALE.info("[sse] client connected: %s", client_host)
        last_keepalive = time.monotonic()
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = event_queue.get_nowait()
                except queue.Empty:
                    now = time.monotonic()
                    if now - last_keepalive >= 1.0:
                        yield ": keep-alive\n\n"
                        last_keepalive = now
                    await asyncio.sleep(0.1)
                    continue
                payload = json.dumps(ScaleEventBus.serialize(event))
                yield f"event: {ScaleEventBus.event_name(event)}\n"
                yield f"data: {payload}\n\n"
                last_keepalive = time.monotonic()
        except asyncio.CancelledError:  # pragma: no cover - stream cancelled by client
            pass
        finally:
            event_bus.unsubscribe(token)
            LOG_SCALE.info("[sse] client disconnected: %s", client_host)

    headers = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=headers)

# ============= SENSOR / TOUCH INPUT =============

def _input_result(consumed: bool) -> Dict[str, Any]:
    result: Dict[str, Any] = {"ok": consumed, "success": consumed, "consumed": consumed}
    if not consumed:
        result["reason"] = "session_inactive"
    return result


@app.post("/api/sensors/pressure")
async def push_pressure(data: PressureRequest):
    if scale_session is None:
        return _not_initialized()
    return _input_result(pressure_source.push(PressureSample(hpa=data.hpa)))


@app.post("/api/sensors/acceleration")
async def push_acceleration(data: AccelerationRequest):
    if scale_session is None:
        return _not_initialized()
    return _input_result(accelerometer_source.push(AccelerationSample(x=data.x, y=data.y, z=data.z)))


@app.post("/api/touch")
async def push_touch(data: TouchRequest):
    session = scale_session
    if session is None:
        return _not_initialized()
    event = TouchEvent(
        phase=data.phase,
        pointers=tuple(Pointer(size=pointer.size, pressure=pointer.pressure) for pointer in data.pointers),
    )
    consumed = session.handle_touch_event(event)
    result = _input_result(consumed)
    if consumed:
        result["reading"] = _reading_payload(session, _current_unit())
    return result

# ============= CALIBRATION =============

@app.get("/api/calibration")
async def calibration_data():
    session = scale_session
    if session is None:
        return _not_initialized()
    data = session.get_calibration_data()
    calibration = session.get_status()["calibration"]
    return {
        "ok": True,
        "success": True,
        **calibration,
        "accel_baseline": data.accel_baseline,
    }


@app.post("/api/calibration/start")
async def calibration_start():
    session = scale_session
    if session is None:
        return _not_initialized()
    return _with_success(session.start_calibration())


@app.post("/api/calibration/zero")
async def calibration_zero():
    session = scale_session
    if session is None:
        return _not_initialized()
    result = session.perform_zero_calibration()
    if result.get("ok"):
        event_bus.publish(TareDoneEvent(zero_offset=result["zero_offset"]), force=True)
    return _with_success(result)


@app.post("/api/calibration/weight")
async def calibration_weight(data: CalibrationRequest):
    session = scale_session
    if session is None:
        return _not_initialized()
    result = session.perform_weight_calibration(data.known_grams)
    if result.get("ok"):
        event_bus.publish(
            CalibrationCompletedEvent(known_grams=data.known_grams, weight_factor=result["weight_factor"]),
            force=True,
        )
    return _with_success(result)


@app.post("/api/calibration/cancel")
async def calibration_cancel():
    session = scale_session
    if session is None:
        return _not_initialized()
    return _with_success(session.cancel_calibration())


@app.post("/api/calibration/reset")
async def calibration_reset():
    session = scale_session
    if session is None:
        return _not_initialized()
    result = session.reset_calibration()
    event_bus.publish(CalibrationResetEvent(), force=True)
    return _with_success(result)


@app.post("/api/calibration/apply")
async def calibration_apply(data: CalibrationApplyRequest):
    session = scale_session
    if session is None:
        return _not_initialized()
    result = session.apply_calibration(data.zero_offset, data.accel_baseline, data.weight_factor)
    return _with_success(result)

# ============= SETTINGS =============

@app.get("/api/settings/unit")
async def get_unit():
    return {"ok": True, "unit": _current_unit().value}


@app.post("/api/settings/unit")
async def set_unit(data: UnitRequest):
    unit = data.unit if data.unit is not None else toggle(_current_unit())
    try:
        _settings_service.save({"ui": {"unit": unit.value}})
    except OSError as exc:
        LOG_SCALE.error("Failed to save unit preference: %s", exc)
        raise HTTPException(status_code=500, detail="settings_not_saved") from exc
    return {"ok": True, "unit": unit.value}


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    host = os.getenv("TOUCHSCALE_HOST", "0.0.0.0")
    port = int(os.getenv("TOUCHSCALE_PORT", "8080"))
    uvicorn.run("backend.asgi:app", host=host, port=port)
