from __future__ import annotations

import queue
import re
import threading
import time
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, Optional, Tuple, Union


@dataclass(frozen=True, slots=True)
class SessionStateEvent:
    active: bool


@dataclass(frozen=True, slots=True)
class TareDoneEvent:
    zero_offset: float


@dataclass(frozen=True, slots=True)
class CalibrationCompletedEvent:
    known_grams: float
    weight_factor: float


@dataclass(frozen=True, slots=True)
class CalibrationResetEvent:
    pass


@dataclass(frozen=True, slots=True)
class WeightWarningEvent:
    grams: float
    level: str


ScaleEvent = Union[
    SessionStateEvent,
    TareDoneEvent,
    CalibrationCompletedEvent,
    CalibrationResetEvent,
    WeightWarningEvent,
]

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_NAME_CACHE: Dict[type, str] = {}


def _event_name(event: ScaleEvent) -> str:
    cls = type(event)
    name = _NAME_CACHE.get(cls)
    if name is None:
        base = cls.__name__.removesuffix("Event")
        # SSE event names are kebab-case: TareDoneEvent -> tare-done
        name = _CAMEL_BOUNDARY.sub("-", base).lower()
        _NAME_CACHE[cls] = name
    return name


@dataclass(slots=True)
class _Subscription:
    events: "queue.Queue[ScaleEvent]"
    dropped: int = 0


class ScaleEventBus:
    """Fan-out of scale events to SSE clients, rate limited per event type.

    Each subscriber owns a bounded queue. A client that stops reading loses
    events rather than stalling the publisher; the loss is counted.
    """

    def __init__(
        self,
        *,
        default_rate: float = 0.0,
        rate_overrides: Optional[Dict[str, float]] = None,
        queue_size: int = 32,
    ) -> None:
        self._lock = threading.Lock()
        self._subscriptions: Dict[int, _Subscription] = {}
        self._next_token = 1
        self._queue_size = max(1, queue_size)
        self._last_emit: Dict[str, float] = {}
        self._default_rate = max(0.0, float(default_rate))
        self._rate_overrides = {
            key: max(0.0, float(value)) for key, value in (rate_overrides or {}).items()
        }

    def subscribe(
        self, initial: Iterable[ScaleEvent] = ()
    ) -> Tuple[int, "queue.Queue[ScaleEvent]"]:
        """Register a client; ``initial`` events are queued for it alone."""
        subscription = _Subscription(queue.Queue(self._queue_size))
        for event in initial:
            self._offer(subscription, event)
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscriptions[token] = subscription
        return token, subscription.events

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._subscriptions.pop(token, None)

    def dropped(self, token: int) -> int:
        with self._lock:
            subscription = self._subscriptions.get(token)
        return subscription.dropped if subscription is not None else 0

    def _allowed(self, event_type: str, now: float) -> bool:
        limit = self._rate_overrides.get(event_type, self._default_rate)
        if limit <= 0:
            return True
        last = self._last_emit.get(event_type)
        return last is None or (now - last) >= limit

    def publish(self, event: ScaleEvent, *, force: bool = False) -> bool:
        """Deliver ``event``; ``False`` when the rate limit swallowed it."""
        event_type = _event_name(event)
        now = time.monotonic()
        with self._lock:
            if not force and not self._allowed(event_type, now):
                return False
            self._last_emit[event_type] = now
            subscriptions = list(self._subscriptions.values())

        for subscription in subscriptions:
            self._offer(subscription, event)
        return True

    @staticmethod
    def _offer(subscription: _Subscription, event: ScaleEvent) -> None:
        try:
            subscription.events.put_nowait(event)
        except queue.Full:
            subscription.dropped += 1

    @staticmethod
    def event_name(event: ScaleEvent) -> str:
        return _event_name(event)

    @staticmethod
    def serialize(event: ScaleEvent) -> Dict[str, object]:
        payload = asdict(event)
        payload["type"] = _event_name(event)
        payload["ts"] = time.time()
        return payload


# At most one weight warning every 2 s unless forced
scale_event_bus = ScaleEventBus(rate_overrides={"weight-warning": 2.0})

__all__ = [
    "ScaleEventBus",
    "scale_event_bus",
    "ScaleEvent",
    "SessionStateEvent",
    "TareDoneEvent",
    "CalibrationCompletedEvent",
    "CalibrationResetEvent",
    "WeightWarningEvent",
]
