"""Structured trace events emitted by the engine.

The fusion, calibration and estimation code report through a :class:`Tracer`
and never log directly. :class:`LoggingTracer` turns events into log lines.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol


class Tracer(Protocol):
    def emit(self, event: str, **fields: Any) -> None:  # pragma: no cover - protocol definition only
        ...

    def reject(self, event: str, reason: str, **fields: Any) -> None:  # pragma: no cover - protocol definition only
        ...


class NullTracer:
    def emit(self, event: str, **fields: Any) -> None:
        return None

    def reject(self, event: str, reason: str, **fields: Any) -> None:
        return None


def _render(fields: dict[str, Any]) -> str:
    parts = []
    for key, value in fields.items():
        if isinstance(value, float):
            parts.append(f"{key}={value:.6g}")
        else:
            parts.append(f"{key}={value}")
    return " ".join(parts)


class LoggingTracer:
    """Render trace events as ``event key=value ...`` log lines."""

    def __init__(self, logger: logging.Logger | None = None, *, level: int = logging.DEBUG) -> None:
        self._logger = logger or logging.getLogger("touchscale.engine")
        self._level = level

    def emit(self, event: str, **fields: Any) -> None:
        if self._logger.isEnabledFor(self._level):
            self._logger.log(self._level, "%s %s", event, _render(fields), extra={"trace_event": event})

    def reject(self, event: str, reason: str, **fields: Any) -> None:
        self._logger.warning(
            "%s rejected: %s %s",
            event,
            reason,
            _render(fields),
            extra={"trace_event": event, "trace_reason": reason},
        )


__all__ = ["LoggingTracer", "NullTracer", "Tracer"]
