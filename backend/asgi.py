"""ASGI entrypoint: ``uvicorn backend.asgi:app``."""
from __future__ import annotations

from backend.main import app

__all__ = ["app"]
