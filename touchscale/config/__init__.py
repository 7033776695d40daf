"""Configuration for the touch scale engine."""

from .settings import EngineConfig, dump_engine_config, load_engine_config

__all__ = ["EngineConfig", "load_engine_config", "dump_engine_config"]
