"""The layered engine, its loaders and configuration."""

from .config import EngineConfig, get_config, reload_config
from .layered_engine import LayeredEngine, LoaderNamespace
from .loader import EngineToken, Loader
from .rwlock import ReadWriteLock

__all__ = [
    "EngineConfig",
    "get_config",
    "reload_config",
    "LayeredEngine",
    "LoaderNamespace",
    "EngineToken",
    "Loader",
    "ReadWriteLock",
]
