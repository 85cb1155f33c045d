"""Sources providers: the source sets that make up layers."""

from .sources import (
    DEFAULT_LATENCY,
    BaseSources,
    CompositeSources,
    DirBasedSources,
    DirMode,
    FixedSetSources,
)
from .util import source_set_to_sources, source_to_sources

__all__ = [
    "DEFAULT_LATENCY",
    "BaseSources",
    "FixedSetSources",
    "DirBasedSources",
    "DirMode",
    "CompositeSources",
    "source_to_sources",
    "source_set_to_sources",
]
