"""Helpers for wrapping sources into Sources providers."""

from typing import Iterable, Optional

from ..source.source import Source
from .sources import FixedSetSources


def source_to_sources(source: Source, compiler=None) -> FixedSetSources:
    """Provider for a single source, named after the source id, no latency"""
    return FixedSetSources([source], name=source.id, latency=0, compiler=compiler)


def source_set_to_sources(source_set: Iterable[Source], name: Optional[str] = None,
                          compiler=None) -> FixedSetSources:
    """Provider for a fixed source set, no latency"""
    return FixedSetSources(source_set, name=name, latency=0, compiler=compiler)
