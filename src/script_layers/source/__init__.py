"""Script inputs: sources, the source factory and source set snapshots."""

from .source import (
    FileSource,
    Source,
    SourceFactory,
    TextSource,
    TrackingUrlSource,
    UrlSource,
)
from .source_set_state import SourceSetState

__all__ = [
    "Source",
    "TextSource",
    "FileSource",
    "UrlSource",
    "TrackingUrlSource",
    "SourceFactory",
    "SourceSetState",
]
