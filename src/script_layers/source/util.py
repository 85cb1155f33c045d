"""Helpers for building sources and source sets."""

from pathlib import Path
from typing import FrozenSet, Iterable, Optional
import hashlib


def hash_text(text: str) -> str:
    """SHA-256 hex digest of UTF-8 text"""
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


def text_start_no_line_breaks(text: Optional[str], max_len: int) -> str:
    """First max_len characters of text with line breaks shown as '%n'"""
    if text is None:
        return 'null'
    if max_len < 4:
        raise ValueError("Max len must be at least 4.")
    text = text.replace('\r\n', '%n').replace('\r', '%n').replace('\n', '%n')
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + '...'


def texts_to_source_set(texts: Iterable[str], factory=None) -> FrozenSet:
    factory = factory or _default_factory()
    return frozenset(factory.from_text(t) for t in texts)


def files_to_source_set(paths: Iterable[Path | str], factory=None) -> FrozenSet:
    factory = factory or _default_factory()
    return frozenset(factory.from_file(p) for p in paths)


def urls_to_source_set(urls: Iterable[str], factory=None) -> FrozenSet:
    factory = factory or _default_factory()
    return frozenset(factory.from_url(u) for u in urls)


def _default_factory():
    from .source import SourceFactory
    return SourceFactory()
