"""
Sources

A source is a named script input: text, a file, or a URL.

Design principles:
- Identity is the id string; two sources are equal iff their ids are equal
- last_modified is a watermark: only a change is meaningful, never its size
- Reading the text is the compiler's business; sources only describe input
"""

from pathlib import Path
from typing import Dict, Optional
import math
import threading
import time

import requests

from .util import hash_text, text_start_no_line_breaks

TEXT_ID_PREFIX = '/python/script/Script'
URL_TIMEOUT = 30
UNREADABLE_URL_HASH = 'unreadable'


class Source:
    """Base class for script inputs"""

    @property
    def id(self) -> str:
        raise NotImplementedError

    @property
    def last_modified(self) -> float:
        return 0

    def read_text(self) -> str:
        """Read the script text (raises NotImplementedError for unknown kinds)"""
        raise NotImplementedError(f"Don't know how to read {type(self).__name__}")

    @property
    def name_hint(self) -> Optional[str]:
        """Preferred module name, if the source suggests one"""
        return None

    def __eq__(self, other):
        if not isinstance(other, Source):
            return NotImplemented
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"{type(self).__name__}[id='{self.id}']"


class TextSource(Source):
    """
    Script given directly as text.

    The id is derived from the text hash, plus the desired module name
    when one is given. The watermark never changes.
    """

    def __init__(self, text: str, name: Optional[str] = None):
        if text is None:
            raise ValueError("Text is None.")
        if name is not None and not name.isidentifier():
            raise ValueError(f"Desired name is not an identifier: {name!r}")
        self.text = text
        self.desired_name = name
        self._id = TEXT_ID_PREFIX + hash_text(text)
        if name is not None:
            self._id += '/' + name

    @property
    def id(self) -> str:
        return self._id

    @property
    def name_hint(self) -> Optional[str]:
        return self.desired_name

    def read_text(self) -> str:
        return self.text

    def __repr__(self):
        name = f", desiredName={self.desired_name}" if self.desired_name else ''
        return (f"{type(self).__name__}[id='{self.id}', "
                f"text='{text_start_no_line_breaks(self.text, 200)}'{name}]")


class FileSource(Source):
    """Script file; the watermark is the file's mtime (0 if missing)"""

    def __init__(self, path: Path | str):
        self.path = Path(path).absolute().resolve()

    @property
    def id(self) -> str:
        return str(self.path)

    @property
    def last_modified(self) -> float:
        try:
            return self.path.stat().st_mtime_ns
        except OSError:
            return 0

    @property
    def name_hint(self) -> Optional[str]:
        stem = self.path.stem
        return stem if stem.isidentifier() else None

    def read_text(self) -> str:
        return self.path.read_text(encoding='utf-8')


class UrlSource(Source):
    """Script fetched over HTTP(S); the watermark never changes"""

    def __init__(self, url: str):
        self.url = url

    @property
    def id(self) -> str:
        return self.url

    @property
    def name_hint(self) -> Optional[str]:
        stem = self.url.rstrip('/').rsplit('/', 1)[-1].split('?', 1)[0]
        if stem.endswith('.py'):
            stem = stem[:-3]
        return stem if stem.isidentifier() else None

    def read_text(self) -> str:
        response = requests.get(self.url, timeout=URL_TIMEOUT)
        response.raise_for_status()
        return response.text


class TrackingUrlSource(UrlSource):
    """
    URL source whose watermark follows the content.

    The text is fetched and hashed at most once per latency window; the
    watermark moves only when the hash changes.
    """

    def __init__(self, url: str, latency: float):
        super().__init__(url)
        self.latency = latency
        self._lock = threading.Lock()
        self._content_hash: Optional[str] = None
        self._last_modified: float = 0
        self._last_checked: Optional[float] = None

    def _is_fresh(self) -> bool:
        if self._last_checked is None:
            return False
        diff = time.time() - self._last_checked
        return 0 <= diff < self.latency

    @property
    def last_modified(self) -> float:
        if self._is_fresh():
            return self._last_modified

        with self._lock:
            if self._is_fresh():
                return self._last_modified

            try:
                content_hash = hash_text(super().read_text())
            except (requests.RequestException, UnicodeError):
                content_hash = UNREADABLE_URL_HASH

            if content_hash != self._content_hash:
                self._content_hash = content_hash
                self._last_modified = max(time.time(), math.nextafter(self._last_modified, math.inf))
            self._last_checked = time.time()
            return self._last_modified


class SourceFactory:
    """
    Creates sources.

    With track_url_content enabled, URL sources report a new watermark
    whenever their content changes (checked at most once per
    tracking_latency seconds). One tracking source is kept per URL.
    """

    DEFAULT_URL_TRACKING_LATENCY = 60.0

    def __init__(self, track_url_content: bool = False, tracking_latency: Optional[float] = None):
        self.track_url_content = track_url_content
        self.tracking_latency = (self.DEFAULT_URL_TRACKING_LATENCY
                                 if tracking_latency is None else tracking_latency)
        self._tracked: Dict[str, TrackingUrlSource] = {}
        self._lock = threading.Lock()

    def from_text(self, text: str, name: Optional[str] = None) -> TextSource:
        return TextSource(text, name)

    def from_file(self, path: Path | str) -> FileSource:
        return FileSource(path)

    def from_url(self, url: str) -> UrlSource:
        if not self.track_url_content:
            return UrlSource(url)
        with self._lock:
            source = self._tracked.get(url)
            if source is None:
                source = TrackingUrlSource(url, self.tracking_latency)
                self._tracked[url] = source
            return source

    def clear_cache(self) -> None:
        """Forget tracked URL state"""
        with self._lock:
            self._tracked.clear()
