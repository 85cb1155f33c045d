"""
Sources providers

A Sources provider yields the current source set of one layer.

Design:
- get_source_set() re-queries the underlying set at most once per latency
  window; inside the window every caller gets the same snapshot
- get_last_modified() changes iff the set or a source watermark changed
- A provider may carry its own compiler; otherwise the engine's is used

Providers:
- FixedSetSources: a fixed collection (watermarks of files still move)
- DirBasedSources: script files in a directory, optionally recursive
- CompositeSources: union of other providers
"""

from enum import Enum
from itertools import count
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Set
import threading

from ..source.source import Source, SourceFactory
from ..source.source_set_state import SourceSetState

DEFAULT_LATENCY = 5.0
DEFAULT_EXTENSIONS = frozenset({'py'})

_name_counter = count(1)


class DirMode(Enum):
    """How DirBasedSources walks its directory"""
    NO_SUBDIRS = 'no_subdirs'
    WITH_SUBDIRS_RECURSIVE = 'with_subdirs_recursive'


class BaseSources:
    """
    Latency-gated source set provider.

    Subclasses implement _get_source_set_new().
    """

    def __init__(self, name: Optional[str] = None, latency: Optional[float] = None, compiler=None):
        self.name = name or f"{type(self).__name__}-{next(_name_counter)}"
        self.latency = DEFAULT_LATENCY if latency is None else latency
        self.compiler = compiler
        self._state: Optional[SourceSetState] = None
        self._lock = threading.Lock()

    def _get_source_set_new(self) -> Iterable[Source]:
        raise NotImplementedError

    def get_source_set(self) -> FrozenSet[Source]:
        return self._update_if_needed().source_set

    def get_last_modified(self) -> float:
        return self._update_if_needed().last_modified

    def _update_if_needed(self) -> SourceSetState:
        state = self._state
        if state is not None and state.is_within(self.latency):
            return state

        with self._lock:
            state = self._state
            if state is not None and state.is_within(self.latency):
                return state

            source_set = frozenset(self._get_source_set_new())
            state = SourceSetState(source_set) if state is None else state.update(source_set)
            self._state = state
            return state

    def __repr__(self):
        return f"{type(self).__name__}[name='{self.name}']"


class FixedSetSources(BaseSources):
    """Provider for a fixed collection of sources"""

    def __init__(self, sources: Iterable[Source], name: Optional[str] = None,
                 latency: Optional[float] = None, compiler=None):
        super().__init__(name, latency, compiler)
        self._sources = frozenset(sources)

    def _get_source_set_new(self) -> FrozenSet[Source]:
        return self._sources


class DirBasedSources(BaseSources):
    """
    Provider for script files in a directory.

    Hidden entries (names starting with '.') below the root are skipped.
    Only files whose extension is in `extensions` are included.
    """

    def __init__(
        self,
        directory: Path | str,
        dir_mode: DirMode = DirMode.NO_SUBDIRS,
        extensions: Optional[Iterable[str]] = None,
        source_factory: Optional[SourceFactory] = None,
        name: Optional[str] = None,
        latency: Optional[float] = None,
        compiler=None,
    ):
        self.directory = Path(directory).absolute()
        super().__init__(name or str(self.directory), latency, compiler)
        self.dir_mode = dir_mode
        self.extensions = frozenset(extensions) if extensions is not None else DEFAULT_EXTENSIONS
        self.source_factory = source_factory or SourceFactory()

    def _get_source_set_new(self) -> Set[Source]:
        sources: Set[Source] = set()
        self._add_from_directory(sources, self.directory, first=True)
        return sources

    def _add_from_directory(self, sources: Set[Source], path: Path, first: bool) -> None:
        if not first and path.name.startswith('.'):
            return
        if path.is_dir():
            if first or self.dir_mode is DirMode.WITH_SUBDIRS_RECURSIVE:
                for child in sorted(path.iterdir()):
                    self._add_from_directory(sources, child, first=False)
        elif path.is_file():
            ext = path.suffix[1:]
            if path.suffix and ext in self.extensions:
                sources.add(self.source_factory.from_file(path))


class CompositeSources(BaseSources):
    """Provider for the union of other providers' source sets"""

    def __init__(self, sources_list: Iterable[BaseSources], name: Optional[str] = None,
                 latency: Optional[float] = None, compiler=None):
        super().__init__(name, latency, compiler)
        self.sources_list: List[BaseSources] = list(sources_list)

    def _get_source_set_new(self) -> Set[Source]:
        result: Set[Source] = set()
        for sources in self.sources_list:
            result.update(sources.get_source_set())
        return result
