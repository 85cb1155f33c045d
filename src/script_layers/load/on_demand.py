"""
On-demand cache

Compiles sources that are not in the static layers, or have changed
since the layers were compiled, and keeps the result until the source
changes again.

Design:
- One entry per source (or per Sources provider), each with its own lock,
  so a slow compile of one source never blocks another
- Staleness is decided by SourceSetState.update(); within the freshness
  window (latency) an entry is served without rechecking
- Compilation sees the parent namespace (the engine's current layers);
  set_parent() drops every entry since they were compiled against the
  previous layers
- Entries are never evicted on their own: every distinct source adds one
  until set_parent(), clear() or discard() drops it
"""

from typing import Any, Callable, Dict, Hashable, Iterable, Optional, Tuple
import threading

from ..code.layer import CompiledLayer, SingleSourceLayer
from ..core.self_logger import SelfLogger
from ..source.source import Source
from ..source.source_set_state import SourceSetState
from ..sources.util import source_set_to_sources, source_to_sources


class _Entry:
    """Cache slot; `current` is None or an immutable (layer, state) pair"""

    __slots__ = ('lock', 'current')

    def __init__(self, current: Optional[Tuple[CompiledLayer, SourceSetState]] = None):
        self.lock = threading.Lock()
        self.current = current


class OnDemandCache:
    """
    Per-source cache of up-to-date single-source layers.

    Args:
        compiler: Compiler used for sources without their own
        parent: Namespace compiled code is checked against
        latency: Seconds an entry is trusted without rechecking (0 = always)
        logger: SelfLogger for compile events
    """

    def __init__(self, compiler, parent=None, latency: float = 0.0, logger: Optional[SelfLogger] = None):
        self.compiler = compiler
        self.parent = parent
        self.latency = latency
        self.logger = logger or SelfLogger('on-demand-cache')
        self._entries: Dict[Hashable, _Entry] = {}
        self._entries_lock = threading.Lock()
        self._stats = {'hits': 0, 'misses': 0, 'compiles': 0}
        self._stats_lock = threading.Lock()

    def get_up_to_date_layer(self, source: Source) -> SingleSourceLayer:
        """
        Get a layer compiled from the current state of source.

        Raises:
            CompileError: If the source can't be compiled
        """
        return self._get(source, lambda: [source], lambda: source_to_sources(source))

    def get_up_to_date_layer_for_sources(self, sources) -> CompiledLayer:
        """Get a layer compiled from the current source set of a Sources provider"""
        return self._get(
            sources,
            sources.get_source_set,
            lambda: source_set_to_sources(sources.get_source_set(), name=sources.name,
                                          compiler=getattr(sources, 'compiler', None)),
        )

    def _get(self, key: Hashable, get_source_set: Callable[[], Iterable[Source]],
             make_sources: Callable[[], Any]) -> CompiledLayer:
        entry = self._entry_for(key)

        current = entry.current
        if current is not None and current[1].is_within(self.latency):
            self._count('hits')
            return current[0]

        with entry.lock:
            current = entry.current
            if current is not None:
                layer, state = current
                if state.is_within(self.latency):
                    self._count('hits')
                    return layer
                new_state = state.update(get_source_set())
                if new_state.last_modified == state.last_modified:
                    entry.current = (layer, new_state)
                    self._count('hits')
                    return layer
            else:
                new_state = SourceSetState(get_source_set())

            self._count('misses')
            sources = make_sources()
            compiler = getattr(sources, 'compiler', None) or self.compiler
            try:
                layer = compiler.compile(sources, self.parent)
            except Exception as e:
                self.logger.error("On-demand compile failed", sources=sources.name,
                                  error=f"{type(e).__name__}: {e}")
                raise

            self._count('compiles')
            self.logger.info("Compiled on demand", sources=sources.name, names=','.join(sorted(layer.names)))
            entry.current = (layer, new_state)
            return layer

    def _count(self, stat: str) -> None:
        with self._stats_lock:
            self._stats[stat] += 1

    def _entry_for(self, key: Hashable) -> _Entry:
        with self._entries_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            return entry

    def discard(self, key: Hashable) -> bool:
        """
        Forget the entry for a source or Sources provider.

        Returns:
            True if there was an entry
        """
        with self._entries_lock:
            return self._entries.pop(key, None) is not None

    def set_parent(self, parent) -> None:
        """Switch to a new parent namespace and drop all entries"""
        with self._entries_lock:
            self.parent = parent
            self._entries = {}

    def clone(self) -> 'OnDemandCache':
        """Independent cache with a copy of the current entries"""
        with self._entries_lock:
            copy = OnDemandCache(self.compiler, self.parent, self.latency, self.logger)
            copy._entries = {key: _Entry(e.current)
                             for key, e in self._entries.items() if e.current is not None}
        return copy

    def clear(self) -> None:
        """Drop all entries and reset statistics"""
        with self._entries_lock:
            self._entries = {}
        with self._stats_lock:
            self._stats = {'hits': 0, 'misses': 0, 'compiles': 0}

    def get_stats(self) -> Dict[str, int]:
        """
        Get cache statistics.

        Returns:
            Dict with 'hits', 'misses', 'compiles', 'size'
        """
        with self._entries_lock:
            size = sum(1 for e in self._entries.values() if e.current is not None)
        with self._stats_lock:
            return {**self._stats, 'size': size}
