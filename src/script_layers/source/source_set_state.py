"""
Source set state

Snapshot of a source set plus when it was last checked and last changed.
This is the one change-detection rule shared by Sources providers, the
on-demand cache and the runtime facade.
"""

from typing import Dict, FrozenSet, Iterable, Optional
import math
import time

from .source import Source


class SourceSetState:
    """
    Immutable snapshot of a source set.

    update() returns a new state: last_modified carries over when the set
    and every source watermark are unchanged, and strictly increases
    otherwise.
    """

    __slots__ = ('source_set', 'last_checked', 'last_modified', '_modifications')

    def __init__(
        self,
        source_set: Iterable[Source],
        last_checked: Optional[float] = None,
        last_modified: Optional[float] = None,
        modifications: Optional[Dict[Source, float]] = None,
    ):
        now = time.time()
        self.source_set: FrozenSet[Source] = frozenset(source_set)
        self.last_checked = now if last_checked is None else last_checked
        self.last_modified = now if last_modified is None else last_modified
        self._modifications = (modifications if modifications is not None
                               else _modifications(self.source_set))

    def update(self, new_source_set: Optional[Iterable[Source]] = None) -> 'SourceSetState':
        """
        Check a (possibly new) source set against this snapshot.

        Args:
            new_source_set: Set to compare; None rechecks the current set

        Returns:
            New state; last_modified is unchanged iff nothing changed
        """
        new_set = self.source_set if new_source_set is None else frozenset(new_source_set)
        new_mods = _modifications(new_set)
        now = time.time()

        if new_set == self.source_set and new_mods == self._modifications:
            return SourceSetState(new_set, now, self.last_modified, new_mods)

        last_modified = max(now, math.nextafter(self.last_modified, math.inf))
        return SourceSetState(new_set, now, last_modified, new_mods)

    def is_within(self, latency: float) -> bool:
        """True if the last check lies within the past latency seconds"""
        diff = time.time() - self.last_checked
        return 0 <= diff < latency

    def __repr__(self):
        return (f"SourceSetState[sources={len(self.source_set)}, "
                f"last_checked={self.last_checked}, last_modified={self.last_modified}]")


def _modifications(source_set: FrozenSet[Source]) -> Dict[Source, float]:
    return {source: source.last_modified for source in source_set}
