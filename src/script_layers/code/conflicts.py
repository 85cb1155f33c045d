"""
Conflict analysis

Finds names that would be shadowed once a layer list is installed:
names defined by more than one layer, and names the outer namespace
already provides.
"""

from typing import Dict, List, Optional, Sequence

from ..core.errors import NameConflictError
from .layer import CompiledLayer


def get_all_names_map(layers: Sequence[CompiledLayer]) -> Dict[str, List[CompiledLayer]]:
    """Map each name to the layers that define it, in layer order"""
    names: Dict[str, List[CompiledLayer]] = {}
    for layer in layers:
        for name in sorted(layer.names):
            names.setdefault(name, []).append(layer)
    return names


def get_cross_layer_conflicts(layers: Sequence[CompiledLayer]) -> Dict[str, List[CompiledLayer]]:
    """Names defined by more than one layer"""
    return {name: found for name, found in get_all_names_map(layers).items() if len(found) > 1}


def get_outer_conflicts(outer, layers: Sequence[CompiledLayer]) -> Dict[str, List[CompiledLayer]]:
    """Names defined by the layers that the outer namespace also resolves"""
    return {name: found for name, found in get_all_names_map(layers).items()
            if _outer_contains(outer, name)}


def _outer_contains(outer, name: str) -> bool:
    try:
        return bool(outer.contains(name))
    except Exception:
        # A failing probe counts as "not present"
        return False


class ConflictReport:
    """Result of a conflict analysis; a map is None when its check was off"""

    def __init__(self, cross_layer: Optional[Dict[str, List[CompiledLayer]]],
                 outer: Optional[Dict[str, List[CompiledLayer]]]):
        self.cross_layer = cross_layer
        self.outer = outer

    @property
    def count(self) -> int:
        return len(self.cross_layer or {}) + len(self.outer or {})

    def raise_if_conflicts(self) -> None:
        if self.count > 0:
            raise NameConflictError(self.cross_layer, self.outer)


class ConflictAnalyzer:
    """
    Runs the enabled conflict checks over a layer list.

    Args:
        check_cross_layer: Report names defined in more than one layer
        check_outer: Report names the outer namespace already resolves
    """

    def __init__(self, check_cross_layer: bool = True, check_outer: bool = True):
        self.check_cross_layer = check_cross_layer
        self.check_outer = check_outer

    def analyze(self, layers: Sequence[CompiledLayer], outer=None) -> ConflictReport:
        cross_layer = get_cross_layer_conflicts(layers) if self.check_cross_layer else None
        outer_conflicts = None
        if self.check_outer and outer is not None:
            outer_conflicts = get_outer_conflicts(outer, layers)
        return ConflictReport(cross_layer, outer_conflicts)
