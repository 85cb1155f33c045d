"""
Errors

Every failure the layered runtime reports is a ScriptLayersError.

Design principles:
- One base class, one subclass per failure kind
- Errors carry the objects needed to act on them (sources, conflict maps)
- Wrapping adds context and chains the original cause with `from`
- Nothing is retried internally
"""

from typing import Any, Dict, List, Optional


class ScriptLayersError(Exception):
    """Base exception for layered runtime errors"""
    pass


class CompileError(ScriptLayersError):
    """Raised when a source set can't be compiled into a layer"""

    def __init__(self, message: str, sources: Any = None):
        super().__init__(message)
        self.sources = sources


class LoadError(ScriptLayersError):
    """Raised when a name or source can't be resolved or executed"""

    def __init__(self, message: str, name: Optional[str] = None, source: Any = None):
        super().__init__(message)
        self.name = name
        self.source = source


class LoaderMismatchError(ScriptLayersError, ValueError):
    """Raised when a loader is used with an engine that didn't create it"""
    pass


class CreateError(ScriptLayersError):
    """Raised when a script can't be created from a loaded module"""
    pass


class ConfigError(ScriptLayersError, ValueError):
    """Raised when a configuration value is invalid"""
    pass


class NameConflictError(ScriptLayersError):
    """
    Raised when new layers would shadow names in a way the policy forbids.

    Both maps are name -> list of layers containing the name. A map is
    None when that check was not enabled.
    """

    def __init__(
        self,
        cross_layer: Optional[Dict[str, List[Any]]],
        outer: Optional[Dict[str, List[Any]]],
    ):
        self.cross_layer = cross_layer
        self.outer = outer
        super().__init__(self._build_message())

    @property
    def count(self) -> int:
        """Number of conflicting names across both checks"""
        return len(self.cross_layer or {}) + len(self.outer or {})

    def _build_message(self) -> str:
        def describe(conflicts):
            if conflicts is None:
                return "(not checked)"
            return {name: [_layer_label(l) for l in layers] for name, layers in conflicts.items()}

        return (
            f"Found {self.count} name conflict(s). "
            f"Cross-layer: {describe(self.cross_layer)}, "
            f"outer: {describe(self.outer)}"
        )


def _layer_label(layer: Any) -> str:
    return getattr(layer, 'name', None) or repr(layer)
