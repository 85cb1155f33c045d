"""
Outer namespaces

The outer namespace is what layered scripts see beyond the layers:
by default Python's own import system.

Every namespace offers:
- resolve(name): the module or class for a qualified name, or LoadError
- contains(name): True if resolve would succeed; never raises
- import_module(...): an `__import__`-compatible hook
"""

from typing import Any, Iterable, Mapping, Optional
import builtins
import importlib
import importlib.util

from ..core.errors import LoadError


class OuterNamespace:
    """Base namespace: subclasses implement resolve()"""

    def resolve(self, name: str) -> Any:
        raise NotImplementedError

    def contains(self, name: str) -> bool:
        try:
            self.resolve(name)
            return True
        except Exception:
            return False

    def import_module(self, name: str, globals=None, locals=None, fromlist=(), level: int = 0) -> Any:
        if level != 0:
            raise ImportError(f"Relative import of {name!r} is not supported here.")
        try:
            target = self.resolve(name)
            if fromlist:
                return target
            top = name.partition('.')[0]
            return target if top == name else self.resolve(top)
        except LoadError as e:
            raise ModuleNotFoundError(f"No module named {name!r}", name=name) from e


class ImportNamespace(OuterNamespace):
    """
    Python's import system as a namespace.

    Args:
        exclude: Top-level names to hide (they resolve as absent)
    """

    def __init__(self, exclude: Optional[Iterable[str]] = None):
        self.exclude = frozenset(exclude or ())

    def _is_excluded(self, name: str) -> bool:
        return name.partition('.')[0] in self.exclude

    def resolve(self, name: str) -> Any:
        if self._is_excluded(name):
            raise LoadError(f"Name is excluded from the outer namespace: {name}", name=name)
        try:
            return importlib.import_module(name)
        except ImportError as e:
            if '.' not in name:
                raise LoadError(f"Could not import {name}: {e}", name=name) from e
            return self._resolve_attribute(name, e)
        except Exception as e:
            raise LoadError(f"Could not import {name}: {type(e).__name__}: {e}", name=name) from e

    def _resolve_attribute(self, name: str, import_error: ImportError) -> Any:
        module_name, _, attr = name.rpartition('.')
        try:
            module = importlib.import_module(module_name)
        except Exception:
            raise LoadError(f"Could not import {name}: {import_error}", name=name) from import_error
        if not hasattr(module, attr):
            raise LoadError(f"Module {module_name} has no attribute {attr}", name=name) from import_error
        return getattr(module, attr)

    def contains(self, name: str) -> bool:
        if self._is_excluded(name):
            return False
        try:
            if importlib.util.find_spec(name) is not None:
                return True
        except Exception:
            pass
        if '.' not in name:
            return False
        try:
            return super().contains(name)
        except Exception:
            return False

    def import_module(self, name: str, globals=None, locals=None, fromlist=(), level: int = 0) -> Any:
        if level == 0 and self._is_excluded(name):
            raise ModuleNotFoundError(f"No module named {name!r}", name=name)
        return builtins.__import__(name, globals, locals, fromlist, level)


class DictNamespace(OuterNamespace):
    """Namespace backed by an explicit mapping of names to objects"""

    def __init__(self, mapping: Optional[Mapping[str, Any]] = None):
        self.mapping = dict(mapping or {})

    def resolve(self, name: str) -> Any:
        try:
            return self.mapping[name]
        except KeyError:
            raise LoadError(f"Name not found: {name}", name=name) from None

    def contains(self, name: str) -> bool:
        return name in self.mapping


def is_missing(error: ModuleNotFoundError, name: str) -> bool:
    """True if the error reports `name` itself (or a parent) as absent"""
    missing = error.name
    return missing is not None and (missing == name or name.startswith(missing + '.'))
