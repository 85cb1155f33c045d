"""
Loader

A loader is the handle callers hold to resolve names through an engine.
Its resolver can only be read or replaced with the token of the engine
that created it.
"""

from typing import Optional

from ..core.errors import LoaderMismatchError
from ..load.resolver import NamespaceResolver


class EngineToken:
    """Opaque engine identity, compared by object identity"""

    __slots__ = ('label',)

    def __init__(self, label: str):
        self.label = label

    def __repr__(self):
        return f"EngineToken[{self.label}]"


class Loader:
    """
    Engine-bound handle to a NamespaceResolver.

    Equal iff created by the same engine with the same number.
    """

    __slots__ = ('_token', 'number', 'is_attached', '_resolver', '__weakref__')

    def __init__(self, token: EngineToken, number: int, is_attached: bool, resolver: NamespaceResolver):
        self._token = token
        self.number = number
        self.is_attached = is_attached
        self._resolver = resolver

    def _check(self, token: EngineToken) -> None:
        if token is not self._token:
            raise LoaderMismatchError(f"Engine token does not match loader {self.number}.")

    def get_resolver(self, token: EngineToken) -> NamespaceResolver:
        self._check(token)
        return self._resolver

    def set_resolver(self, token: EngineToken, resolver: NamespaceResolver) -> Optional[NamespaceResolver]:
        """Replace the resolver; returns the previous one"""
        self._check(token)
        previous, self._resolver = self._resolver, resolver
        return previous

    def belongs_to(self, token: EngineToken) -> bool:
        return token is self._token

    def __eq__(self, other):
        if not isinstance(other, Loader):
            return NotImplemented
        return self._token is other._token and self.number == other.number

    def __hash__(self):
        return hash((id(self._token), self.number))

    def __repr__(self):
        return f"Loader[engine={self._token.label}, number={self.number}, attached={self.is_attached}]"
