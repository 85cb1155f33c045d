"""
Unit tests for Loader and its engine binding
"""

import pytest
import weakref


class TestLoader:
    """Test loader identity and token checks"""

    def test_equality_by_token_and_number(self):
        """Should be equal iff same engine token and number"""
        from script_layers.engine import EngineToken, Loader
        from script_layers.load import NamespaceResolver

        token = EngineToken('e1')
        other = EngineToken('e1')
        resolver = NamespaceResolver([])

        assert Loader(token, 1, True, resolver) == Loader(token, 1, False, resolver)
        assert hash(Loader(token, 1, True, resolver)) == hash(Loader(token, 1, True, resolver))
        assert Loader(token, 1, True, resolver) != Loader(token, 2, True, resolver)
        assert Loader(token, 1, True, resolver) != Loader(other, 1, True, resolver)

    def test_wrong_token_rejected(self):
        """Should refuse access with another engine's token"""
        from script_layers.core.errors import LoaderMismatchError
        from script_layers.engine import EngineToken, Loader
        from script_layers.load import NamespaceResolver

        loader = Loader(EngineToken('e1'), 0, True, NamespaceResolver([]))

        with pytest.raises(LoaderMismatchError):
            loader.get_resolver(EngineToken('e1'))
        with pytest.raises(ValueError):
            loader.set_resolver(EngineToken('e2'), NamespaceResolver([]))

    def test_set_resolver_returns_previous(self):
        """Should swap the resolver and return the old one"""
        from script_layers.engine import EngineToken, Loader
        from script_layers.load import NamespaceResolver

        token = EngineToken('e1')
        first, second = NamespaceResolver([]), NamespaceResolver([])
        loader = Loader(token, 0, True, first)

        assert loader.set_resolver(token, second) is first
        assert loader.get_resolver(token) is second
        assert loader.belongs_to(token)

    def test_weak_referenceable(self):
        """Should support weak references for attached tracking"""
        from script_layers.engine import EngineToken, Loader
        from script_layers.load import NamespaceResolver

        loader = Loader(EngineToken('e1'), 0, True, NamespaceResolver([]))

        assert weakref.ref(loader)() is loader
