"""
Unit tests for NamespaceResolver

Layer order, precedence, imports inside layered scripts, the on-demand
path for stale sources, cloning and release.
"""

import linecache
import pytest
import shutil
import sys
import tempfile
from pathlib import Path

X1 = 'def x():\n    return 1'
X2 = 'def x():\n    return 2'


class TestResolveByName:
    """Test resolution by qualified name"""

    def test_first_layer_wins(self):
        """Should resolve from the first layer that defines the name"""
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        resolver = NamespaceResolver([make_layer('L1', {'A': X1}), make_layer('L2', {'A': X2})])

        assert resolver.resolve_by_name('A').x() == 1

    def test_self_first_prefers_layers(self):
        """Should ask the layers before the outer namespace"""
        from script_layers.load import DictNamespace, NamespaceResolver, Precedence
        from tests.fixtures.layers import make_layer

        outer = DictNamespace({'A': 'from outer'})
        resolver = NamespaceResolver([make_layer('L1', {'A': X1})], outer, Precedence.SELF_FIRST)

        assert resolver.resolve_by_name('A').x() == 1

    def test_outer_first_prefers_outer(self):
        """Should ask the outer namespace before the layers"""
        from script_layers.load import DictNamespace, NamespaceResolver, Precedence
        from tests.fixtures.layers import make_layer

        outer = DictNamespace({'A': 'from outer'})
        resolver = NamespaceResolver([make_layer('L1', {'A': X1, 'B': 'y = 2'})], outer, Precedence.OUTER_FIRST)

        assert resolver.resolve_by_name('A') == 'from outer'
        assert resolver.resolve_by_name('B').y == 2

    def test_falls_back_to_import_system(self):
        """Should resolve real modules through the default outer namespace"""
        import json
        from script_layers.load import NamespaceResolver

        assert NamespaceResolver([]).resolve_by_name('json') is json

    def test_resolves_classes(self):
        """Should resolve module.Class names to the class object"""
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        layer = make_layer('L1', {'shapes': 'class Square:\n    def area(self):\n        return 4'})
        resolver = NamespaceResolver([layer])

        square = resolver.resolve_by_name('shapes.Square')

        assert square().area() == 4
        assert square.__module__ == 'shapes'

    def test_unknown_name_raises(self):
        """Should raise LoadError when nothing resolves the name"""
        from script_layers.core.errors import LoadError
        from script_layers.load import DictNamespace, NamespaceResolver

        with pytest.raises(LoadError) as exc_info:
            NamespaceResolver([], DictNamespace()).resolve_by_name('missing')
        assert exc_info.value.name == 'missing'

    def test_module_loaded_once_per_resolver(self):
        """Should return the same module object on repeated resolution"""
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        resolver = NamespaceResolver([make_layer('L1', {'A': X1})])

        assert resolver.resolve_by_name('A') is resolver.resolve_by_name('A')

    def test_execution_error_wrapped(self):
        """Should wrap errors raised while a module executes"""
        from script_layers.core.errors import LoadError
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        resolver = NamespaceResolver([make_layer('L1', {'bad': 'raise RuntimeError("boom")'})])

        with pytest.raises(LoadError, match='boom') as exc_info:
            resolver.resolve_by_name('bad')
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class TestImportsInsideScripts:
    """Test the import hook installed into layered modules"""

    def test_import_from_other_layer(self):
        """Should import layered modules across layers"""
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        main = make_layer('main', {'app': 'import helper\nfrom helper import name\nvalue = helper.x() + len(name)'})
        lib = make_layer('lib', {'helper': 'name = "abc"\ndef x():\n    return 10'})

        assert NamespaceResolver([main, lib]).resolve_by_name('app').value == 13

    def test_self_first_shadows_real_module(self):
        """Should let a layered module shadow a real one when self-first"""
        from script_layers.load import NamespaceResolver, Precedence
        from tests.fixtures.layers import make_layer

        layers = [make_layer('L', {'json': 'marker = "layered"', 'app': 'import json\nkind = getattr(json, "marker", "real")'})]

        assert NamespaceResolver(layers, precedence=Precedence.SELF_FIRST).resolve_by_name('app').kind == 'layered'

    def test_outer_first_keeps_real_module(self):
        """Should keep the real module when outer-first"""
        from script_layers.load import NamespaceResolver, Precedence
        from tests.fixtures.layers import make_layer

        layers = [make_layer('L', {'json': 'marker = "layered"', 'app': 'import json\nkind = getattr(json, "marker", "real")'})]

        assert NamespaceResolver(layers, precedence=Precedence.OUTER_FIRST).resolve_by_name('app').kind == 'real'

    def test_outer_first_falls_back_to_layers(self):
        """Should find layered modules the outer namespace lacks"""
        from script_layers.load import NamespaceResolver, Precedence
        from tests.fixtures.layers import make_layer

        layers = [make_layer('L', {'layered_helper_mod': 'v = 5', 'app': 'import layered_helper_mod\nv = layered_helper_mod.v'})]

        assert NamespaceResolver(layers, precedence=Precedence.OUTER_FIRST).resolve_by_name('app').v == 5

    def test_missing_import_fails_load(self):
        """Should fail loading a module whose import resolves nowhere"""
        from script_layers.core.errors import LoadError
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        resolver = NamespaceResolver([make_layer('L', {'app': 'import surely_not_a_real_module_name'})])

        with pytest.raises(LoadError) as exc_info:
            resolver.resolve_by_name('app')
        assert isinstance(exc_info.value.__cause__, ModuleNotFoundError)

    def test_dotted_import_of_layered_module_fails(self):
        """Should not treat layered modules as packages"""
        from script_layers.core.errors import LoadError
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        resolver = NamespaceResolver([make_layer('L', {'tools': 'x = 1', 'app': 'import tools.sub'})])

        with pytest.raises(LoadError, match='not a package'):
            resolver.resolve_by_name('app')

    def test_circular_imports(self):
        """Should support circular imports between layered modules"""
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        layer = make_layer('L', {
            'ping': 'import pong\ndef name():\n    return "ping"\ndef other():\n    return pong.name()',
            'pong': 'import ping\ndef name():\n    return "pong"',
        })

        assert NamespaceResolver([layer]).resolve_by_name('ping').other() == 'pong'

    def test_traceback_lines_available(self):
        """Should register script text for tracebacks"""
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        layer = make_layer('L', {'A': X1})
        module = NamespaceResolver([layer]).resolve_by_name('A')

        assert linecache.getline(module.__file__, 1) == 'def x():\n'


class TestResolveSource:
    """Test entry point and named resolution by source"""

    def test_entry_point_from_static_layer(self):
        """Should load the main module of a source in the layers"""
        from script_layers.load import NamespaceResolver
        from script_layers.source import TextSource
        from tests.fixtures.layers import make_layer

        resolver = NamespaceResolver([make_layer('L1', {'A': X1})])

        assert resolver.resolve_entry_point(TextSource(X1, 'A')).x() == 1

    def test_unknown_source_without_cache(self):
        """Should raise LoadError without an on-demand cache"""
        from script_layers.core.errors import LoadError
        from script_layers.load import NamespaceResolver
        from script_layers.source import TextSource

        with pytest.raises(LoadError):
            NamespaceResolver([]).resolve_entry_point(TextSource('x = 1'))

    def test_unknown_source_with_cache(self):
        """Should compile unknown sources on demand"""
        from script_layers.code import PythonCompiler
        from script_layers.load import NamespaceResolver, OnDemandCache
        from script_layers.source import TextSource

        resolver = NamespaceResolver([], on_demand_cache=OnDemandCache(PythonCompiler()))

        assert resolver.resolve_entry_point(TextSource('value = 7')).value == 7

    def test_named_requires_source_name(self):
        """Should only resolve names the source produced"""
        from script_layers.core.errors import LoadError
        from script_layers.load import NamespaceResolver
        from script_layers.source import TextSource
        from tests.fixtures.layers import make_layer

        text = 'class Tool:\n    kind = "tool"'
        layer = make_layer('L1', {'tools': text, 'other': 'class Other:\n    pass'})
        resolver = NamespaceResolver([layer])
        source = TextSource(text, 'tools')

        assert resolver.resolve_named(source, 'tools.Tool').kind == 'tool'
        with pytest.raises(LoadError):
            resolver.resolve_named(source, 'other.Other')

    def test_stale_source_served_from_cache_when_self_first(self):
        """Should recompile a changed source when the cache has precedence"""
        from script_layers.code import PythonCompiler
        from script_layers.load import NamespaceResolver, OnDemandCache, Precedence
        from tests.fixtures.mock_source import MockSource

        source = MockSource('/mock/a', 'value = 1', 'a')
        layer = PythonCompiler().compile([source])
        source.change('value = 2')

        resolver = NamespaceResolver([layer], on_demand_cache=OnDemandCache(PythonCompiler()),
                                     on_demand_precedence=Precedence.SELF_FIRST)

        assert resolver.resolve_entry_point(source).value == 2
        assert resolver.resolve_by_name('a').value == 1

    def test_stale_source_ignored_when_outer_first(self):
        """Should keep the static layer when the cache comes second"""
        from script_layers.code import PythonCompiler
        from script_layers.load import NamespaceResolver, OnDemandCache, Precedence
        from tests.fixtures.mock_source import MockSource

        source = MockSource('/mock/a', 'value = 1', 'a')
        layer = PythonCompiler().compile([source])
        source.change('value = 2')

        resolver = NamespaceResolver([layer], on_demand_cache=OnDemandCache(PythonCompiler()),
                                     on_demand_precedence=Precedence.OUTER_FIRST)

        assert resolver.resolve_entry_point(source).value == 1

    def test_top_loader_replaced_after_change(self):
        """Should load the new version after the source changes again"""
        from script_layers.code import PythonCompiler
        from script_layers.load import NamespaceResolver, OnDemandCache
        from tests.fixtures.mock_source import MockSource

        source = MockSource('/mock/b', 'value = 1', 'b')
        resolver = NamespaceResolver([], on_demand_cache=OnDemandCache(PythonCompiler()))

        first = resolver.resolve_entry_point(source)
        assert resolver.resolve_entry_point(source) is first

        source.change('value = 2')
        second = resolver.resolve_entry_point(source)

        assert second is not first
        assert second.value == 2

    def test_prepare_entry_point_does_not_execute(self):
        """Should create the main module without running it"""
        from script_layers.load import NamespaceResolver
        from script_layers.source import TextSource
        from tests.fixtures.layers import make_layer

        text = 'raise RuntimeError("not yet")'
        resolver = NamespaceResolver([make_layer('L1', {'lazy': text})])
        module = resolver.prepare_entry_point(TextSource(text, 'lazy'))

        assert module.__name__ == 'lazy'
        assert not hasattr(module, 'x')
        assert module.__loader__.get_source('lazy') == text


class TestCloneAndRelease:
    """Test cloning and releasing resolvers"""

    def test_clone_loads_afresh(self):
        """Should share layers but not loaded modules"""
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        resolver = NamespaceResolver([make_layer('L1', {'A': X1})])
        clone = resolver.clone()

        assert clone.layers == resolver.layers
        assert clone.resolve_by_name('A') is not resolver.resolve_by_name('A')
        assert clone.on_demand_cache is resolver.on_demand_cache

    def test_clone_with_separate_cache(self):
        """Should copy the on-demand cache"""
        from script_layers.code import PythonCompiler
        from script_layers.load import NamespaceResolver, OnDemandCache

        cache = OnDemandCache(PythonCompiler())
        resolver = NamespaceResolver([], on_demand_cache=cache)
        clone = resolver.clone_with_separate_cache()

        assert clone.on_demand_cache is not None
        assert clone.on_demand_cache is not cache

    def test_release(self):
        """Should pass every loaded module to the releaser and forget it"""
        from script_layers.load import ArtifactReleaser, NamespaceResolver
        from tests.fixtures.layers import make_layer

        released = []

        class RecordingReleaser(ArtifactReleaser):
            def release(self, module):
                released.append(module.__name__)

        resolver = NamespaceResolver([make_layer('L1', {'A': X1, 'B': 'y = 1'})], releaser=RecordingReleaser())
        first = resolver.resolve_by_name('A')
        resolver.resolve_by_name('B')
        assert resolver.loaded_count == 2

        resolver.release()

        assert sorted(released) == ['A', 'B']
        assert resolver.loaded_count == 0
        assert resolver.resolve_by_name('A') is not first

    def test_default_releaser_clears_linecache(self):
        """Should drop registered traceback lines on release"""
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        resolver = NamespaceResolver([make_layer('L1', {'A': X1})])
        filename = resolver.resolve_by_name('A').__file__
        assert filename in linecache.cache

        resolver.release()

        assert filename not in linecache.cache


class TestNamespaces:
    """Test outer namespace implementations"""

    def test_dict_namespace(self):
        """Should resolve from its mapping"""
        from script_layers.core.errors import LoadError
        from script_layers.load import DictNamespace

        namespace = DictNamespace({'a': 1})

        assert namespace.resolve('a') == 1
        assert namespace.contains('a')
        assert not namespace.contains('b')
        with pytest.raises(LoadError):
            namespace.resolve('b')
        with pytest.raises(ModuleNotFoundError):
            namespace.import_module('b')

    def test_import_namespace_resolves_attributes(self):
        """Should resolve module.attribute names"""
        from collections import OrderedDict
        from script_layers.load import ImportNamespace

        namespace = ImportNamespace()

        assert namespace.resolve('collections.OrderedDict') is OrderedDict
        assert namespace.contains('collections.OrderedDict')
        assert not namespace.contains('collections.NoSuchThing')

    def test_import_namespace_exclude(self):
        """Should hide excluded top-level names"""
        from script_layers.core.errors import LoadError
        from script_layers.load import ImportNamespace

        namespace = ImportNamespace(exclude=['json'])

        assert not namespace.contains('json')
        with pytest.raises(LoadError):
            namespace.resolve('json.decoder')
        with pytest.raises(ModuleNotFoundError):
            namespace.import_module('json')

    def test_resolver_is_a_namespace(self):
        """Should act as an outer namespace for another resolver"""
        from script_layers.load import NamespaceResolver
        from tests.fixtures.layers import make_layer

        base = NamespaceResolver([make_layer('base', {'lib': 'v = 3'})])
        top = NamespaceResolver([make_layer('top', {'app': 'import lib\nv = lib.v * 2'})], outer=base)

        assert top.contains('lib')
        assert top.resolve_by_name('app').v == 6


class TestOuterFailures:
    """Test that a failing outer namespace counts as not found"""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        (self.temp_dir / 'outer_raises_on_import.py').write_text("raise RuntimeError('boom')\n")

    def teardown_method(self):
        sys.modules.pop('outer_raises_on_import', None)
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_import_namespace_wraps_import_errors(self, monkeypatch):
        """Should report a module that raises on import as a LoadError"""
        from script_layers.core.errors import LoadError
        from script_layers.load import ImportNamespace

        monkeypatch.syspath_prepend(str(self.temp_dir))
        namespace = ImportNamespace()

        with pytest.raises(LoadError) as exc_info:
            namespace.resolve('outer_raises_on_import')

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert not namespace.contains('outer_raises_on_import.anything')

    def test_import_namespace_empty_name(self):
        """Should report an empty name as a LoadError"""
        from script_layers.core.errors import LoadError
        from script_layers.load import ImportNamespace

        with pytest.raises(LoadError):
            ImportNamespace().resolve('')

    def test_outer_first_falls_back_when_outer_module_breaks(self, monkeypatch):
        """Should resolve from the layers when the outer module fails to import"""
        from script_layers.load import NamespaceResolver, Precedence
        from tests.fixtures.layers import make_layer

        monkeypatch.syspath_prepend(str(self.temp_dir))
        layer = make_layer('L1', {'outer_raises_on_import': X1})
        resolver = NamespaceResolver([layer], precedence=Precedence.OUTER_FIRST)

        assert resolver.resolve_by_name('outer_raises_on_import').x() == 1

    def test_failing_custom_namespace(self):
        """Should treat any exception from a custom outer namespace as not found"""
        from script_layers.core.errors import LoadError
        from script_layers.load import NamespaceResolver, OuterNamespace, Precedence
        from tests.fixtures.layers import make_layer

        class BrokenNamespace(OuterNamespace):
            def resolve(self, name):
                raise RuntimeError('outer is down')

        outer = BrokenNamespace()
        outer_first = NamespaceResolver([make_layer('L1', {'A': X1})], outer, Precedence.OUTER_FIRST)
        self_first = NamespaceResolver([], outer, Precedence.SELF_FIRST)

        assert outer_first.resolve_by_name('A').x() == 1
        assert not outer.contains('A')
        with pytest.raises(LoadError):
            self_first.resolve_by_name('A')


class TestReleaseSource:
    """Test dropping what is kept for one ad hoc source"""

    def test_release_source(self):
        """Should drop the top loader and the cache entry for a source"""
        from script_layers.code import PythonCompiler
        from script_layers.load import NamespaceResolver, OnDemandCache
        from script_layers.source import TextSource

        cache = OnDemandCache(PythonCompiler())
        resolver = NamespaceResolver([], on_demand_cache=cache)
        source = TextSource('value = 7')
        other = TextSource('value = 8')

        first = resolver.resolve_entry_point(source)
        resolver.resolve_entry_point(other)
        assert resolver.loaded_count == 2

        resolver.release_source(source)

        assert resolver.loaded_count == 1
        assert cache.get_stats()['size'] == 1
        again = resolver.resolve_entry_point(source)
        assert again is not first
        assert again.value == 7

    def test_release_unknown_source(self):
        """Should ignore sources that were never resolved"""
        from script_layers.load import NamespaceResolver
        from script_layers.source import TextSource

        NamespaceResolver([]).release_source(TextSource('value = 1'))
