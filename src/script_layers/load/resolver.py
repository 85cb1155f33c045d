"""
Namespace resolver

Resolves names and sources against an ordered list of compiled layers,
an outer namespace and an optional on-demand cache.

Design:
- Layers are consulted in list order: the first layer that declares a
  source or defines a name wins
- Precedence decides whether the outer namespace is asked before or
  after the layers (resolve_by_name and imports inside scripts)
- A source whose watermark moved since compile time is served from the
  on-demand cache (unless its precedence is outer-first, in which case
  the static layer always wins)
- Each resolver has its own loaded modules; clones share layers but
  load everything afresh
- Layered modules get a private __builtins__ whose __import__ is this
  resolver's import_module, so their imports see the layers too
"""

from types import ModuleType
from typing import Any, Dict, List, Optional, Sequence
import builtins
import importlib.util
import linecache
import marshal
import threading

from ..code.layer import CompiledLayer
from ..core.errors import LoadError
from ..source.source import Source
from .namespace import ImportNamespace, OuterNamespace, is_missing
from .precedence import Precedence
from .releaser import ArtifactReleaser, DefaultArtifactReleaser

_NOT_FOUND = object()


class LayerLoader:
    """
    Loads the artifacts of one layer on behalf of one resolver.

    Also acts as the importlib loader of the modules it creates
    (get_code/get_source), which gives tracebacks their source lines.
    """

    def __init__(self, resolver: 'NamespaceResolver', layer: CompiledLayer, lock: threading.RLock):
        self.resolver = resolver
        self.layer = layer
        self._lock = lock
        self._modules: Dict[str, ModuleType] = {}

    def load(self, name: str) -> Any:
        """Load a module or class artifact by qualified name"""
        artifact = self.layer.get_artifact(name)
        if artifact is None:
            raise LoadError(f"Name {name} is not defined in layer {self.layer.name}.", name=name)
        module = self.load_module(artifact.module_name)
        if artifact.is_module:
            return module
        attr = name[len(artifact.module_name) + 1:]
        try:
            return getattr(module, attr)
        except AttributeError:
            raise LoadError(f"Class {attr} not found in module {artifact.module_name}.", name=name) from None

    def load_module(self, name: str) -> ModuleType:
        with self._lock:
            module = self._modules.get(name)
            if module is not None:
                return module

            code = self.get_code(name)
            module = self.new_module(name)
            source = self.layer.get_artifact(name).source

            # Registered before executing so circular imports within the layers work
            self._modules[name] = module
            try:
                exec(code, module.__dict__)
            except Exception as e:
                del self._modules[name]
                raise LoadError(
                    f"Failed to load {name} from {source.id}: {type(e).__name__}: {e}",
                    name=name, source=source,
                ) from e
            return module

    def new_module(self, name: str) -> ModuleType:
        """Create an empty, not yet executed module for a module artifact"""
        artifact = self.layer.get_artifact(name)
        if artifact is None or not artifact.is_module:
            raise LoadError(f"No module {name} in layer {self.layer.name}.", name=name)
        source = artifact.source

        module = ModuleType(name)
        module.__file__ = source.id
        module.__loader__ = self
        module.__spec__ = importlib.util.spec_from_loader(name, self, origin=source.id)
        module.__builtins__ = self.resolver.builtins
        if artifact.text is not None:
            linecache.cache[source.id] = (
                len(artifact.text), None, artifact.text.splitlines(True), source.id,
            )
        return module

    def get_code(self, fullname: str):
        artifact = self.layer.get_artifact(fullname)
        if artifact is None or not artifact.is_module:
            raise ImportError(f"No module {fullname} in layer {self.layer.name}", name=fullname)
        return marshal.loads(artifact.data)

    def get_source(self, fullname: str) -> Optional[str]:
        artifact = self.layer.get_artifact(fullname)
        return artifact.text if artifact is not None else None

    def is_package(self, fullname: str) -> bool:
        return False

    @property
    def loaded_count(self) -> int:
        return len(self._modules)

    def release(self, releaser: ArtifactReleaser) -> None:
        with self._lock:
            modules = list(self._modules.values())
            self._modules.clear()
        for module in modules:
            releaser.release(module)


class NamespaceResolver(OuterNamespace):
    """
    Resolution logic for one loader.

    Args:
        layers: Compiled layers, first one wins
        outer: Outer namespace (default: Python's import system)
        precedence: Outer-first or self-first
        on_demand_cache: Optional OnDemandCache for stale or unknown sources
        on_demand_precedence: Precedence between static layers and the cache
        releaser: Called for each loaded module on release()

    One top loader is kept per source served from the on-demand cache; they
    accumulate until release() or release_source().
    """

    def __init__(
        self,
        layers: Sequence[CompiledLayer] = (),
        outer: Optional[OuterNamespace] = None,
        precedence: Precedence = Precedence.SELF_FIRST,
        on_demand_cache=None,
        on_demand_precedence: Precedence = Precedence.OUTER_FIRST,
        releaser: Optional[ArtifactReleaser] = None,
    ):
        self.layers = tuple(layers)
        self.outer = outer if outer is not None else ImportNamespace()
        self.precedence = precedence
        self.on_demand_cache = on_demand_cache
        self.on_demand_precedence = on_demand_precedence
        self.releaser = releaser or DefaultArtifactReleaser()

        self._lock = threading.RLock()
        self._layer_loaders: List[LayerLoader] = [LayerLoader(self, layer, self._lock) for layer in self.layers]
        self._top_loaders: Dict[Source, LayerLoader] = {}

        self.builtins = dict(builtins.__dict__)
        self.builtins['__import__'] = self.import_module

    def resolve_entry_point(self, source: Source) -> Any:
        """Load the main module of a source"""
        return self._resolve_source(source, None)

    def resolve_named(self, source: Source, name: str) -> Any:
        """Load a name that the given source produced"""
        return self._resolve_source(source, name)

    def resolve_by_name(self, name: str) -> Any:
        """
        Load a name from the layers or the outer namespace.

        Never consults the on-demand cache. Any failure of the outer
        namespace counts as "not found there".

        Raises:
            LoadError: If neither side resolves the name
        """
        if self.precedence is Precedence.OUTER_FIRST:
            found = self._resolve_outer(name)
            if found is not _NOT_FOUND:
                return found
            layer_loader = self._find_loader_for_name(name)
            if layer_loader is not None:
                return layer_loader.load(name)
        else:
            layer_loader = self._find_loader_for_name(name)
            if layer_loader is not None:
                return layer_loader.load(name)
            found = self._resolve_outer(name)
            if found is not _NOT_FOUND:
                return found
        raise LoadError(f"Could not resolve name: {name}", name=name)

    def _resolve_outer(self, name: str) -> Any:
        try:
            return self.outer.resolve(name)
        except Exception:
            return _NOT_FOUND

    def resolve(self, name: str) -> Any:
        return self.resolve_by_name(name)

    def contains(self, name: str) -> bool:
        if self._find_loader_for_name(name) is not None:
            return True
        try:
            return bool(self.outer.contains(name))
        except Exception:
            return False

    def import_module(self, name: str, globals=None, locals=None, fromlist=(), level: int = 0) -> Any:
        """`__import__` for layered modules, honoring the precedence"""
        if level != 0:
            raise ImportError(f"Relative import of {name!r} is not supported in layered scripts.")

        if self.precedence is Precedence.OUTER_FIRST:
            try:
                return self.outer.import_module(name, globals, locals, fromlist, level)
            except ModuleNotFoundError as e:
                if not is_missing(e, name):
                    raise
                module = self._import_from_layers(name)
                if module is None:
                    raise
                return module

        module = self._import_from_layers(name)
        if module is not None:
            return module
        return self.outer.import_module(name, globals, locals, fromlist, level)

    def _import_from_layers(self, name: str) -> Optional[ModuleType]:
        top = name.partition('.')[0]
        layer_loader = self._find_loader_for_name(top)
        if layer_loader is None or not layer_loader.layer.get_artifact(top).is_module:
            return None
        if top != name:
            raise ModuleNotFoundError(f"No module named {name!r}; {top!r} is not a package", name=name)
        return layer_loader.load_module(top)

    def _find_loader_for_name(self, name: str) -> Optional[LayerLoader]:
        for layer_loader in self._layer_loaders:
            if layer_loader.layer.has_artifact(name):
                return layer_loader
        return None

    def _find_loader_for_source(self, source: Source) -> Optional[LayerLoader]:
        for layer_loader in self._layer_loaders:
            if layer_loader.layer.is_for_source(source):
                return layer_loader
        return None

    def prepare_entry_point(self, source: Source) -> ModuleType:
        """
        Main module of a source, created but not executed.

        Chooses the layer exactly as resolve_entry_point() does; the
        caller executes the module code itself (e.g. with bindings).
        """
        layer_loader = self._find_loader_for_resolution(source)
        return layer_loader.new_module(layer_loader.layer.get_main_name(source))

    def _resolve_source(self, source: Source, name: Optional[str]) -> Any:
        layer_loader = self._find_loader_for_resolution(source)
        info = layer_loader.layer.get_source_info(source)
        if name is None:
            name = info.main_name
        elif name not in info.names:
            raise LoadError(f"Source {source.id} does not define {name}.", name=name, source=source)
        return layer_loader.load(name)

    def _find_loader_for_resolution(self, source: Source) -> LayerLoader:
        static = self._find_loader_for_source(source)
        cache = self.on_demand_cache

        if static is not None and (
            cache is None
            or self.on_demand_precedence is Precedence.OUTER_FIRST
            or static.layer.get_last_modified_at_compile_time(source) == source.last_modified
        ):
            return static
        if cache is None:
            raise LoadError(f"Source not found: {source!r}", source=source)
        return self._get_top_loader(source, cache.get_up_to_date_layer(source))

    def _get_top_loader(self, source: Source, layer: CompiledLayer) -> LayerLoader:
        with self._lock:
            layer_loader = self._top_loaders.get(source)
            if layer_loader is not None and layer_loader.layer is layer:
                return layer_loader
            if layer_loader is not None:
                layer_loader.release(self.releaser)
            layer_loader = LayerLoader(self, layer, self._lock)
            self._top_loaders[source] = layer_loader
            return layer_loader

    def release_source(self, source: Source) -> None:
        """Drop the on-demand top loader and cache entry kept for a source"""
        with self._lock:
            layer_loader = self._top_loaders.pop(source, None)
        if layer_loader is not None:
            layer_loader.release(self.releaser)
        if self.on_demand_cache is not None:
            self.on_demand_cache.discard(source)

    def clone(self) -> 'NamespaceResolver':
        """Same layers and cache, nothing loaded yet"""
        return NamespaceResolver(self.layers, self.outer, self.precedence, self.on_demand_cache,
                                 self.on_demand_precedence, self.releaser)

    def clone_with_separate_cache(self) -> 'NamespaceResolver':
        """Like clone(), with a private copy of the on-demand cache"""
        cache = self.on_demand_cache.clone() if self.on_demand_cache is not None else None
        return NamespaceResolver(self.layers, self.outer, self.precedence, cache,
                                 self.on_demand_precedence, self.releaser)

    def release(self, releaser: Optional[ArtifactReleaser] = None) -> None:
        """Drop every loaded module, passing each to the releaser"""
        releaser = releaser or self.releaser
        with self._lock:
            layer_loaders = self._layer_loaders + list(self._top_loaders.values())
            self._top_loaders.clear()
        for layer_loader in layer_loaders:
            layer_loader.release(releaser)

    @property
    def loaded_count(self) -> int:
        return sum(ll.loaded_count for ll in self._layer_loaders + list(self._top_loaders.values()))

    def __repr__(self):
        return (f"NamespaceResolver[layers={[l.name for l in self.layers]}, "
                f"precedence={self.precedence.name}]")
