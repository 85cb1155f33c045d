"""
Layered Engine

Owns the current layers, issues loaders bound to itself, and swaps the
layer set atomically.

Design:
- One reader/writer lock: the read lock is held only while fetching a
  loader's resolver; the write lock only while repointing loaders
- Conflict analysis and compilation happen before the write lock, so a
  rejected or failing update leaves the engine untouched
- set_layers() is the single swap primitive; set_layers_from_sources()
  only compiles its input and delegates
- Attached loaders (weakly tracked) follow every swap, each with its own
  resolver over the new layers; detached loaders keep the layers they
  were created with and have a private on-demand cache
- Resolution itself runs outside any engine lock
"""

from itertools import count
from typing import Any, Iterable, List, Optional, Sequence
import threading
import weakref

from ..code.compiler import PythonCompiler
from ..code.conflicts import ConflictAnalyzer
from ..code.layer import CompiledLayer
from ..core.errors import CompileError, LoaderMismatchError, NameConflictError
from ..core.self_logger import SelfLogger
from ..load.namespace import ImportNamespace, OuterNamespace
from ..load.on_demand import OnDemandCache
from ..load.releaser import ArtifactReleaser
from ..load.resolver import NamespaceResolver
from ..source.source import Source
from .config import EngineConfig
from .loader import EngineToken, Loader
from .rwlock import ReadWriteLock

_engine_numbers = count(1)


class LayeredEngine:
    """
    Engine resolving names against ordered compiled layers.

    Args:
        config: EngineConfig (default: EngineConfig())
        compiler: Compiler for set_layers_from_sources and the on-demand cache
        outer: Outer namespace (default: Python's import system)
        releaser: ArtifactReleaser for released loaders
        logger: SelfLogger (default: one per engine, under config.log_dir)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        compiler=None,
        outer: Optional[OuterNamespace] = None,
        releaser: Optional[ArtifactReleaser] = None,
        logger: Optional[SelfLogger] = None,
    ):
        self.config = config or EngineConfig()
        self.compiler = compiler or PythonCompiler()
        self.outer = outer if outer is not None else ImportNamespace()
        self.releaser = releaser

        self._token = EngineToken(f"engine-{next(_engine_numbers)}")
        self.logger = logger or SelfLogger(self._token.label, self.config.log_dir)

        self._analyzer = ConflictAnalyzer(
            check_cross_layer=not self.config.allow_cross_layer_conflicts,
            check_outer=not self.config.allow_outer_conflicts,
        )

        self._on_demand: Optional[OnDemandCache] = None
        if self.config.on_demand_cache:
            self._on_demand = OnDemandCache(self.compiler, latency=self.config.on_demand_latency,
                                            logger=self.logger)

        self._lock = ReadWriteLock()
        self._registry_lock = threading.Lock()
        self._loader_numbers = count()

        self._layers: tuple = ()
        self._current = self._new_resolver(self._layers)
        if self._on_demand is not None:
            self._on_demand.set_parent(self._current)

        self._loader = Loader(self._token, next(self._loader_numbers), True, self._current)
        self._attached: 'weakref.WeakSet[Loader]' = weakref.WeakSet([self._loader])
        self._detached: set = set()

    @property
    def loader(self) -> Loader:
        """The default loader (number 0, always attached)"""
        return self._loader

    def get_loader(self) -> Loader:
        return self._loader

    @property
    def layers(self) -> Sequence[CompiledLayer]:
        return self._layers

    @property
    def on_demand_cache(self) -> Optional[OnDemandCache]:
        return self._on_demand

    def _new_resolver(self, layers: Sequence[CompiledLayer], outer: Optional[OuterNamespace] = None) -> NamespaceResolver:
        return NamespaceResolver(
            layers,
            outer=outer if outer is not None else self.outer,
            precedence=self.config.precedence,
            on_demand_cache=self._on_demand,
            on_demand_precedence=self.config.on_demand_precedence,
            releaser=self.releaser,
        )

    def new_attached_loader(self) -> Loader:
        """New loader that follows every layer update"""
        with self._lock.write():
            loader = Loader(self._token, next(self._loader_numbers), True, self._current.clone())
            self._attached.add(loader)
        self.logger.debug("Created attached loader", loader=loader.number)
        return loader

    def new_detached_loader(self) -> Loader:
        """New loader pinned to the current layers, with its own on-demand cache"""
        with self._lock.read():
            resolver = self._current.clone_with_separate_cache()
        loader = Loader(self._token, next(self._loader_numbers), False, resolver)
        with self._registry_lock:
            self._detached.add(loader)
        self.logger.debug("Created detached loader", loader=loader.number)
        return loader

    def set_layers(self, layers: Iterable[CompiledLayer]) -> None:
        """
        Replace the layers atomically.

        Args:
            layers: Compiled layers; index 0 is consulted first

        Raises:
            NameConflictError: If the configured policy forbids a conflict
                               (engine state is unchanged)
        """
        layers = tuple(layers)
        report = self._analyzer.analyze(layers, self.outer)
        if report.count > 0:
            self.logger.warning("Rejected layers with name conflicts", conflicts=report.count,
                                layers=','.join(l.name for l in layers))
            raise NameConflictError(report.cross_layer, report.outer)

        with self._lock.write():
            current = self._new_resolver(layers)
            self._layers = layers
            self._current = current
            attached = list(self._attached)
            for loader in attached:
                loader.set_resolver(self._token, current if loader is self._loader else current.clone())
            if self._on_demand is not None:
                self._on_demand.set_parent(current)

        self.logger.info("Layers set", layers=','.join(l.name for l in layers),
                         attached_loaders=len(attached))

    def set_layers_from_sources(self, sources_layers: Iterable) -> None:
        """
        Compile Sources providers into layers, then set them.

        Each provider is compiled by its own compiler if it has one,
        otherwise by the engine's, against a namespace of the layers
        compiled before it.

        Raises:
            CompileError: If any provider fails to compile (engine unchanged)
            NameConflictError: As for set_layers()
        """
        layers: List[CompiledLayer] = []
        for sources in sources_layers:
            compiler = getattr(sources, 'compiler', None) or self.compiler
            namespace = self._new_resolver(list(layers))
            try:
                layer = compiler.compile(sources, namespace)
            except CompileError as e:
                self.logger.error("Compile failed", sources=sources.name, error=str(e))
                raise
            self.logger.info("Compiled layer", sources=sources.name, names=len(layer.names))
            layers.append(layer)
        self.set_layers(layers)

    def _resolver_for(self, loader: Loader) -> NamespaceResolver:
        if not loader.belongs_to(self._token):
            raise LoaderMismatchError(f"{loader!r} was not created by this engine.")
        with self._lock.read():
            return loader.get_resolver(self._token)

    def resolve_entry_point(self, loader: Loader, source: Source) -> Any:
        """Load the main module of a source through a loader"""
        return self._resolver_for(loader).resolve_entry_point(source)

    def resolve_named(self, loader: Loader, source: Source, name: str) -> Any:
        """Load a name produced by a source through a loader"""
        return self._resolver_for(loader).resolve_named(source, name)

    def resolve_by_name(self, loader: Loader, name: str) -> Any:
        """Load a name from the layers or the outer namespace through a loader"""
        return self._resolver_for(loader).resolve_by_name(name)

    def prepare_entry_point(self, loader: Loader, source: Source) -> Any:
        """Main module of a source, created but not executed"""
        return self._resolver_for(loader).prepare_entry_point(source)

    def release_source(self, loader: Loader, source: Source) -> None:
        """Forget what the loader and the on-demand cache keep for an ad hoc source"""
        self._resolver_for(loader).release_source(source)

    def as_namespace(self, loader: Optional[Loader] = None) -> 'LoaderNamespace':
        """Outer-namespace view of this engine, for use by another engine"""
        return LoaderNamespace(self, loader or self._loader)

    def release_loader(self, loader: Loader) -> None:
        """
        Release the modules a loader has loaded and stop tracking it.

        The default loader stays attached; it reloads on next use.
        """
        resolver = self._resolver_for(loader)
        if loader is not self._loader:
            with self._lock.write():
                self._attached.discard(loader)
            with self._registry_lock:
                self._detached.discard(loader)
        resolver.release()
        self.logger.debug("Released loader", loader=loader.number)

    def close(self) -> None:
        """Release every tracked loader"""
        with self._lock.write():
            loaders = list(self._attached)
        with self._registry_lock:
            loaders.extend(self._detached)
            self._detached.clear()
        for loader in loaders:
            loader.get_resolver(self._token).release()
        self.logger.info("Engine closed", loaders=len(loaders))

    def __repr__(self):
        return f"LayeredEngine[{self._token.label}, layers={[l.name for l in self._layers]}]"


class LoaderNamespace(OuterNamespace):
    """Outer namespace backed by an engine loader; always sees current layers"""

    def __init__(self, engine: LayeredEngine, loader: Loader):
        self.engine = engine
        self.loader = loader

    def resolve(self, name: str) -> Any:
        return self.engine.resolve_by_name(self.loader, name)

    def contains(self, name: str) -> bool:
        return self.engine._resolver_for(self.loader).contains(name)

    def import_module(self, name: str, globals=None, locals=None, fromlist=(), level: int = 0) -> Any:
        return self.engine._resolver_for(self.loader).import_module(name, globals, locals, fromlist, level)
