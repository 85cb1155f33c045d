"""
Script Runtime

Convenience facade over a LayeredEngine for everyday use.

The runtime:
- Keeps the engine's layers in sync with a list of Sources providers
  (directories, URL lists, fixed sets), checked at most once per latency
- Loads scripts from text, files or URLs (static layers first, the
  on-demand cache for anything new or changed)
- Wraps loaded modules as Scripts and runs them with bindings
- Logs every run and every failed update
"""

from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, Iterable, List, Optional
import threading
import time

from ..code.compiler import RESULT_NAME
from ..core.errors import CreateError, ScriptLayersError
from ..engine.config import EngineConfig
from ..engine.layered_engine import LayeredEngine
from ..engine.loader import Loader
from ..load.resolver import LayerLoader
from ..source.source import Source, SourceFactory
from ..source.util import urls_to_source_set
from ..sources.sources import BaseSources, DirBasedSources, DirMode, FixedSetSources

UpdateNotifier = Callable[[Optional[ScriptLayersError]], None]


class Script:
    """
    A layered script, ready to run.

    Each run() executes the script body in a fresh namespace seeded with
    the bindings. If the body defines a callable `run`, it is called with
    the bindings and its value returned; otherwise the value of the
    trailing expression (if any) is returned.
    """

    def __init__(self, module: ModuleType, runtime: Optional['ScriptRuntime'] = None):
        if not isinstance(getattr(module, '__loader__', None), LayerLoader):
            raise CreateError(f"Could not create script from {module!r}: not a layered script.")
        self.module = module
        self.runtime = runtime

    @property
    def name(self) -> str:
        return self.module.__name__

    def run(self, **bindings) -> Any:
        module = self.module
        code = module.__loader__.get_code(module.__name__)
        namespace = {
            '__name__': module.__name__,
            '__file__': module.__file__,
            '__loader__': module.__loader__,
            '__spec__': module.__spec__,
            '__builtins__': module.__builtins__,
            **bindings,
        }
        exec(code, namespace)

        entry = namespace.get('run')
        if callable(entry):
            return entry(**bindings)
        return namespace.get(RESULT_NAME)

    def __repr__(self):
        return f"Script[{self.name}]"


class ScriptRuntime:
    """
    Layered script runtime.

    Args:
        sources_layers: Sources providers, one per layer (index 0 wins)
        config: EngineConfig (default: EngineConfig())
        compiler: Compiler for layers and on-demand compiles
        outer: Outer namespace for the engine
        source_factory: SourceFactory used by the source_from_* helpers
        latency: Seconds between checks of the sources layers
                 (default: config.sources_latency)
        update_notifier: Called after each update attempt with the error
                         (None on success)
    """

    def __init__(
        self,
        sources_layers: Iterable[BaseSources] = (),
        config: Optional[EngineConfig] = None,
        compiler=None,
        outer=None,
        source_factory: Optional[SourceFactory] = None,
        latency: Optional[float] = None,
        update_notifier: Optional[UpdateNotifier] = None,
    ):
        self.config = config or EngineConfig()
        self.engine = LayeredEngine(self.config, compiler, outer)
        self.logger = self.engine.logger
        self.source_factory = source_factory or SourceFactory()
        self.sources_layers: List[BaseSources] = list(sources_layers)
        self.latency = self.config.sources_latency if latency is None else latency
        self.update_notifier = update_notifier

        self.last_update_error: Optional[ScriptLayersError] = None
        self._last_modified: List[Optional[float]] = [None] * len(self.sources_layers)
        self._last_checked: Optional[float] = None
        self._update_lock = threading.Lock()

        self.update_if_sources_modified()

    @classmethod
    def from_dir(cls, directory: Path | str, dir_mode: DirMode = DirMode.NO_SUBDIRS,
                 config: Optional[EngineConfig] = None, **kwargs) -> 'ScriptRuntime':
        """Runtime with one layer: the scripts in a directory"""
        return cls.from_dirs([directory], dir_mode, config, **kwargs)

    @classmethod
    def from_dirs(cls, directories: Iterable[Path | str], dir_mode: DirMode = DirMode.NO_SUBDIRS,
                  config: Optional[EngineConfig] = None, **kwargs) -> 'ScriptRuntime':
        """Runtime with one layer per directory, first directory wins"""
        config = config or EngineConfig()
        layers = [DirBasedSources(d, dir_mode, latency=config.sources_latency) for d in directories]
        return cls(layers, config, **kwargs)

    @classmethod
    def from_urls(cls, urls: Iterable[str], track_url_content: bool = False,
                  config: Optional[EngineConfig] = None, **kwargs) -> 'ScriptRuntime':
        """Runtime with one layer of URL sources"""
        config = config or EngineConfig()
        factory = kwargs.pop('source_factory', None) or SourceFactory(track_url_content=track_url_content)
        layer = FixedSetSources(urls_to_source_set(urls, factory), name='urls',
                                latency=config.sources_latency)
        return cls([layer], config, source_factory=factory, **kwargs)

    @classmethod
    def from_sources(cls, sources: Iterable[Source], config: Optional[EngineConfig] = None,
                     **kwargs) -> 'ScriptRuntime':
        """Runtime with one layer of fixed sources"""
        config = config or EngineConfig()
        layer = FixedSetSources(sources, name='sources', latency=config.sources_latency)
        return cls([layer], config, **kwargs)

    def _checked_recently(self) -> bool:
        if self._last_checked is None:
            return False
        diff = time.time() - self._last_checked
        return 0 <= diff < self.latency

    def update_if_sources_modified(self) -> None:
        """Recompile and set the layers if any Sources provider changed"""
        if self._checked_recently():
            return

        last_modified = [sources.get_last_modified() for sources in self.sources_layers]
        if self._last_checked is not None and last_modified == self._last_modified:
            self._last_checked = time.time()
            return

        with self._update_lock:
            if self._checked_recently():
                return

            self._last_modified = last_modified
            try:
                self.engine.set_layers_from_sources(self.sources_layers)
                self.last_update_error = None
            except ScriptLayersError as e:
                self.last_update_error = e
            except Exception as e:
                error = ScriptLayersError(f"Failed to update runtime: {type(e).__name__}: {e}")
                error.__cause__ = e
                self.last_update_error = error

            if self.last_update_error is not None:
                self.logger.error("Update from sources failed", error=str(self.last_update_error))
            self._last_checked = time.time()

            if self.update_notifier is not None:
                self.update_notifier(self.last_update_error)

    @property
    def loader(self) -> Loader:
        return self.engine.loader

    def new_attached_loader(self) -> Loader:
        return self.engine.new_attached_loader()

    def new_detached_loader(self) -> Loader:
        return self.engine.new_detached_loader()

    def release_loader(self, loader: Loader) -> None:
        self.engine.release_loader(loader)

    def source_from_text(self, text: str, name: Optional[str] = None) -> Source:
        return self.source_factory.from_text(text, name)

    def source_from_file(self, path: Path | str) -> Source:
        return self.source_factory.from_file(path)

    def source_from_url(self, url: str) -> Source:
        return self.source_factory.from_url(url)

    def _as_source(self, script: Source | Path | str) -> Source:
        if isinstance(script, Source):
            return script
        if isinstance(script, Path):
            return self.source_from_file(script)
        if isinstance(script, str):
            return self.source_from_text(script)
        raise TypeError(f"Expected Source, Path or script text, got {type(script).__name__}")

    def load(self, script: Source | Path | str, loader: Optional[Loader] = None) -> ModuleType:
        """
        Load the main module of a script.

        Args:
            script: Source, file path, or script text
            loader: Loader to use (default: the engine's default loader)

        Raises:
            CompileError: If an on-demand compile fails
            LoadError: If the module can't be loaded
        """
        self.update_if_sources_modified()
        return self.engine.resolve_entry_point(loader or self.loader, self._as_source(script))

    def load_named(self, script: Source | Path | str, name: str, loader: Optional[Loader] = None) -> Any:
        """Load a module or class that the given script produced"""
        self.update_if_sources_modified()
        return self.engine.resolve_named(loader or self.loader, self._as_source(script), name)

    def load_name(self, name: str, loader: Optional[Loader] = None) -> Any:
        """Load a module or class by name from the layers or the outer namespace"""
        self.update_if_sources_modified()
        return self.engine.resolve_by_name(loader or self.loader, name)

    def create(self, script: ModuleType | Source | Path | str, loader: Optional[Loader] = None) -> Script:
        """
        Create a runnable Script without executing it.

        Args:
            script: Layered module, Source, file path, or script text
            loader: Loader to use (default: the engine's default loader)

        Raises:
            CreateError: If a module is given that is not a layered script
            CompileError: If an on-demand compile fails
        """
        if isinstance(script, ModuleType):
            return Script(script, self)
        self.update_if_sources_modified()
        module = self.engine.prepare_entry_point(loader or self.loader, self._as_source(script))
        return Script(module, self)

    def run(self, script: Script | ModuleType | Source | Path | str,
            bindings: Optional[Dict[str, Any]] = None, loader: Optional[Loader] = None) -> Any:
        """
        Run a script with bindings.

        Returns:
            Whatever the script's run() returns, or its trailing expression value
        """
        if not isinstance(script, Script):
            script = self.create(script, loader)

        self.logger.info("Running script", script=script.name)
        try:
            result = script.run(**(bindings or {}))
        except Exception as e:
            self.logger.error("Script failed", script=script.name, error=f"{type(e).__name__}: {e}")
            raise
        self.logger.debug("Script finished", script=script.name)
        return result

    def get_metadata(self, module: ModuleType) -> Dict[str, Any]:
        """
        Get metadata from a script module.

        Looks for a __script__ dict in the module.

        Returns:
            Metadata dictionary (with defaults if not present)
        """
        if hasattr(module, '__script__'):
            return getattr(module, '__script__')

        return {
            'name': getattr(module, '__name__', 'unknown'),
            'version': '0.0.0',
            'description': '',
            'author': 'unknown',
        }

    def close(self) -> None:
        self.engine.close()
