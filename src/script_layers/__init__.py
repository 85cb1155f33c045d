"""
Script Layers: a hot-reloadable runtime for dynamically compiled scripts.

Python scripts (text, files, URLs) are compiled into ordered override
layers. Names resolve against those layers and the regular import system
with configurable precedence, and the whole layer set can be swapped
atomically while callers keep running.

The runtime provides:
- Layered resolution (first layer wins, outer-first or self-first)
- Name conflict detection before new layers are accepted
- An on-demand cache that recompiles changed or unknown sources
- Attached loaders (follow every update) and detached loaders (pinned)
- Self-logging components (engines log to themselves)

Example:
    >>> from script_layers import ScriptRuntime
    >>>
    >>> runtime = ScriptRuntime.from_dir('scripts')
    >>> runtime.run("x * 2", bindings={'x': 21})
    42
    >>> greeting = runtime.load_name('greeting')   # scripts/greeting.py
    >>> greeting.hello('world')

Architecture:
    Sources -> Compiler -> CompiledLayer -> LayeredEngine -> Loader
    The engine owns the layers; loaders are handles bound to it.
    Everything between layer swaps is immutable and shared.
"""

__version__ = "0.1.0"
__author__ = "Dan Q"
__email__ = "danq@dbbasic.com"

from .code import CompiledLayer, PythonCompiler, SingleSourceLayer
from .core.errors import (
    CompileError,
    ConfigError,
    CreateError,
    LoadError,
    LoaderMismatchError,
    NameConflictError,
    ScriptLayersError,
)
from .engine import EngineConfig, LayeredEngine, Loader
from .load import DictNamespace, ImportNamespace, NamespaceResolver, OnDemandCache, Precedence
from .runtime import Script, ScriptRuntime
from .source import FileSource, Source, SourceFactory, SourceSetState, TextSource, UrlSource
from .sources import CompositeSources, DirBasedSources, DirMode, FixedSetSources

__all__ = [
    "__version__",
    # Engine
    "LayeredEngine",
    "EngineConfig",
    "Loader",
    "Precedence",
    # Runtime
    "ScriptRuntime",
    "Script",
    # Code
    "CompiledLayer",
    "SingleSourceLayer",
    "PythonCompiler",
    # Loading
    "NamespaceResolver",
    "OnDemandCache",
    "ImportNamespace",
    "DictNamespace",
    # Sources
    "Source",
    "TextSource",
    "FileSource",
    "UrlSource",
    "SourceFactory",
    "SourceSetState",
    "FixedSetSources",
    "DirBasedSources",
    "CompositeSources",
    "DirMode",
    # Errors
    "ScriptLayersError",
    "CompileError",
    "LoadError",
    "NameConflictError",
    "LoaderMismatchError",
    "CreateError",
    "ConfigError",
]
