"""Compiled layers, the compiler and conflict analysis."""

from .compiler import RESULT_NAME, Compiler, PythonCompiler
from .conflicts import (
    ConflictAnalyzer,
    ConflictReport,
    get_all_names_map,
    get_cross_layer_conflicts,
    get_outer_conflicts,
)
from .layer import Artifact, CompiledLayer, CompiledSourceInfo, SingleSourceLayer

__all__ = [
    "Artifact",
    "CompiledLayer",
    "CompiledSourceInfo",
    "SingleSourceLayer",
    "Compiler",
    "PythonCompiler",
    "RESULT_NAME",
    "ConflictAnalyzer",
    "ConflictReport",
    "get_all_names_map",
    "get_cross_layer_conflicts",
    "get_outer_conflicts",
]
