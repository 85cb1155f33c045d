"""
Compiler

Turns a source set into a CompiledLayer.

Design principles:
- Each source becomes one module; its name is the source's name hint
  (desired name, file stem) or 'Script' + hash of the source id
- Top-level classes are published as '<module>.<Class>' artifacts
- A trailing expression statement is captured into `__result__`, so a
  script's value can be read after it runs
- Errors (unreadable source, syntax error, duplicate or unresolved name)
  are raised as CompileError carrying the sources being compiled
"""

from typing import Dict, Iterable, List, Optional, Set
import ast
import marshal

import requests

from ..core.errors import CompileError
from ..source.source import Source
from ..source.util import hash_text
from .layer import CLASS, MODULE, Artifact, CompiledLayer, CompiledSourceInfo, SingleSourceLayer

RESULT_NAME = '__result__'


class Compiler:
    """Interface: compile(sources, namespace=None) -> CompiledLayer"""

    def compile(self, sources, namespace=None) -> CompiledLayer:
        raise NotImplementedError


class PythonCompiler(Compiler):
    """
    Compiles Python script sources with `ast` and `compile()`.

    Args:
        check_imports: Fail compilation when an absolute import is neither
                       defined by the source set nor resolvable through
                       the namespace
        capture_result: Rewrite a trailing expression into `__result__`
        optimize: Passed through to compile()
    """

    def __init__(self, check_imports: bool = False, capture_result: bool = True, optimize: int = -1):
        self.check_imports = check_imports
        self.capture_result = capture_result
        self.optimize = optimize

    def compile(self, sources, namespace=None) -> CompiledLayer:
        """
        Compile a Sources provider (or a plain collection of sources).

        Args:
            sources: Object with get_source_set() and name, or an iterable of Source
            namespace: Names visible to the compiled code, for import checking

        Returns:
            SingleSourceLayer for one source, CompiledLayer otherwise

        Raises:
            CompileError: If any source can't be compiled
        """
        if hasattr(sources, 'get_source_set'):
            source_set = sources.get_source_set()
            layer_name = sources.name
        else:
            source_set = frozenset(sources)
            layer_name = 'sources'

        # Deterministic order for duplicate-name reporting
        ordered = sorted(source_set, key=lambda s: s.id)

        infos: Dict[Source, CompiledSourceInfo] = {}
        artifacts: Dict[str, Artifact] = {}
        imports: Dict[Source, Set[str]] = {}

        for source in ordered:
            last_modified = source.last_modified
            text = self._read_text(source, sources)
            module_name = self._module_name(source)

            if module_name in artifacts:
                raise CompileError(
                    f"Duplicate module name '{module_name}' in sources {layer_name} "
                    f"(source {source.id}).",
                    sources,
                )

            tree = self._parse(text, source, sources)
            code = self._compile_tree(tree, source, sources)

            names = [module_name]
            artifacts[module_name] = Artifact(
                module_name, MODULE, source, data=marshal.dumps(code), text=text,
            )
            for node in tree.body:
                if isinstance(node, ast.ClassDef):
                    class_name = f"{module_name}.{node.name}"
                    if class_name not in artifacts:
                        artifacts[class_name] = Artifact(class_name, CLASS, source, module_name=module_name)
                        names.append(class_name)

            infos[source] = CompiledSourceInfo(source, module_name, names, last_modified)
            imports[source] = _top_level_imports(tree)

        if self.check_imports:
            self._check_imports(imports, artifacts, namespace, sources)

        if len(infos) == 1:
            (info,) = infos.values()
            return SingleSourceLayer(layer_name, info, artifacts)
        return CompiledLayer(layer_name, infos, artifacts)

    def _read_text(self, source: Source, sources) -> str:
        try:
            return source.read_text()
        except NotImplementedError:
            raise CompileError(f"Don't know how to compile source {source!r}.", sources) from None
        except (OSError, UnicodeError, requests.RequestException) as e:
            raise CompileError(f"Could not read source {source.id}: {e}", sources) from e

    def _module_name(self, source: Source) -> str:
        return source.name_hint or 'Script' + hash_text(source.id)[:32]

    def _parse(self, text: str, source: Source, sources) -> ast.Module:
        try:
            tree = ast.parse(text, filename=source.id)
        except (SyntaxError, ValueError) as e:
            raise CompileError(f"Syntax error in source {source.id}: {e}", sources) from e

        if self.capture_result and tree.body and isinstance(tree.body[-1], ast.Expr):
            last = tree.body[-1]
            tree.body[-1] = ast.copy_location(
                ast.Assign(targets=[ast.Name(id=RESULT_NAME, ctx=ast.Store())], value=last.value),
                last,
            )
            ast.fix_missing_locations(tree)
        return tree

    def _compile_tree(self, tree: ast.Module, source: Source, sources):
        try:
            return compile(tree, source.id, 'exec', optimize=self.optimize)
        except (SyntaxError, ValueError) as e:
            raise CompileError(f"Could not compile source {source.id}: {e}", sources) from e

    def _check_imports(self, imports: Dict[Source, Set[str]], artifacts: Dict[str, Artifact],
                       namespace, sources) -> None:
        if namespace is None:
            from ..load.namespace import ImportNamespace
            namespace = ImportNamespace()

        unresolved: List[str] = []
        for source, names in imports.items():
            for name in sorted(names):
                if name in artifacts or namespace.contains(name):
                    continue
                unresolved.append(f"{name} (in {source.id})")

        if unresolved:
            raise CompileError(f"Unresolved imports: {', '.join(unresolved)}", sources)


def _top_level_imports(tree: ast.Module) -> Set[str]:
    """Top-level package names of all absolute imports in a module"""
    names: Set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names.update(alias.name.partition('.')[0] for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            names.add(node.module.partition('.')[0])
    return names
