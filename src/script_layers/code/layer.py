"""
Compiled layers

A compiled layer is the immutable result of compiling one source set.

Design:
- Artifacts are keyed by qualified name: a module name ('greeting')
  or '<module>.<Class>' for top-level classes
- Module artifacts hold marshalled code objects plus the source text
  (for tracebacks); class artifacts point at their module
- Each source records its main name, every name it produced, and its
  watermark at compile time (used to detect staleness later)
- Layers are shared by reference between resolvers and never change
"""

from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from ..source.source import Source

MODULE = 'module'
CLASS = 'class'


class Artifact:
    """One loadable unit inside a layer"""

    __slots__ = ('name', 'kind', 'source', 'data', 'text', 'module_name')

    def __init__(self, name: str, kind: str, source: Source, data: Optional[bytes] = None,
                 text: Optional[str] = None, module_name: Optional[str] = None):
        if kind not in (MODULE, CLASS):
            raise ValueError(f"Unknown artifact kind: {kind}")
        if kind == MODULE and data is None:
            raise ValueError(f"Module artifact {name} has no code.")
        self.name = name
        self.kind = kind
        self.source = source
        self.data = data
        self.text = text
        self.module_name = name if kind == MODULE else module_name

    @property
    def is_module(self) -> bool:
        return self.kind == MODULE

    def __repr__(self):
        return f"Artifact[name='{self.name}', kind={self.kind}]"


class CompiledSourceInfo:
    """What compiling one source produced"""

    __slots__ = ('source', 'main_name', 'names', 'last_modified_at_compile_time')

    def __init__(self, source: Source, main_name: str, names: Iterable[str],
                 last_modified_at_compile_time: float):
        self.source = source
        self.main_name = main_name
        self.names: FrozenSet[str] = frozenset(names)
        self.last_modified_at_compile_time = last_modified_at_compile_time
        if main_name not in self.names:
            raise ValueError(f"Main name {main_name} is not among names of {source.id}.")

    def __repr__(self):
        return (f"CompiledSourceInfo[source={self.source!r}, main_name='{self.main_name}', "
                f"names={sorted(self.names)}, "
                f"last_modified_at_compile_time={self.last_modified_at_compile_time}]")


class CompiledLayer:
    """
    Immutable compiled output of a source set.

    Raises:
        ValueError: If a source claims a name that has no artifact
    """

    def __init__(self, name: str, source_infos: Mapping[Source, CompiledSourceInfo],
                 artifacts: Mapping[str, Artifact]):
        self.name = name
        self._source_infos: Dict[Source, CompiledSourceInfo] = dict(source_infos)
        self._artifacts: Dict[str, Artifact] = dict(artifacts)

        for info in self._source_infos.values():
            missing = info.names - self._artifacts.keys()
            if missing:
                raise ValueError(
                    f"Layer {name}: names {sorted(missing)} of source {info.source.id} have no artifact."
                )

    @property
    def names(self) -> FrozenSet[str]:
        """All qualified names defined by this layer"""
        return frozenset(self._artifacts)

    @property
    def sources(self) -> FrozenSet[Source]:
        return frozenset(self._source_infos)

    def has_artifact(self, name: str) -> bool:
        return name in self._artifacts

    def get_artifact(self, name: str) -> Optional[Artifact]:
        return self._artifacts.get(name)

    def is_for_source(self, source: Source) -> bool:
        return source in self._source_infos

    def get_source_info(self, source: Source) -> CompiledSourceInfo:
        try:
            return self._source_infos[source]
        except KeyError:
            raise ValueError(f"Source is not for this layer: {source!r}") from None

    def get_main_name(self, source: Source) -> str:
        return self.get_source_info(source).main_name

    def get_names(self, source: Source) -> FrozenSet[str]:
        return self.get_source_info(source).names

    def get_last_modified_at_compile_time(self, source: Source) -> float:
        return self.get_source_info(source).last_modified_at_compile_time

    def __repr__(self):
        return (f"{type(self).__name__}[name='{self.name}', sources={len(self._source_infos)}, "
                f"names={sorted(self._artifacts)}]")


class SingleSourceLayer(CompiledLayer):
    """Layer compiled from exactly one source"""

    def __init__(self, name: str, source_info: CompiledSourceInfo, artifacts: Mapping[str, Artifact]):
        super().__init__(name, {source_info.source: source_info}, artifacts)
        self.source_info = source_info

    @property
    def source(self) -> Source:
        return self.source_info.source

    @property
    def main_name(self) -> str:
        return self.source_info.main_name

    @property
    def source_names(self) -> FrozenSet[str]:
        return self.source_info.names

    @property
    def last_modified_at_compile_time(self) -> float:
        return self.source_info.last_modified_at_compile_time
