"""Loading: namespaces, the resolver and the on-demand cache."""

from .namespace import DictNamespace, ImportNamespace, OuterNamespace
from .on_demand import OnDemandCache
from .precedence import Precedence
from .releaser import ArtifactReleaser, DefaultArtifactReleaser
from .resolver import LayerLoader, NamespaceResolver

__all__ = [
    "OuterNamespace",
    "ImportNamespace",
    "DictNamespace",
    "OnDemandCache",
    "Precedence",
    "ArtifactReleaser",
    "DefaultArtifactReleaser",
    "LayerLoader",
    "NamespaceResolver",
]
