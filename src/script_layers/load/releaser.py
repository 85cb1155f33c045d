"""
Artifact release

Called for every loaded module when a loader is released, so per-module
global state can be cleaned up.
"""

from types import ModuleType
import linecache


class ArtifactReleaser:
    """Hook invoked for each module a released loader had loaded"""

    def release(self, module: ModuleType) -> None:
        pass


class DefaultArtifactReleaser(ArtifactReleaser):
    """Drops the source lines registered for the module's traceback display"""

    def release(self, module: ModuleType) -> None:
        filename = getattr(module, '__file__', None)
        if filename is None:
            return
        entry = linecache.cache.get(filename)
        # Only entries registered at load time have no mtime
        if entry is not None and len(entry) == 4 and entry[1] is None:
            linecache.cache.pop(filename, None)
