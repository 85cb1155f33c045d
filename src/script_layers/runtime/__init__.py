"""Runtime facade: automatic layer updates and runnable scripts."""

from .script_runtime import Script, ScriptRuntime

__all__ = ["Script", "ScriptRuntime"]
