"""Executable plugins, their metadata and discovery."""

from scriptbar.plugin.base import DebugEvent, DebugEventKind, PluginContext, PluginState, RefreshReason
from scriptbar.plugin.executable import ExecutablePlugin
from scriptbar.plugin.registry import PluginRegistry
from scriptbar.plugin.source import DirectorySource, PluginSource

__all__ = [
    "DebugEvent",
    "DebugEventKind",
    "DirectorySource",
    "ExecutablePlugin",
    "PluginContext",
    "PluginRegistry",
    "PluginSource",
    "PluginState",
    "RefreshReason",
]
