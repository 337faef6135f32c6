"""Command runners: where agent processes execute."""

from conduit.backends.base import BackendError, CommandHandle, CommandRunner, LogFragment
from conduit.backends.local import LocalCommandRunner
from conduit.backends.scripted import ScriptedCommandRunner

__all__ = [
    "BackendError",
    "CommandHandle",
    "CommandRunner",
    "LocalCommandRunner",
    "LogFragment",
    "ScriptedCommandRunner",
]
