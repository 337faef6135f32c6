"""Agent subsystem -- providers, event mappers, turn driver and registry."""

from conduit.agents.base import AgentProvider, ExecuteParams
from conduit.agents.mappers import MAPPERS, map_event
from conduit.agents.registry import AgentRegistry, build_default_registry
from conduit.agents.runner import (
    ClaudeCliAgent,
    CliAgentProvider,
    CodexCliAgent,
    SdkAgentProvider,
    TurnSequencer,
    classify_error,
)
from conduit.agents.state import TurnState

__all__ = [
    "AgentProvider",
    "AgentRegistry",
    "ClaudeCliAgent",
    "CliAgentProvider",
    "CodexCliAgent",
    "ExecuteParams",
    "MAPPERS",
    "SdkAgentProvider",
    "TurnSequencer",
    "TurnState",
    "build_default_registry",
    "classify_error",
    "map_event",
]
