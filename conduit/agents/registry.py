"""
Agent registry -- looks up agent providers by id.

The first registered provider is the default unless another one is chosen
with ``set_default``.
"""

from __future__ import annotations

import logging

from conduit.agents.base import AgentProvider
from conduit.agents.runner import ClaudeCliAgent, CodexCliAgent, SdkAgentProvider, SdkQuery
from conduit.backends.base import CommandRunner
from conduit.config import ConduitConfig

logger = logging.getLogger(__name__)


class AgentRegistry:
    def __init__(self) -> None:
        self._agents: dict[str, AgentProvider] = {}
        self._default: str | None = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, agent: AgentProvider) -> None:
        """Register *agent* under its id.  Overwrites any existing entry."""
        self._agents[agent.id] = agent
        if self._default is None:
            self._default = agent.id

    def set_default(self, agent_id: str) -> None:
        """
        Choose the default agent.

        Raises ``KeyError`` if *agent_id* has not been registered.
        """
        self.get(agent_id)
        self._default = agent_id

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, agent_id: str) -> AgentProvider:
        """Raises ``KeyError`` naming the available ids for an unknown id."""
        agent = self._agents.get(agent_id)
        if agent is None:
            raise KeyError(
                f"Unknown agent: {agent_id}. Available: {', '.join(self._agents)}"
            )
        return agent

    def default(self) -> AgentProvider:
        if self._default is None:
            raise RuntimeError("No agents registered")
        return self._agents[self._default]

    @property
    def default_id(self) -> str | None:
        return self._default

    def list(self) -> list[dict[str, str]]:
        """``id`` / ``name`` / ``description`` of every agent, in registration order."""
        return [agent.info() for agent in self._agents.values()]

    def ids(self) -> list[str]:
        return list(self._agents)

    def is_valid(self, agent_id: str) -> bool:
        return agent_id in self._agents


def build_default_registry(
    cfg: ConduitConfig,
    runner: CommandRunner,
    sdk_query: SdkQuery | None = None,
) -> AgentRegistry:
    """Registry with the built-in agents, configured from *cfg*."""
    registry = AgentRegistry()
    registry.register(ClaudeCliAgent(runner, cfg.agents.claude))
    registry.register(SdkAgentProvider(sdk_query))
    registry.register(CodexCliAgent(runner, cfg.agents.codex))
    if registry.is_valid(cfg.agents.default):
        registry.set_default(cfg.agents.default)
    else:
        logger.warning(
            "Configured default agent %r is unknown; using %s",
            cfg.agents.default,
            registry.default_id,
        )
    return registry
