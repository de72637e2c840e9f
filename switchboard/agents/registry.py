"""
Agent registry: tenant agent kinds resolved by name.

A tenant profile names its dialogue agent (``agent: knowledge``); the
orchestrator builds it through this registry so new kinds can be added
without the orchestrator importing them.
"""

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

_AGENT_REGISTRY: dict[str, Callable[..., Any]] = {}


def register_agent(name: str, factory: Callable[..., Any]) -> None:
    """Register an agent factory by name."""
    _AGENT_REGISTRY[name] = factory
    logger.debug("Agent registered: %s", name)


def create_agent(name: str, **kwargs: Any) -> Any:
    """Create an agent instance by registered name.

    Raises:
        KeyError: If the agent name is not registered.
    """
    if name not in _AGENT_REGISTRY:
        registered = list(_AGENT_REGISTRY.keys())
        raise KeyError(f"Agent '{name}' not registered. Available: {registered}")
    return _AGENT_REGISTRY[name](**kwargs)


def get_registered_agents() -> list[str]:
    """Return names of all registered agents."""
    return list(_AGENT_REGISTRY.keys())


def _auto_register() -> None:
    """Auto-register all built-in agents. Called once at import time."""
    from switchboard.agents.knowledge_agent import KnowledgeAgent
    from switchboard.agents.receptionist_agent import ReceptionistAgent

    register_agent("receptionist", ReceptionistAgent)
    register_agent("knowledge", KnowledgeAgent)


_auto_register()
