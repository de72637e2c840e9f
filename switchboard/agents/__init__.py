from switchboard.agents.base_agent import DialogueAgent
from switchboard.agents.receptionist_agent import ReceptionistAgent
from switchboard.agents.knowledge_agent import KnowledgeAgent
from switchboard.agents.registry import create_agent, register_agent, get_registered_agents

__all__ = [
    "DialogueAgent", "ReceptionistAgent", "KnowledgeAgent",
    "create_agent", "register_agent", "get_registered_agents",
]
