from typing import Annotated, List, TypedDict

from langchain_core.messages import BaseMessage
from langgraph.graph.message import add_messages


class ConversationState(TypedDict, total=False):
    """State threaded through the agent graph"""
    messages: Annotated[List[BaseMessage], add_messages]
    agent_visits: int


def state_summary(state: ConversationState) -> dict:
    """Small summary of a state for transition logs"""

    messages = state.get("messages") or []
    return {
        "message_count": len(messages),
        "last_type": messages[-1].type if messages else None,
        "agent_visits": state.get("agent_visits", 0),
    }
