from typing import Literal

from langchain_core.messages import AIMessage

from rag_agent.domain.models.agent_state import ConversationState
from rag_agent.domain.models.message import get_dispatch_calls
from rag_agent.infrastructure.errors import ErrorStep, classify_error
from rag_agent.infrastructure.observability.logging import agent_logger

CONTINUE = "continue"
END_TURN = "end"

RouteDecision = Literal["continue", "end"]


def should_continue(state: ConversationState) -> RouteDecision:
    """Continue to tool execution only when the last assistant message requests dispatch"""

    try:
        last_message = state["messages"][-1]

        if not isinstance(last_message, AIMessage) or not get_dispatch_calls(last_message):
            return END_TURN

        return CONTINUE
    except Exception as e:
        agent_logger.log_error(
            classify_error(e, ErrorStep.MESSAGE_PARSING, {"operation": "workflow_control"})
        )
        return END_TURN
