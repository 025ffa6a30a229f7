from typing import List
import uuid

from fastapi import APIRouter, HTTPException, Request
from langchain_core.messages import AIMessage

from rag_agent.application.api.schema import ChatRequest, ChatResponse, ToolInfo
from rag_agent.domain.models.message import serialize_message
from rag_agent.domain.orchestration.core.main_agent import AgentOrchestrator
from rag_agent.infrastructure.errors import ErrorStep, classify_error
from rag_agent.infrastructure.observability.logging import agent_logger

router = APIRouter(prefix="/api/v1/agent", tags=["agent"])


def get_orchestrator(request: Request) -> AgentOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Agent is not ready")
    return orchestrator


# REST endpoint for a single conversation turn
@router.post("/chat", response_model=ChatResponse)
async def chat_endpoint(chat_request: ChatRequest, request: Request) -> ChatResponse:
    orchestrator = get_orchestrator(request)
    session_id = chat_request.session_id or str(uuid.uuid4())
    history = [message.to_langchain() for message in chat_request.messages]

    try:
        final_state = await orchestrator.run_turn(history, session_id=session_id)
    except Exception as e:
        agent_logger.log_error(
            classify_error(e, ErrorStep.API_REQUEST, {"session_id": session_id, "path": request.url.path})
        )
        raise HTTPException(status_code=500, detail="Failed to process request")

    appended = final_state["messages"][len(history):]
    replies = [message for message in appended if isinstance(message, AIMessage)]

    return ChatResponse(
        session_id=session_id,
        response=replies[-1].content if replies else "",
        messages=[serialize_message(message) for message in appended]
    )


@router.get("/tools", response_model=List[ToolInfo])
async def list_tools(request: Request) -> List[ToolInfo]:
    orchestrator = get_orchestrator(request)
    return [ToolInfo(**info) for info in orchestrator.tool_registry.describe_tools()]
