from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
import asyncio
import json
import time

import structlog
from pydantic import ValidationError
from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage
from langchain_core.tools import BaseTool

from rag_agent.domain.models.agent_state import ConversationState
from rag_agent.domain.models.message import ANNOTATIONS_KEY, ToolCallRecord, extract_text
from rag_agent.domain.models.search import SearchResponse
from rag_agent.domain.tool.milvus_search import MILVUS_SEARCH_TOOL_NAME
from rag_agent.infrastructure.errors import AppError, ErrorStep, classify_error
from rag_agent.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

ERROR_TOOL_NAME = "error"

APOLOGY_MESSAGE = (
    "I apologize, but I encountered an error while processing your request. "
    "This has been logged for investigation. Could you please try again or rephrase your question?"
)

SYSTEM_PREAMBLE = (
    "You are a helpful assistant that answers questions based on the information retrieved from the database. "
    "The following information was found in the database:\n"
)

SYSTEM_SUFFIX = (
    "\nAlways provide accurate information based on the search results "
    "and maintain a natural conversation flow."
)


def build_system_prompt(context_block: str) -> str:
    return SYSTEM_PREAMBLE + context_block + SYSTEM_SUFFIX


class ReasoningStep:
    """
    Retrieval-augmented reasoning node.

    Embeds the latest message, searches the vector store, augments the
    system prompt with what was found and asks the chat model for a reply.
    Always returns exactly one assistant message: the model's reply, or a
    fixed apology when any stage fails.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        llm: BaseChatModel,
        search_tool: BaseTool,
        bound_tools: Optional[Sequence[BaseTool]] = None
    ):
        self.embeddings = embeddings
        self.llm = llm
        self.search_tool = search_tool
        self.bound_tools = list(bound_tools) if bound_tools is not None else [search_tool]

    async def __call__(self, state: ConversationState) -> Dict[str, Any]:
        """Graph node: append one assistant message"""

        messages = state.get("messages") or []
        visits = state.get("agent_visits", 0) + 1

        try:
            reply = await self._answer(messages)
        except (Exception, asyncio.CancelledError) as e:
            error = classify_error(e, ErrorStep.TOOL_EXECUTION)
            agent_logger.log_error(error)
            reply = self._error_message(error)

        return {"messages": [reply], "agent_visits": visits}

    async def _answer(self, messages: List[BaseMessage]) -> AIMessage:
        if not messages:
            raise AppError("Conversation has no messages", ErrorStep.MESSAGE_PARSING)

        query = extract_text(messages[-1].content)

        logger.debug("Starting embedding generation", message=query)
        embedding = await self._run_stage(ErrorStep.EMBEDDING_GENERATION, self.embeddings.aembed_query, query)
        logger.info("Embedding generated successfully")

        logger.debug("Starting Milvus search")
        payload = await self._run_stage(ErrorStep.VECTOR_SEARCH, self.search_tool.ainvoke, {"embedding": embedding})
        logger.info("Milvus search completed")

        search_response = self._parse_search_response(payload)
        logger.debug("Search results parsed", resultCount=len(search_response.results))

        prompt = [SystemMessage(content=build_system_prompt(search_response.context_block())), *messages]

        logger.debug("Starting LLM invocation")
        result = await self._run_stage(ErrorStep.LLM_CALL, self._invoke_model, prompt)
        logger.info("LLM invocation completed")

        annotation = ToolCallRecord.annotation(
            MILVUS_SEARCH_TOOL_NAME,
            json.dumps(
                {
                    "query": query,
                    "results": [r.model_dump(mode="json") for r in search_response.results],
                },
                default=str
            )
        )

        return AIMessage(
            content=getattr(result, "content", result),
            tool_calls=list(getattr(result, "tool_calls", None) or []),
            additional_kwargs={ANNOTATIONS_KEY: [annotation.model_dump(mode="json")]},
        )

    async def _invoke_model(self, prompt: List[BaseMessage]) -> Any:
        model = self.llm.bind_tools(self.bound_tools)
        return await model.ainvoke(prompt)

    async def _run_stage(self, step: ErrorStep, func: Callable[..., Awaitable[Any]], *args) -> Any:
        started = time.perf_counter()
        try:
            return await func(*args)
        except (Exception, asyncio.CancelledError) as e:
            raise classify_error(e, step) from e
        finally:
            metrics.record_latency(step.value, (time.perf_counter() - started) * 1000)

    def _parse_search_response(self, payload: Any) -> SearchResponse:
        if not isinstance(payload, (str, bytes)):
            raise AppError(
                "Search results are not a serialized document",
                ErrorStep.MESSAGE_PARSING,
                {"searchResults": repr(payload)}
            )

        try:
            response = SearchResponse.model_validate_json(payload)
        except ValidationError as e:
            raise AppError(
                "Failed to parse search results",
                ErrorStep.MESSAGE_PARSING,
                {"searchResults": payload, "error": e}
            ) from e

        if not response.status.ok:
            raise AppError(
                "Vector search reported a failure",
                ErrorStep.VECTOR_SEARCH,
                {"status": response.status.model_dump()}
            )

        return response

    def _error_message(self, error: AppError) -> AIMessage:
        annotation = ToolCallRecord.annotation(
            ERROR_TOOL_NAME,
            json.dumps({"error": error.to_dict()}, default=str)
        )
        return AIMessage(
            content=APOLOGY_MESSAGE,
            additional_kwargs={ANNOTATIONS_KEY: [annotation.model_dump(mode="json")]},
        )
