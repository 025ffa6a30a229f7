"""
Reasoning step tests: retrieval augmentation and the error fallback.

Run with:
$ pytest -q tests/test_reasoning.py
"""

import asyncio
import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_core.tools import StructuredTool

from rag_agent.domain.models.message import get_annotations
from rag_agent.domain.orchestration.core.reasoning import APOLOGY_MESSAGE, ReasoningStep
from rag_agent.domain.tool.milvus_search import MILVUS_SEARCH_TOOL_NAME, MilvusSearchInput, create_milvus_search_tool

from fakes import FailingEmbeddings, FakeSearchService, ScriptedChatModel, tool_call_reply

REFUND_QUESTION = "What is the refund policy?"


def _error_step(message: AIMessage) -> str:
    (annotation,) = get_annotations(message)
    assert annotation.name == "error"
    return json.loads(annotation.arguments)["error"]["step"]


@pytest.mark.asyncio
async def test_refund_question_is_answered_from_retrieved_context(embeddings, search_tool, search_service) -> None:
    llm = ScriptedChatModel([
        AIMessage(content="Our refund policy: refunds within 30 days, store credit after 30 days.")
    ])
    step = ReasoningStep(embeddings, llm, search_tool)

    update = await step({"messages": [HumanMessage(content=REFUND_QUESTION)]})

    (reply,) = update["messages"]
    assert isinstance(reply, AIMessage)
    assert "refund policy" in reply.content
    assert reply.tool_calls == []
    assert update["agent_visits"] == 1

    (annotation,) = get_annotations(reply)
    assert annotation.name == "milvus_search"
    assert annotation.kind == "annotation"
    arguments = json.loads(annotation.arguments)
    assert arguments["query"] == REFUND_QUESTION
    assert [r["metadata"] for r in arguments["results"]] == [
        "Refunds within 30 days.",
        "Store credit after 30 days.",
    ]

    assert search_service.calls[0]["top_k"] == 5
    assert search_service.calls[0]["metric"] == "L2"
    assert search_service.calls[0]["nprobe"] == 10
    assert len(search_service.calls[0]["embedding"]) == 8


@pytest.mark.asyncio
async def test_system_prompt_carries_context_and_full_history(embeddings, search_tool) -> None:
    llm = ScriptedChatModel([AIMessage(content="ok")])
    step = ReasoningStep(embeddings, llm, search_tool)
    history = [
        HumanMessage(content="Hello"),
        AIMessage(content="Hi, how can I help?"),
        HumanMessage(content=REFUND_QUESTION),
    ]

    await step({"messages": history})

    (prompt,) = llm.calls
    assert isinstance(prompt[0], SystemMessage)
    assert "Refunds within 30 days.\nStore credit after 30 days." in prompt[0].content
    assert prompt[1:] == history
    assert [tool.name for tool in llm.bound_tools] == ["milvus_search"]


@pytest.mark.asyncio
async def test_fragment_content_is_joined_for_embedding(search_tool) -> None:
    class RecordingEmbeddings(FailingEmbeddings):
        async def aembed_query(self, text):
            self.seen = text
            return [0.0, 1.0]

    recorder = RecordingEmbeddings()
    step = ReasoningStep(recorder, ScriptedChatModel([AIMessage(content="ok")]), search_tool)
    content = [
        {"type": "text", "text": "What is"},
        {"type": "image_url", "image_url": {"url": "http://example.com/a.png"}},
        {"type": "text", "text": "the refund policy?"},
    ]

    await step({"messages": [HumanMessage(content=content)]})

    assert recorder.seen == REFUND_QUESTION


@pytest.mark.asyncio
async def test_model_tool_calls_become_dispatch_requests(embeddings, search_tool) -> None:
    step = ReasoningStep(embeddings, ScriptedChatModel([tool_call_reply("call_7")]), search_tool)

    update = await step({"messages": [HumanMessage(content=REFUND_QUESTION)]})

    (reply,) = update["messages"]
    assert [call["id"] for call in reply.tool_calls] == ["call_7"]
    assert [a.name for a in get_annotations(reply)] == ["milvus_search"]


@pytest.mark.asyncio
async def test_embedding_failure_returns_apology(search_tool) -> None:
    llm = ScriptedChatModel([AIMessage(content="unused")])
    step = ReasoningStep(FailingEmbeddings(), llm, search_tool)

    update = await step({"messages": [HumanMessage(content=REFUND_QUESTION)]})

    (reply,) = update["messages"]
    assert reply.content == APOLOGY_MESSAGE
    assert reply.tool_calls == []
    assert _error_step(reply) == "embedding_generation"
    assert llm.calls == []


@pytest.mark.asyncio
async def test_search_error_text_is_a_parsing_failure(embeddings) -> None:
    search_tool = create_milvus_search_tool(FakeSearchService(error=ConnectionError("milvus down")))
    llm = ScriptedChatModel([AIMessage(content="unused")])
    step = ReasoningStep(embeddings, llm, search_tool)

    update = await step({"messages": [HumanMessage(content=REFUND_QUESTION)]})

    (reply,) = update["messages"]
    assert reply.content == APOLOGY_MESSAGE
    assert _error_step(reply) == "message_parsing"
    assert llm.calls == []


def _stub_search_tool(coroutine) -> StructuredTool:
    return StructuredTool.from_function(
        coroutine=coroutine,
        name=MILVUS_SEARCH_TOOL_NAME,
        description="Search stand-in (used only for tests).",
        args_schema=MilvusSearchInput,
    )


@pytest.mark.asyncio
async def test_failed_search_status_is_a_vector_search_failure(embeddings) -> None:
    async def failed_status(embedding):
        return json.dumps({"status": {"error_code": "UnexpectedError", "reason": "collection not loaded"}, "results": []})

    llm = ScriptedChatModel([AIMessage(content="unused")])
    step = ReasoningStep(embeddings, llm, _stub_search_tool(failed_status))

    update = await step({"messages": [HumanMessage(content=REFUND_QUESTION)]})

    (reply,) = update["messages"]
    assert reply.content == APOLOGY_MESSAGE
    assert _error_step(reply) == "vector_search"
    assert llm.calls == []


@pytest.mark.asyncio
async def test_raising_search_tool_is_a_vector_search_failure(embeddings) -> None:
    async def unreachable(embedding):
        raise ConnectionError("milvus unreachable")

    llm = ScriptedChatModel([AIMessage(content="unused")])
    step = ReasoningStep(embeddings, llm, _stub_search_tool(unreachable))

    update = await step({"messages": [HumanMessage(content=REFUND_QUESTION)]})

    (reply,) = update["messages"]
    assert reply.content == APOLOGY_MESSAGE
    assert _error_step(reply) == "vector_search"
    assert llm.calls == []


@pytest.mark.asyncio
async def test_search_response_without_status_is_a_parsing_failure(embeddings) -> None:
    async def no_status(embedding):
        return json.dumps({"results": [{"score": 0.1, "metadata": "Refunds within 30 days."}]})

    step = ReasoningStep(embeddings, ScriptedChatModel([AIMessage(content="unused")]), _stub_search_tool(no_status))

    update = await step({"messages": [HumanMessage(content=REFUND_QUESTION)]})

    assert _error_step(update["messages"][0]) == "message_parsing"


@pytest.mark.asyncio
async def test_model_failure_is_classified_as_llm_call(embeddings, search_tool) -> None:
    step = ReasoningStep(embeddings, ScriptedChatModel([TimeoutError("model timed out")]), search_tool)

    update = await step({"messages": [HumanMessage(content=REFUND_QUESTION)]})

    (reply,) = update["messages"]
    assert reply.content == APOLOGY_MESSAGE
    assert _error_step(reply) == "llm_call"


@pytest.mark.asyncio
async def test_collaborator_cancellation_becomes_apology(search_tool) -> None:
    step = ReasoningStep(FailingEmbeddings(asyncio.CancelledError()), ScriptedChatModel([AIMessage(content="x")]), search_tool)

    update = await step({"messages": [HumanMessage(content=REFUND_QUESTION)]})

    (reply,) = update["messages"]
    assert reply.content == APOLOGY_MESSAGE
    assert _error_step(reply) == "embedding_generation"


@pytest.mark.asyncio
@pytest.mark.parametrize("embedding_fails", [False, True])
@pytest.mark.parametrize("search_fails", [False, True])
@pytest.mark.parametrize("model_fails", [False, True])
async def test_reasoning_never_raises(embeddings, embedding_fails, search_fails, model_fails) -> None:
    search_tool = create_milvus_search_tool(
        FakeSearchService(error=RuntimeError("search failed") if search_fails else None)
    )
    llm = ScriptedChatModel([RuntimeError("model failed") if model_fails else AIMessage(content="fine")])
    step = ReasoningStep(FailingEmbeddings() if embedding_fails else embeddings, llm, search_tool)

    update = await step({"messages": [HumanMessage(content=REFUND_QUESTION)]})

    assert len(update["messages"]) == 1
    assert isinstance(update["messages"][0], AIMessage)
    failed = embedding_fails or search_fails or model_fails
    assert (update["messages"][0].content == APOLOGY_MESSAGE) == failed


@pytest.mark.asyncio
async def test_empty_conversation_returns_apology(embeddings, search_tool) -> None:
    step = ReasoningStep(embeddings, ScriptedChatModel([AIMessage(content="x")]), search_tool)

    update = await step({"messages": []})

    (reply,) = update["messages"]
    assert _error_step(reply) == "message_parsing"
