from typing import Any, Dict, List
import json
import time

from langchain_core.messages import BaseMessage, ToolMessage

from rag_agent.domain.models.agent_state import ConversationState
from rag_agent.domain.models.message import get_dispatch_calls
from rag_agent.domain.tool.tool_registry import ToolRegistry
from rag_agent.infrastructure.errors import AppError, ErrorStep, classify_error
from rag_agent.infrastructure.observability.logging import agent_logger


class ToolExecutor:
    """Dispatches the tool calls of the latest message to registered tools"""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    async def __call__(self, state: ConversationState) -> Dict[str, Any]:
        """Graph node: one tool message per dispatch request, in order"""

        messages = state.get("messages") or []
        if not messages:
            return {"messages": []}

        return {"messages": await self.execute(messages[-1])}

    async def execute(self, message: BaseMessage) -> List[ToolMessage]:
        outputs = []
        for call in get_dispatch_calls(message):
            outputs.append(await self._execute_call(call))
        return outputs

    async def _execute_call(self, call: Dict[str, Any]) -> ToolMessage:
        name = call.get("name", "")
        call_id = call.get("id") or f"{name}_{int(time.time() * 1000)}"
        args = call.get("args") or {}
        started = time.perf_counter()

        tool = self.registry.resolve(name)
        if tool is None:
            error = AppError(
                f"Tool not found: {name}",
                ErrorStep.TOOL_EXECUTION,
                {"tool_call_id": call_id}
            )
            return self._failed(error, name, call_id, args, started)

        try:
            output = await tool.ainvoke(args)
        except Exception as e:
            error = classify_error(e, ErrorStep.TOOL_EXECUTION, {"tool_name": name, "tool_call_id": call_id})
            return self._failed(error, name, call_id, args, started)

        agent_logger.log_tool_execution(
            tool_name=name,
            tool_call_id=call_id,
            input_data=args,
            duration_ms=(time.perf_counter() - started) * 1000
        )

        if not isinstance(output, str):
            output = json.dumps(output, default=str)

        return ToolMessage(content=output, tool_call_id=call_id, name=name)

    def _failed(self, error: AppError, name: str, call_id: str, args: Dict[str, Any], started: float) -> ToolMessage:
        agent_logger.log_error(error)
        agent_logger.log_tool_execution(
            tool_name=name,
            tool_call_id=call_id,
            input_data=args,
            duration_ms=(time.perf_counter() - started) * 1000,
            success=False,
            error=error.message
        )
        return ToolMessage(
            content=f"Error: {error.message}",
            tool_call_id=call_id,
            name=name,
            status="error"
        )

    def cancel_pending(self, message: BaseMessage, reason: str) -> List[ToolMessage]:
        """Close every dispatch request on the message without running it"""

        cancelled = []
        for call in get_dispatch_calls(message):
            name = call.get("name", "")
            call_id = call.get("id") or f"{name}_{int(time.time() * 1000)}"
            agent_logger.log_tool_execution(
                tool_name=name,
                tool_call_id=call_id,
                input_data=call.get("args") or {},
                success=False,
                error=reason
            )
            cancelled.append(ToolMessage(
                content=f"Error: {reason}",
                tool_call_id=call_id,
                name=name,
                status="error"
            ))
        return cancelled
