from typing import Any, AsyncIterator, Dict, Literal, Optional, Sequence
import uuid

import structlog
from langchain_core.messages import BaseMessage
from langgraph.graph import StateGraph, END

from rag_agent.domain.models.agent_state import ConversationState, state_summary
from rag_agent.domain.orchestration.core.reasoning import ReasoningStep
from rag_agent.domain.orchestration.core.routing import CONTINUE, END_TURN, should_continue
from rag_agent.domain.tool.milvus_search import create_milvus_search_tool
from rag_agent.domain.tool.tool_executor import ToolExecutor
from rag_agent.domain.tool.tool_registry import ToolRegistry
from rag_agent.infrastructure.config.settings import Settings
from rag_agent.infrastructure.observability.logging import agent_logger, metrics
from rag_agent.infrastructure.services import AgentServices

logger = structlog.get_logger(__name__)

AGENT_NODE = "agent"
TOOLS_NODE = "tools"
LIMIT_NODE = "iteration_limit"

ITERATION_LIMIT = "limit"

LoopDecision = Literal["continue", "end", "limit"]

_ROUTE_TARGETS = {CONTINUE: TOOLS_NODE, ITERATION_LIMIT: LIMIT_NODE, END_TURN: END}


class AgentOrchestrator:
    """Retrieval agent orchestrator using LangGraph"""

    def __init__(
        self,
        reasoning_step: ReasoningStep,
        tool_executor: ToolExecutor,
        max_iterations: int = 10
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        self.reasoning_step = reasoning_step
        self.tool_executor = tool_executor
        self.tool_registry = tool_executor.registry
        self.max_iterations = max_iterations
        self.workflow = self._create_workflow()

    @classmethod
    def from_services(cls, services: AgentServices, settings: Settings) -> "AgentOrchestrator":
        """Wire the graph over started collaborator services"""

        search_tool = create_milvus_search_tool(
            services.search_service,
            top_k=settings.SEARCH_TOP_K,
            metric=settings.SEARCH_METRIC,
            nprobe=settings.SEARCH_NPROBE
        )
        registry = ToolRegistry([search_tool])
        reasoning_step = ReasoningStep(
            embeddings=services.embeddings,
            llm=services.llm,
            search_tool=search_tool,
            bound_tools=registry.get_available_tools()
        )

        return cls(
            reasoning_step,
            ToolExecutor(registry),
            max_iterations=settings.MAX_AGENT_ITERATIONS
        )

    def _create_workflow(self):
        """Create the agent/tools loop"""

        workflow = StateGraph(ConversationState)

        workflow.add_node(AGENT_NODE, self.agent_node)
        workflow.add_node(TOOLS_NODE, self.tools_node)
        workflow.add_node(LIMIT_NODE, self.limit_node)

        workflow.set_entry_point(AGENT_NODE)

        workflow.add_conditional_edges(
            AGENT_NODE,
            self.route_after_agent,
            {
                CONTINUE: TOOLS_NODE,
                ITERATION_LIMIT: LIMIT_NODE,
                END_TURN: END
            }
        )

        workflow.add_edge(TOOLS_NODE, AGENT_NODE)
        workflow.add_edge(LIMIT_NODE, END)

        return workflow.compile()

    async def agent_node(self, state: ConversationState) -> Dict[str, Any]:
        return await self.reasoning_step(state)

    async def tools_node(self, state: ConversationState) -> Dict[str, Any]:
        return await self.tool_executor(state)

    async def limit_node(self, state: ConversationState) -> Dict[str, Any]:
        """Answer the dispatch requests left open when the turn is cut off"""

        messages = state.get("messages") or []
        if not messages:
            return {"messages": []}

        reason = f"Iteration limit of {self.max_iterations} reached, tool call not executed"
        return {"messages": self.tool_executor.cancel_pending(messages[-1], reason)}

    def route_after_agent(self, state: ConversationState) -> LoopDecision:
        """Routing decision plus the per-turn iteration limit"""

        decision: LoopDecision = should_continue(state)

        try:
            visits = state.get("agent_visits", 0)
            if decision == CONTINUE and visits >= self.max_iterations:
                logger.warning(
                    "Iteration limit reached, ending turn",
                    agent_visits=visits,
                    max_iterations=self.max_iterations
                )
                decision = ITERATION_LIMIT

            agent_logger.log_workflow_transition(
                from_node=AGENT_NODE,
                to_node=_ROUTE_TARGETS[decision],
                condition=decision,
                state_summary=state_summary(state)
            )
        except Exception:
            logger.exception("Failed to evaluate iteration limit")
            return END_TURN

        return decision

    def _run_config(self) -> Dict[str, Any]:
        # agent and tools alternate, plus the limit node: at most 2 * max_iterations steps
        return {"recursion_limit": 2 * self.max_iterations + 1}

    def _start_turn(self, messages: Sequence[BaseMessage]) -> ConversationState:
        agent_logger.log_agent_event("turn_started", AGENT_NODE, data={"message_count": len(messages)})
        metrics.increment_counter("agent_turns")
        return {"messages": list(messages), "agent_visits": 0}

    def _complete_turn(self, final_state: ConversationState) -> None:
        agent_logger.log_agent_event("turn_completed", AGENT_NODE, data=state_summary(final_state))

    async def run_turn(
        self,
        messages: Sequence[BaseMessage],
        session_id: Optional[str] = None
    ) -> ConversationState:
        """Run one turn to termination and return the final state"""

        session_id = session_id or str(uuid.uuid4())

        with structlog.contextvars.bound_contextvars(session_id=session_id, trace_id=uuid.uuid4().hex):
            initial_state = self._start_turn(messages)

            final_state = await self.workflow.ainvoke(initial_state, config=self._run_config())

            self._complete_turn(final_state)

        return final_state

    async def stream_turn(
        self,
        messages: Sequence[BaseMessage],
        session_id: Optional[str] = None
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield each node's state update as the turn runs"""

        session_id = session_id or str(uuid.uuid4())

        with structlog.contextvars.bound_contextvars(session_id=session_id, trace_id=uuid.uuid4().hex):
            initial_state = self._start_turn(messages)
            final_state: ConversationState = {
                "messages": list(initial_state["messages"]),
                "agent_visits": 0
            }

            async for chunk in self.workflow.astream(
                initial_state,
                config=self._run_config(),
                stream_mode="updates"
            ):
                for update in chunk.values():
                    if not update:
                        continue
                    final_state["messages"].extend(update.get("messages", []))
                    if "agent_visits" in update:
                        final_state["agent_visits"] = update["agent_visits"]
                yield chunk

            self._complete_turn(final_state)
