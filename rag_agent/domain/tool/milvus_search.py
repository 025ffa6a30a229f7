from typing import List
import json

import structlog
from pydantic import BaseModel, Field
from langchain_core.tools import BaseTool, StructuredTool

from rag_agent.domain.models.search import SUCCESS_CODE
from rag_agent.infrastructure.errors import AppError, ErrorStep
from rag_agent.infrastructure.observability.logging import agent_logger
from rag_agent.infrastructure.vectorstore.milvus_client import MilvusSearchService

logger = structlog.get_logger(__name__)

MILVUS_SEARCH_TOOL_NAME = "milvus_search"


class MilvusSearchInput(BaseModel):
    """Arguments of the milvus_search tool"""
    embedding: List[float] = Field(description="The vector embedding of the query")


def create_milvus_search_tool(
    search_service: MilvusSearchService,
    top_k: int = 5,
    metric: str = "L2",
    nprobe: int = 10
) -> BaseTool:
    """
    Build the vector search tool over a search service.

    The tool never raises: results come back as a JSON document with a
    status block, and any client failure comes back as plain error text.
    """

    async def milvus_search(embedding: List[float]) -> str:
        try:
            results = await search_service.search(
                embedding,
                top_k=top_k,
                metric=metric,
                nprobe=nprobe
            )
        except Exception as e:
            error = AppError(
                "Error searching Milvus",
                ErrorStep.MILVUS_SEARCH,
                {"originalError": str(e)}
            )
            agent_logger.log_error(error)
            return f"An error occurred while searching: {error.message}"

        logger.info("Milvus search completed", resultCount=len(results))

        return json.dumps(
            {
                "status": {"error_code": SUCCESS_CODE, "reason": ""},
                "results": results,
            },
            default=str
        )

    return StructuredTool.from_function(
        coroutine=milvus_search,
        name=MILVUS_SEARCH_TOOL_NAME,
        description="Search for relevant information in the vector database",
        args_schema=MilvusSearchInput,
    )
