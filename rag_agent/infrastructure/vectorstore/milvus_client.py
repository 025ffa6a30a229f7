from typing import Any, Dict, List, Optional, Sequence
import asyncio

import structlog
from pymilvus import MilvusClient

from rag_agent.infrastructure.errors import AppError, ErrorStep

logger = structlog.get_logger(__name__)


class MilvusSearchService:
    """Similarity search against a Milvus collection"""

    def __init__(
        self,
        uri: str,
        collection_name: str,
        token: Optional[str] = None,
        output_fields: Optional[List[str]] = None
    ):
        self.uri = uri
        self.collection_name = collection_name
        self.token = token
        self.output_fields = output_fields or ["metadata"]
        self._client: Optional[MilvusClient] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        """Open the client connection"""

        if self._client is not None:
            return

        try:
            self._client = MilvusClient(uri=self.uri, token=self.token or "")
        except Exception as e:
            raise AppError(
                "Failed to initialize Milvus client",
                ErrorStep.MILVUS_CONNECTION,
                {"uri": self.uri, "error": e}
            ) from e

        logger.info("Milvus client initialized successfully", uri=self.uri)

    def close(self) -> None:
        """Close the client connection"""

        if self._client is None:
            return

        self._client.close()
        self._client = None
        logger.info("Milvus client closed", uri=self.uri)

    async def search(
        self,
        embedding: Sequence[float],
        top_k: int = 5,
        metric: str = "L2",
        nprobe: int = 10
    ) -> List[Dict[str, Any]]:
        """Return the top_k nearest items as {score, metadata} dicts, closest first"""

        if self._client is None:
            raise AppError(
                "Milvus client is not connected",
                ErrorStep.MILVUS_CONNECTION,
                {"uri": self.uri}
            )

        logger.debug("Starting Milvus search", vector=len(embedding), collection=self.collection_name)

        # MilvusClient is blocking
        hits = await asyncio.to_thread(
            self._client.search,
            collection_name=self.collection_name,
            data=[list(embedding)],
            limit=top_k,
            output_fields=self.output_fields,
            search_params={"metric_type": metric, "params": {"nprobe": nprobe}},
        )

        results = []
        for hit in (hits[0] if hits else []):
            entity = hit.get("entity") or {}
            results.append({
                "score": hit.get("distance"),
                "metadata": entity.get("metadata"),
            })

        return results
