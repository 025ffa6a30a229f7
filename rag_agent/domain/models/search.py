from typing import Any, List
import json

from pydantic import BaseModel, Field

SUCCESS_CODE = "Success"


class SearchStatus(BaseModel):
    """Status block of a search response"""
    error_code: str = Field(default=SUCCESS_CODE)
    reason: str = Field(default="")

    @property
    def ok(self) -> bool:
        return self.error_code in (SUCCESS_CODE, "0")


class SearchResult(BaseModel):
    """A single retrieved item; lower score is closer under L2"""
    score: float = Field(description="Similarity distance")
    metadata: Any = Field(description="Payload describing the retrieved item")

    def metadata_text(self) -> str:
        if self.metadata is None:
            return ""
        if isinstance(self.metadata, str):
            return self.metadata
        return json.dumps(self.metadata, default=str, ensure_ascii=False)


class SearchResponse(BaseModel):
    """Ordered search results, most relevant first"""
    status: SearchStatus
    results: List[SearchResult]

    def context_block(self) -> str:
        """Newline-joined metadata of every result"""
        return "\n".join(result.metadata_text() for result in self.results)
