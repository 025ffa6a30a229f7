from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage


class ChatMessage(BaseModel):
    """A message supplied by the client"""
    role: Literal["user", "assistant", "system"]
    content: Union[str, List[Dict[str, Any]]]

    def to_langchain(self) -> BaseMessage:
        if self.role == "user":
            return HumanMessage(content=self.content)
        if self.role == "assistant":
            return AIMessage(content=self.content)
        return SystemMessage(content=self.content)


class ChatRequest(BaseModel):
    """Request body for a chat turn"""
    session_id: Optional[str] = Field(None, description="Session identifier")
    messages: List[ChatMessage] = Field(min_length=1, description="Conversation so far, oldest first")


class ChatResponse(BaseModel):
    """Result of a chat turn"""
    session_id: str
    response: Union[str, List[Any]] = Field(description="Content of the final assistant message")
    messages: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Messages appended during the turn"
    )


class ToolInfo(BaseModel):
    """Registered tool description"""
    name: str
    description: str
    category: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
