from typing import Any, Dict, List, Literal, Mapping, Optional, Union
from enum import Enum
import time

from pydantic import BaseModel, Field
from langchain_core.messages import AIMessage, BaseMessage, ToolMessage

ANNOTATIONS_KEY = "tool_annotations"

_ROLE_BY_TYPE = {
    "human": "user",
    "ai": "assistant",
    "system": "system",
    "tool": "tool",
}


class PlainText(BaseModel):
    """Message content given as a single string"""
    kind: Literal["text"] = "text"
    text: str


class FragmentList(BaseModel):
    """Message content given as a list of content blocks"""
    kind: Literal["fragments"] = "fragments"
    fragments: List[Any] = Field(default_factory=list)

    def text_fragments(self) -> List[str]:
        texts = []
        for fragment in self.fragments:
            if isinstance(fragment, str):
                texts.append(fragment)
            elif isinstance(fragment, Mapping) and isinstance(fragment.get("text"), str):
                texts.append(fragment["text"])
        return texts


MessageContent = Union[PlainText, FragmentList]


def as_content(raw: Any) -> Optional[MessageContent]:
    """Classify raw message content; None when it is neither shape"""

    if isinstance(raw, str):
        return PlainText(text=raw)
    if isinstance(raw, (list, tuple)):
        return FragmentList(fragments=list(raw))
    return None


def extract_text(raw: Any) -> str:
    """Text of a message: plain text as-is, text fragments joined by single spaces"""

    content = as_content(raw)
    if isinstance(content, PlainText):
        return content.text
    if isinstance(content, FragmentList):
        return " ".join(content.text_fragments())
    return ""


class ToolCallKind(str, Enum):
    """Whether a tool call asks for execution or only records what happened"""
    DISPATCH = "dispatch"
    ANNOTATION = "annotation"


class ToolCallRecord(BaseModel):
    """Tool call attached to an assistant message"""
    id: str = Field(description="Unique call identifier")
    name: str = Field(description="Tool name")
    arguments: str = Field(description="JSON-encoded arguments")
    kind: ToolCallKind = Field(default=ToolCallKind.ANNOTATION)

    @classmethod
    def annotation(cls, name: str, arguments: str) -> "ToolCallRecord":
        return cls(
            id=f"{name}_{int(time.time() * 1000)}",
            name=name,
            arguments=arguments,
            kind=ToolCallKind.ANNOTATION
        )


def get_annotations(message: BaseMessage) -> List[ToolCallRecord]:
    """Annotation records carried by a message"""

    raw = message.additional_kwargs.get(ANNOTATIONS_KEY) or []
    return [ToolCallRecord.model_validate(item) for item in raw]


def get_dispatch_calls(message: BaseMessage) -> List[Dict[str, Any]]:
    """Tool calls on a message that request execution"""

    if not isinstance(message, AIMessage):
        return []
    return list(message.tool_calls or [])


def role_of(message: BaseMessage) -> str:
    return _ROLE_BY_TYPE.get(message.type, message.type)


def serialize_message(message: BaseMessage) -> Dict[str, Any]:
    """JSON-ready view of a message"""

    data: Dict[str, Any] = {
        "role": role_of(message),
        "content": message.content,
    }

    if isinstance(message, AIMessage):
        data["tool_calls"] = [
            {"id": call.get("id"), "name": call["name"], "args": call.get("args", {})}
            for call in message.tool_calls
        ]
        data["annotations"] = [record.model_dump(mode="json") for record in get_annotations(message)]

    if isinstance(message, ToolMessage):
        data["tool_call_id"] = message.tool_call_id
        data["name"] = message.name
        data["status"] = message.status

    return data
