import json
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


Role = Literal["system", "user", "assistant", "tool"]


class ChatMessage(BaseModel):
    role: Role
    # Content parts (text, image_url, anything else) are forwarded as-is.
    content: Union[str, List[Dict[str, Any]]] = ""
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    model_config = {"extra": "allow", "frozen": True}

    @field_validator("content", mode="before")
    @classmethod
    def _none_is_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ChatRequest(BaseModel):
    model: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)

    @field_validator("messages", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class ToolDefinition(BaseModel):
    name: str
    description: str
    parameters: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolInvocationRequest(BaseModel):
    id: str = ""
    type: str = "function"
    name: str = ""
    arguments: str = "{}"


class ToolInvocationResult(BaseModel):
    tool_call_id: str
    name: str
    content: Dict[str, Any] = Field(default_factory=dict)

    def to_message(self) -> ChatMessage:
        return ChatMessage(
            role="tool",
            tool_call_id=self.tool_call_id,
            name=self.name,
            content=json.dumps(self.content, ensure_ascii=False),
        )


class SearchResult(BaseModel):
    title: str = ""
    url: str = ""
    snippet: str = ""

    @field_validator("title", "url", "snippet", mode="before")
    @classmethod
    def _none_is_blank(cls, value: Any) -> Any:
        return "" if value is None else value


class WebSearchArgs(BaseModel):
    query: str
    max_results: Optional[int] = None

    @field_validator("query")
    @classmethod
    def _query_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must be non-empty")
        return value

    @field_validator("max_results", mode="before")
    @classmethod
    def _lenient_max_results(cls, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError, OverflowError):
            return None


class FinalAnswer(BaseModel):
    text: str = ""
