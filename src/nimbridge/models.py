"""Data models and schemas for the NIM bridge proxy."""

from typing import Dict, List, Any, Optional, Union
from pydantic import BaseModel, ConfigDict, field_validator


class Message(BaseModel):
    """Chat message model."""
    model_config = ConfigDict(extra="allow")

    role: str
    content: Optional[Union[str, List[Dict[str, Any]]]] = None


class ChatCompletionRequest(BaseModel):
    """Request model for chat completions."""
    model: str
    messages: List[Message]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: Optional[bool] = False


class ResponseMessage(BaseModel):
    """Assistant message in a non-streaming response."""
    role: str = "assistant"
    content: str = ""


class Choice(BaseModel):
    """Choice model for chat completions."""
    index: int = 0
    message: ResponseMessage
    finish_reason: Optional[str] = None


class Usage(BaseModel):
    """Token usage totals, zero when the upstream does not report them."""
    model_config = ConfigDict(extra="allow")

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @field_validator("prompt_tokens", "completion_tokens", "total_tokens", mode="before")
    @classmethod
    def null_as_zero(cls, value):
        return 0 if value is None else value


class ChatCompletionResponse(BaseModel):
    """Response model for chat completions."""
    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[Choice]
    usage: Usage = Usage()
