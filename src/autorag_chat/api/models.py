"""API request/response models."""

from datetime import datetime, timezone
from typing import Annotated, Literal

from pydantic import BaseModel, Field, StrictBool, StrictInt, StrictStr, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

DEFAULT_MAX_MESSAGE_LENGTH = 50000
DEFAULT_MAX_SYSTEM_PROMPT_LENGTH = 10000


def _limit(info: ValidationInfo, key: str, default: int) -> int:
    return (info.context or {}).get(key, default)


class ChatRequestMessage(BaseModel):
    """One message of the conversation sent by the client.

    The content limit is read from the ``max_message_length`` validation
    context key.
    """

    role: Literal["system", "user", "assistant"]
    content: StrictStr

    @field_validator("content")
    @classmethod
    def check_content_length(cls, value: str, info: ValidationInfo) -> str:
        limit = _limit(info, "max_message_length", DEFAULT_MAX_MESSAGE_LENGTH)
        if len(value) > limit:
            raise PydanticCustomError(
                "content_too_long",
                "Message content too long (max {limit} characters)",
                {"limit": limit},
            )
        return value


class RagSettings(BaseModel):
    """Per-request retrieval overrides. Missing or null fields use the defaults."""

    maxResults: Annotated[StrictInt, Field(gt=0)] | None = None
    scoreThreshold: Annotated[float, Field(ge=0, le=1, strict=True)] | None = None
    rewriteQuery: StrictBool | None = None


class ChatRequest(BaseModel):
    """Request body for the chat endpoint."""

    messages: list[ChatRequestMessage] = Field(..., min_length=1)
    systemPrompt: StrictStr | None = Field(None, description="Replaces the default system prompt")
    ragSettings: RagSettings | None = None

    @field_validator("systemPrompt")
    @classmethod
    def check_system_prompt_length(cls, value: str | None, info: ValidationInfo) -> str | None:
        limit = _limit(info, "max_system_prompt_length", DEFAULT_MAX_SYSTEM_PROMPT_LENGTH)
        if value is not None and len(value) > limit:
            raise PydanticCustomError(
                "system_prompt_too_long",
                "System prompt too long (max {limit} characters)",
                {"limit": limit},
            )
        return value

    def history(self) -> list[dict[str, str]]:
        """The conversation as plain role/content dicts."""
        return [{"role": msg.role, "content": msg.content} for msg in self.messages]


class ErrorResponse(BaseModel):
    """JSON body of every error response."""

    error: str
    details: str | None = None
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    )


class HealthResponse(BaseModel):
    """Response body for the health check endpoint."""

    status: str = "ok"
