"""Validation of inbound chat requests."""

from typing import Any

from pydantic import ValidationError

from autorag_chat.api.models import ChatRequest
from autorag_chat.core.models import ValidationResult

MISSING_USER_MESSAGE = "At least one user message is required"


def _format_location(loc: tuple[int | str, ...]) -> str:
    parts = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        else:
            parts.append(f".{item}" if parts else item)
    return "".join(parts)


def _format_error(error: dict[str, Any]) -> str:
    location = _format_location(error["loc"])
    return f"{location}: {error['msg']}" if location else error["msg"]


def _has_user_message(body: Any) -> bool:
    messages = body.get("messages") if isinstance(body, dict) else None
    if not isinstance(messages, list):
        return False
    return any(
        isinstance(msg, dict) and msg.get("role") == "user" and isinstance(msg.get("content"), str)
        for msg in messages
    )


def validate_chat_request(
    body: Any,
    max_system_prompt_length: int = 10000,
    max_message_length: int = 50000,
) -> ValidationResult:
    """Check the shape and size limits of a decoded chat request body.

    Every violated rule is reported, not just the first one. A missing user
    message is always reported, alongside any field errors.

    Args:
        body: The decoded JSON body.
        max_system_prompt_length: Character limit for ``systemPrompt``.
        max_message_length: Character limit for each message's content.

    Returns:
        The validation result, with the parsed ``ChatRequest`` as
        ``sanitized_input`` when the body is valid.
    """
    errors: list[str] = []
    chat_request = None

    try:
        chat_request = ChatRequest.model_validate(
            body,
            context={
                "max_message_length": max_message_length,
                "max_system_prompt_length": max_system_prompt_length,
            },
        )
    except ValidationError as e:
        errors.extend(_format_error(error) for error in e.errors())

    if not _has_user_message(body):
        errors.append(MISSING_USER_MESSAGE)

    return ValidationResult(
        valid=not errors,
        errors=errors,
        sanitized_input=chat_request if not errors else None,
    )
