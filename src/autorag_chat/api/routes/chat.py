"""Chat API route relaying the LLM's SSE stream."""

import json
import logging
import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from autorag_chat.api.models import ErrorResponse, HealthResponse
from autorag_chat.api.responses import error_response, relay_response
from autorag_chat.config import get_settings
from autorag_chat.core.rag import ChatPipeline, generate_request_id
from autorag_chat.core.validation import validate_chat_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

# Global chat pipeline (initialized on first request)
_chat_pipeline: ChatPipeline | None = None


def get_chat_pipeline() -> ChatPipeline:
    """Get or initialize the chat pipeline."""
    global _chat_pipeline

    if _chat_pipeline is None:
        _chat_pipeline = ChatPipeline(settings=get_settings())

    return _chat_pipeline


async def close_chat_pipeline() -> None:
    """Close the pipeline's HTTP client if it was created."""
    global _chat_pipeline

    if _chat_pipeline is not None:
        await _chat_pipeline.aclose()
        _chat_pipeline = None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse()


@router.post(
    "/chat",
    responses={
        200: {"content": {"text/event-stream": {}}, "description": "Relayed LLM stream"},
        400: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def chat(
    request: Request,
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> Response:
    """Answer a conversation with knowledge base context, streamed as SSE."""
    start_time = time.time()
    request_id = generate_request_id()
    settings = pipeline.settings

    try:
        body = await request.json()
    except ValueError:
        logger.error("[%s] Request body is not valid JSON", request_id)
        return error_response("Invalid request: Request body is not valid JSON", 400)

    validation = validate_chat_request(
        body,
        max_system_prompt_length=settings.max_system_prompt_length,
        max_message_length=settings.max_message_length,
    )
    if not validation.valid:
        logger.error("[%s] Validation failed: %s", request_id, validation.errors)
        return error_response(
            f"Invalid request: {', '.join(validation.errors)}",
            400,
            details=json.dumps({"errors": validation.errors}),
        )

    chat_request = validation.sanitized_input
    context = pipeline.create_context(chat_request, start_time, request_id)
    logger.info(
        "[%s] Processing chat request (message=%r, has_system_prompt=%s, rag_settings=%s)",
        request_id,
        context.user_message[:100],
        bool(context.system_prompt),
        context.rag_settings,
    )

    result = await pipeline.run(chat_request, context)
    return relay_response(result, context)
