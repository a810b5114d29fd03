"""Response builders: CORS, the JSON error envelope and the stream relay."""

import time

from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from autorag_chat.api.models import ErrorResponse
from autorag_chat.core.models import RequestContext
from autorag_chat.core.rag import PipelineResult

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

# Not forwarded from the provider: the relay re-chunks the body itself
_SKIPPED_UPSTREAM_HEADERS = {
    "connection",
    "content-length",
    "keep-alive",
    "transfer-encoding",
}


def error_response(message: str, status_code: int = 500, details: str | None = None) -> JSONResponse:
    """Build the JSON error envelope with CORS headers."""
    body = ErrorResponse(error=message, details=details)
    return JSONResponse(
        body.model_dump(exclude_none=True),
        status_code=status_code,
        headers=CORS_HEADERS,
    )


def header_safe(value: str) -> str:
    """Make free text usable as a single-line latin-1 header value."""
    value = " ".join(value.split())
    return value.encode("latin-1", "replace").decode("latin-1")


def relay_response(result: PipelineResult, context: RequestContext) -> StreamingResponse:
    """Stream the provider's body through unchanged with diagnostic headers.

    The upstream response is closed once the relay finishes.
    """
    upstream = result.generation.response
    rag_context = result.rag_context

    # Header names are lowercased so overrides replace provider values
    headers = {
        key.lower(): value
        for key, value in upstream.headers.items()
        if key.lower() not in _SKIPPED_UPSTREAM_HEADERS
    }
    headers.setdefault("content-type", "text/event-stream")
    headers["cache-control"] = "no-cache"

    elapsed_ms = int((time.time() - context.start_time) * 1000)
    headers["x-processing-time"] = f"{elapsed_ms}ms"
    headers["x-rag-documents"] = str(rag_context.document_count)
    headers["x-rag-average-score"] = f"{rag_context.average_score:.3f}"
    headers["x-request-id"] = context.request_id

    if result.generation.fallback_used:
        headers["x-fallback-used"] = "true"
        headers["x-original-error"] = header_safe(result.generation.original_error or "")

    return StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )
