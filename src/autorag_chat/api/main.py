"""FastAPI application for the AutoRAG chat API."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import Match, Mount

from autorag_chat.api.responses import CORS_HEADERS, error_response
from autorag_chat.api.routes.chat import close_chat_pipeline
from autorag_chat.api.routes.chat import router as chat_router
from autorag_chat.config import get_settings
from autorag_chat.core.generation import LLM_FAILURE
from autorag_chat.core.models import ProcessingError, ProcessingStage

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    404: "Not found",
    405: "Method not allowed",
}


class FrontendMount(Mount):
    """Mount for the static frontend that never claims /api paths.

    API paths stay with the router so unknown routes are 404s and wrong
    methods are 405s.
    """

    def matches(self, scope):
        path = scope.get("path", "")
        if path == "/api" or path.startswith("/api/"):
            return Match.NONE, {}
        return super().matches(scope)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_chat_pipeline()


def create_app(static_dir: Path | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="AutoRAG Chat API",
        description="Chat proxy combining AutoRAG search with streamed LLM generation",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS on every response, including preflights without an Origin header
    @app.middleware("http")
    async def cors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(ProcessingError)
    async def processing_error_handler(request: Request, exc: ProcessingError):
        logger.error("[%s] %s failure: %s", exc.context.request_id, exc.stage.value, exc.message)
        if exc.stage is ProcessingStage.LLM:
            return error_response(LLM_FAILURE, 503, details=exc.to_json())
        return error_response("Internal server error occurred", 500, details=exc.to_json())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = _STATUS_MESSAGES.get(exc.status_code, str(exc.detail))
        return error_response(message, exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return error_response("Internal server error occurred", 500, details=str(exc))

    app.include_router(chat_router)

    # Serve the static frontend if it exists
    static_dir = static_dir or get_settings().static_dir
    if static_dir.exists():
        app.router.routes.append(
            FrontendMount("/", app=StaticFiles(directory=str(static_dir), html=True), name="static")
        )

    return app


# Create app instance for uvicorn
app = create_app()
