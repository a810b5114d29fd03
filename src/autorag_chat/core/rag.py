"""RAG chat pipeline: search, prompt augmentation, streamed generation."""

import logging
import random
import string
import time
from dataclasses import dataclass
import httpx

from autorag_chat.api.models import ChatRequest, RagSettings
from autorag_chat.config import Settings
from autorag_chat.core.generation import GenerationResult, Generator
from autorag_chat.core.models import (
    ChatMessage,
    EnhancedSystemPrompt,
    RAGConfig,
    RAGContext,
    RequestContext,
)
from autorag_chat.core.prompt import build_enhanced_system_prompt
from autorag_chat.core.retrieval import AutoRAGRetriever

logger = logging.getLogger(__name__)


def generate_request_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"req_{int(time.time() * 1000)}_{suffix}"


def get_user_message(messages: list[ChatMessage]) -> str:
    """Return the content of the last user message."""
    for msg in reversed(messages):
        if msg["role"] == "user":
            return msg["content"]
    return ""


@dataclass
class PipelineResult:
    """Everything the relay needs to answer one chat request."""

    rag_context: RAGContext
    system_prompt: EnhancedSystemPrompt
    generation: GenerationResult


class ChatPipeline:
    """Pipeline combining knowledge base search and LLM generation."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the pipeline.

        Args:
            settings: Application settings.
            transport: Optional httpx transport, used to stub the hosted API.
        """
        self.settings = settings
        self.client = httpx.AsyncClient(
            base_url=settings.workers_ai_base_url,
            headers={"Authorization": f"Bearer {settings.workers_ai_api_token}"},
            timeout=httpx.Timeout(settings.llm_timeout, connect=10.0),
            transport=transport,
        )
        self.retriever = AutoRAGRetriever(self.client, settings.workers_ai_account_id)
        self.generator = Generator(
            self.client,
            account_id=settings.workers_ai_account_id,
            model=settings.llm_model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )

    def create_context(
        self,
        chat_request: ChatRequest,
        start_time: float,
        request_id: str,
    ) -> RequestContext:
        """Build the request context from a validated request body."""
        overrides = chat_request.ragSettings or RagSettings()

        def override(key: str, default):
            value = getattr(overrides, key)
            return default if value is None else value

        rag_config = RAGConfig(
            index=self.settings.autorag_index,
            max_results=override("maxResults", self.settings.rag_max_results),
            score_threshold=override("scoreThreshold", self.settings.rag_score_threshold),
            rewrite_query=override("rewriteQuery", self.settings.rag_rewrite_query),
        )
        return RequestContext(
            user_message=get_user_message(chat_request.history()),
            system_prompt=chat_request.systemPrompt,
            rag_settings=rag_config,
            start_time=start_time,
            request_id=request_id,
        )

    async def run(
        self,
        chat_request: ChatRequest,
        context: RequestContext,
    ) -> PipelineResult:
        """Run search, prompt building and generation for one request.

        Args:
            chat_request: The validated request body.
            context: The request context.

        Returns:
            The retrieval context, the system prompt used and the open
            upstream stream.

        Raises:
            ProcessingError: Generation failed with and without context.
        """
        request_id = context.request_id

        logger.info("[%s] Step 1: Searching AutoRAG...", request_id)
        search_start = time.monotonic()
        outcome = await self.retriever.search(context.user_message, context.rag_settings)
        rag_context = outcome.context
        logger.info(
            "[%s] AutoRAG search completed in %dms (documents=%d, avg_score=%.3f, has_context=%s)",
            request_id,
            (time.monotonic() - search_start) * 1000,
            rag_context.document_count,
            rag_context.average_score,
            rag_context.has_context,
        )

        logger.info("[%s] Step 2: Building enhanced system prompt...", request_id)
        base_prompt = context.system_prompt or self.settings.default_system_prompt
        system_prompt = build_enhanced_system_prompt(base_prompt, rag_context)
        logger.info(
            "[%s] System prompt built (has_rag_context=%s, token_estimate=%d)",
            request_id,
            system_prompt.has_rag_context,
            system_prompt.token_estimate,
        )

        logger.info("[%s] Step 3: Generating LLM response...", request_id)
        llm_start = time.monotonic()
        generation = await self.generator.generate(
            chat_request.history(),
            augmented_prompt=system_prompt.prompt,
            base_prompt=base_prompt,
            context=context,
        )
        logger.info(
            "[%s] LLM stream opened in %dms (fallback_used=%s)",
            request_id,
            (time.monotonic() - llm_start) * 1000,
            generation.fallback_used,
        )

        return PipelineResult(
            rag_context=rag_context,
            system_prompt=system_prompt,
            generation=generation,
        )

    async def aclose(self) -> None:
        await self.client.aclose()
