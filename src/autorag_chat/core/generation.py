"""Streaming LLM generation with a single un-augmented fallback."""

import logging
from dataclasses import dataclass

import httpx

from autorag_chat.core.models import (
    ChatMessage,
    ProcessingError,
    ProcessingStage,
    RequestContext,
)

logger = logging.getLogger(__name__)

LLM_FAILURE = "AI model temporarily unavailable. Please try again."


@dataclass
class GenerationResult:
    """An open upstream stream plus how it was obtained."""

    response: httpx.Response
    fallback_used: bool = False
    original_error: str | None = None


def build_messages(system_prompt: str, history: list[ChatMessage]) -> list[ChatMessage]:
    """Prepend the system prompt, dropping any client-supplied system messages."""
    return [
        {"role": "system", "content": system_prompt},
        *(msg for msg in history if msg["role"] != "system"),
    ]


class Generator:
    """Client for the hosted LLM's streaming run endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        account_id: str,
        model: str,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ):
        self.client = client
        self.account_id = account_id
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    def _run_url(self) -> str:
        return f"/accounts/{self.account_id}/ai/run/{self.model}"

    async def open_stream(self, messages: list[ChatMessage]) -> httpx.Response:
        """Start a streamed generation and return the open response.

        Raises:
            httpx.HTTPStatusError: The provider answered with a non-2xx status.
                The body is not read.
            httpx.HTTPError: The request could not be made.
        """
        request = self.client.build_request(
            "POST",
            self._run_url(),
            json={
                "messages": messages,
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
                "stream": True,
            },
        )
        response = await self.client.send(request, stream=True)
        if not response.is_success:
            await response.aclose()
            raise httpx.HTTPStatusError(
                f"LLM API error: {response.status_code} {response.reason_phrase}",
                request=request,
                response=response,
            )
        return response

    async def generate(
        self,
        history: list[ChatMessage],
        augmented_prompt: str,
        base_prompt: str,
        context: RequestContext,
    ) -> GenerationResult:
        """Generate with the augmented prompt, retrying once without it.

        Any failure of the primary call (network, non-2xx status or other
        exception) triggers exactly one fallback call that uses the base
        prompt with no knowledge base context.

        Args:
            history: Conversation from the client.
            augmented_prompt: System prompt including retrieved context.
            base_prompt: System prompt without retrieved context.
            context: The request being served.

        Returns:
            The open upstream stream.

        Raises:
            ProcessingError: Both the primary and the fallback call failed.
        """
        request_id = context.request_id
        try:
            response = await self.open_stream(build_messages(augmented_prompt, history))
            return GenerationResult(response=response)
        except Exception as e:
            primary_error = ProcessingError(
                stage=ProcessingStage.LLM,
                message=str(e) or type(e).__name__,
                context=context,
                recoverable=True,
                fallback_action="Use general knowledge without RAG context",
            )
            logger.error("[%s] LLM generation failed: %s", request_id, primary_error.message)

        logger.info("[%s] Attempting fallback without knowledge base context", request_id)
        try:
            response = await self.open_stream(build_messages(base_prompt, history))
        except Exception as e:
            fallback_message = str(e) or type(e).__name__
            logger.error("[%s] Fallback also failed: %s", request_id, fallback_message)
            raise ProcessingError(
                stage=ProcessingStage.LLM,
                message=primary_error.message,
                context=context,
                recoverable=False,
                fallback_action=primary_error.fallback_action,
                details={"fallbackError": fallback_message},
            ) from e

        return GenerationResult(
            response=response,
            fallback_used=True,
            original_error=primary_error.message,
        )
