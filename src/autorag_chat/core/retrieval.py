"""Knowledge base search against a hosted AutoRAG index."""

import logging
from typing import Any

import httpx

from autorag_chat.core.models import (
    RAGConfig,
    RAGContext,
    RAGFailure,
    RAGSource,
    RetrievalOutcome,
)

logger = logging.getLogger(__name__)

RELEVANT_TEXT_LENGTH = 200


def empty_rag_context() -> RAGContext:
    """Context used when the search returns nothing usable."""
    return RAGContext()


def is_search_result(doc: Any) -> bool:
    """Check that a search result document has the expected shape."""
    if not isinstance(doc, dict):
        return False
    score = doc.get("score")
    content = doc.get("content")
    return (
        isinstance(doc.get("file_id"), str)
        and isinstance(doc.get("filename"), str)
        and isinstance(score, (int, float))
        and not isinstance(score, bool)
        and isinstance(content, list)
        and all(
            isinstance(part, dict)
            and isinstance(part.get("type"), str)
            and isinstance(part.get("text"), str)
            for part in content
        )
    )


def build_rag_context(documents: list[Any]) -> RAGContext:
    """Build the prompt context from raw search result documents.

    ``document_count`` and the average's denominator are the raw number of
    documents; the average also includes shape-valid documents without text.
    Only shape-valid documents with text end up in the context text and
    the sources.
    """
    if not documents:
        return empty_rag_context()

    context_parts = []
    sources = []
    total_score = 0.0

    for index, doc in enumerate(documents, 1):
        if not is_search_result(doc):
            logger.warning("Skipping invalid search result structure: %r", doc)
            continue

        score = float(doc["score"])
        total_score += score

        text = "\n".join(
            part["text"] for part in doc["content"] if part["type"] == "text"
        ).strip()
        if not text:
            continue

        context_parts.append(
            f"[Document {index}: {doc['filename']} (Relevance: {score:.2f})]\n{text}"
        )
        relevant_text = text[:RELEVANT_TEXT_LENGTH]
        if len(text) > RELEVANT_TEXT_LENGTH:
            relevant_text += "..."
        sources.append(
            RAGSource(filename=doc["filename"], score=score, relevant_text=relevant_text)
        )

    return RAGContext(
        context_text="\n\n".join(context_parts),
        document_count=len(documents),
        average_score=total_score / len(documents),
        sources=sources,
    )


class AutoRAGRetriever:
    """Client for the hosted AutoRAG search endpoint."""

    def __init__(self, client: httpx.AsyncClient, account_id: str):
        """Initialize the retriever.

        Args:
            client: HTTP client pointed at the Workers AI REST API.
            account_id: Account that owns the AutoRAG index.
        """
        self.client = client
        self.account_id = account_id

    def _search_url(self, index: str) -> str:
        return f"/accounts/{self.account_id}/autorag/rags/{index}/search"

    def _degraded(self, query: str, error: str) -> RetrievalOutcome:
        logger.warning("AutoRAG search failed, continuing without context: %s", error)
        return RetrievalOutcome(
            context=empty_rag_context(),
            failure=RAGFailure(attempted=True, error=error, query=query),
        )

    async def search(self, query: str, rag_config: RAGConfig) -> RetrievalOutcome:
        """Search the knowledge base for documents relevant to a query.

        Args:
            query: The user's message.
            rag_config: Index and ranking options.

        Returns:
            The built context; on any failure, an empty context with the
            failure recorded.
        """
        payload = {
            "query": query,
            "max_num_results": rag_config.max_results,
            "ranking_options": {"score_threshold": rag_config.score_threshold},
            "rewrite_query": rag_config.rewrite_query,
        }
        logger.debug("AutoRAG search options: %s", payload)

        try:
            response = await self.client.post(self._search_url(rag_config.index), json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            return self._degraded(query, f"{type(e).__name__}: {e}")
        except ValueError as e:
            return self._degraded(query, f"Invalid JSON from search endpoint: {e}")

        # The REST API wraps payloads in {"success": ..., "result": {...}}
        result = body.get("result", body) if isinstance(body, dict) else None
        documents = result.get("data") if isinstance(result, dict) else None
        if not isinstance(documents, list):
            return self._degraded(query, "Search response has no data array")

        logger.info("AutoRAG search returned %d documents", len(documents))
        return RetrievalOutcome(context=build_rag_context(documents))
