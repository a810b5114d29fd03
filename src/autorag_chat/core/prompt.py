"""System prompt augmentation with knowledge base context."""

import math

from autorag_chat.core.models import EnhancedSystemPrompt, RAGContext

NO_CONTEXT_SUMMARY = "No relevant documents found in knowledge base"

INSTRUCTIONS = """INSTRUCTIONS:
- When the knowledge base context is relevant to the user's question, prioritize this information
- Reference specific documents when using knowledge base information (e.g., "according to [Document 1: filename]")
- If the knowledge base doesn't contain relevant information for the question, rely on your general knowledge
- Be clear about when you're using knowledge base information vs. general knowledge
- Provide accurate and helpful responses based on the best available information"""


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token, rounded up."""
    return math.ceil(len(text) / 4)


def summarize_context(rag_context: RAGContext) -> str:
    return (
        f"Found {rag_context.document_count} relevant documents "
        f"(avg. relevance: {rag_context.average_score:.2f})"
    )


def build_enhanced_system_prompt(
    base_prompt: str,
    rag_context: RAGContext,
) -> EnhancedSystemPrompt:
    """Merge the base system prompt with retrieved context.

    Args:
        base_prompt: The user's or the default system prompt.
        rag_context: Context from the retrieval step.

    Returns:
        The augmented prompt, or the base prompt untouched when there is
        no context.
    """
    if not rag_context.has_context:
        return EnhancedSystemPrompt(
            prompt=base_prompt,
            has_rag_context=False,
            context_summary=NO_CONTEXT_SUMMARY,
            token_estimate=estimate_tokens(base_prompt),
        )

    context_summary = summarize_context(rag_context)
    prompt = (
        f"{base_prompt}\n\n"
        "KNOWLEDGE BASE CONTEXT:\n"
        f"You have access to relevant information from the knowledge base. {context_summary}:\n\n"
        f"{rag_context.context_text}\n\n"
        f"{INSTRUCTIONS}"
    )

    return EnhancedSystemPrompt(
        prompt=prompt,
        has_rag_context=True,
        context_summary=context_summary,
        token_estimate=estimate_tokens(prompt),
    )
