"""Core chat pipeline components."""

from autorag_chat.core.generation import Generator
from autorag_chat.core.prompt import build_enhanced_system_prompt
from autorag_chat.core.rag import ChatPipeline
from autorag_chat.core.retrieval import AutoRAGRetriever
from autorag_chat.core.validation import validate_chat_request

__all__ = [
    "AutoRAGRetriever",
    "ChatPipeline",
    "Generator",
    "build_enhanced_system_prompt",
    "validate_chat_request",
]
