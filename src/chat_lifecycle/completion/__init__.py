from chat_lifecycle.completion.base import (
    ChatResponse,
    CompletionClient,
    CompletionRequest,
    NormalizedResponse,
    SearchResponse,
    normalize_response,
    parse_completion_response,
)
from chat_lifecycle.completion.http import HTTPCompletionClient

__all__ = [
    "ChatResponse",
    "CompletionClient",
    "CompletionRequest",
    "HTTPCompletionClient",
    "NormalizedResponse",
    "SearchResponse",
    "normalize_response",
    "parse_completion_response",
]
