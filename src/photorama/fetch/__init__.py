"""Fetch orchestration: worker pool, in-flight dedup, completion delivery."""

from .completion import CompletionContext, QueueCompletionContext, ThreadCompletionContext
from .coordinator import FetchCoordinator, RequestState

__all__ = [
    "CompletionContext",
    "FetchCoordinator",
    "QueueCompletionContext",
    "RequestState",
    "ThreadCompletionContext",
]
