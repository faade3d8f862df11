"""Interface for the upstream call wrapped by the queue.

The queue only needs an opaque async "make one call for this key" function;
credentials and transport belong to the implementation.
"""

from typing import Any, Awaitable, Protocol


class UpstreamFetcher(Protocol):
    """Performs a single upstream request for a key."""

    def __call__(self, key: str) -> Awaitable[Any]:
        ...
