"""Document storage backends."""

from ticket_planner.storage.base import (
    MARKDOWN,
    DocumentStore,
    InMemoryDocumentStore,
    LocalDocumentStore,
)

__all__ = [
    "MARKDOWN",
    "DocumentStore",
    "InMemoryDocumentStore",
    "LocalDocumentStore",
]
