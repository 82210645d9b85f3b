"""Document storage - where generated markdown ends up.

The pipeline only needs ``put(path, content, content_type)``. Failures
raise ``StorageError``; the documents stage downgrades them to warnings.
"""

from abc import ABC, abstractmethod
from pathlib import Path

import anyio
from loguru import logger

from ticket_planner.core.exceptions import StorageError

MARKDOWN = "text/markdown"


class DocumentStore(ABC):
    """Capability interface for document storage."""

    @abstractmethod
    async def put(self, path: str, content: str, content_type: str = MARKDOWN) -> str:
        """
        Store a document.

        Args:
            path: Relative storage path, using forward slashes.
            content: Document body.
            content_type: MIME type of the body.

        Returns:
            Location of the stored document.

        Raises:
            StorageError: If the document cannot be stored.
        """


class LocalDocumentStore(DocumentStore):
    """
    Store documents under a directory on the local filesystem.

    Example:
        >>> store = LocalDocumentStore("./planner-output")
        >>> await store.put("specs/spec-1/SUMMARY.md", "# Summary")
        'planner-output/specs/spec-1/SUMMARY.md'
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise StorageError(path, "path escapes the storage root")
        return target

    async def put(self, path: str, content: str, content_type: str = MARKDOWN) -> str:
        target = anyio.Path(self._resolve(path))
        try:
            await target.parent.mkdir(parents=True, exist_ok=True)
            await target.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write {target}: {e}")
            raise StorageError(path, str(e)) from e

        logger.debug(f"Stored {path} ({len(content)} chars, {content_type})")
        return str(target)


class InMemoryDocumentStore(DocumentStore):
    """Keep documents in a dict. Used by tests and dry runs."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.documents: dict[str, str] = {}
        self.content_types: dict[str, str] = {}
        self.fail_on = fail_on or set()

    async def put(self, path: str, content: str, content_type: str = MARKDOWN) -> str:
        if path in self.fail_on:
            raise StorageError(path, "write rejected")
        self.documents[path] = content
        self.content_types[path] = content_type
        return path
