"""Per-document locks guarding index operations."""

import logging
from contextlib import contextmanager
from typing import Iterator, Set

from docrag.core.exceptions import AlreadyIndexingError

logger = logging.getLogger(__name__)


class IndexLockRegistry:
    """Fail-fast, process-local locks keyed by document id.

    A second request for a held document raises instead of waiting; callers
    are expected to poll the index status.
    """

    def __init__(self) -> None:
        self._held: Set[str] = set()

    def is_locked(self, document_id: str) -> bool:
        return document_id in self._held

    @contextmanager
    def hold(self, document_id: str) -> Iterator[None]:
        """Hold the lock for a document for the duration of the block."""
        if document_id in self._held:
            raise AlreadyIndexingError(
                f"Document {document_id} is already being indexed")
        self._held.add(document_id)
        try:
            yield
        finally:
            self._held.discard(document_id)
