"""
Tests for docrag/services/locks.py
"""

import pytest

from docrag.core.exceptions import AlreadyIndexingError
from docrag.services.locks import IndexLockRegistry


class TestIndexLockRegistry:
    """Test per-document fail-fast locks."""

    def test_second_holder_rejected(self):
        """Test a held document cannot be locked again."""
        locks = IndexLockRegistry()

        with locks.hold("doc-1"):
            assert locks.is_locked("doc-1")
            with pytest.raises(AlreadyIndexingError):
                with locks.hold("doc-1"):
                    pass

    def test_released_on_exit(self):
        """Test the lock is free after the block."""
        locks = IndexLockRegistry()

        with locks.hold("doc-1"):
            pass

        assert not locks.is_locked("doc-1")

    def test_released_on_error(self):
        """Test an exception inside the block still releases the lock."""
        locks = IndexLockRegistry()

        with pytest.raises(RuntimeError):
            with locks.hold("doc-1"):
                raise RuntimeError("boom")

        assert not locks.is_locked("doc-1")

    def test_rejection_keeps_original_holder(self):
        """Test a rejected second request does not release the first holder's lock."""
        locks = IndexLockRegistry()

        with locks.hold("doc-1"):
            with pytest.raises(AlreadyIndexingError):
                with locks.hold("doc-1"):
                    pass
            assert locks.is_locked("doc-1")
