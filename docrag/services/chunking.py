"""Document chunking service."""

from typing import List, NamedTuple, Optional, Tuple

from langchain_text_splitters import RecursiveCharacterTextSplitter

from docrag.core.config import settings
from docrag.core.exceptions import InconsistentStateError

# Paragraph, line, sentence, clause, word, then a hard character cut.
SEPARATORS = ["\n\n", "\n", ". ", "! ", "? ", ", ", " ", ""]


class TextChunk(NamedTuple):
    """A chunk of text and its character span in the source."""

    text: str
    start: int
    end: int


def split_text(text: str, chunk_size: int, chunk_overlap: int) -> List[TextChunk]:
    """
    Split text into overlapping chunks measured in characters.

    The text is first cut into consecutive windows of at most
    chunk_size - chunk_overlap characters at the strongest separator that
    fits. Each window after the first is then extended backwards by at most
    chunk_overlap characters, starting at a separator boundary inside the
    previous window. Every chunk is therefore text[start:end] and the
    windows cover the input without gaps.

    Args:
        text: Normalized document text.
        chunk_size: Maximum chunk length.
        chunk_overlap: Maximum overlap between consecutive chunks.

    Returns:
        Ordered list of chunks; empty for blank input.

    Raises:
        ValueError: If the size parameters are invalid.
        InconsistentStateError: If the splitter loses or alters characters.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")

    if not text or not text.strip():
        return []

    chunks: List[TextChunk] = []
    for start, end in _windows(text, chunk_size - chunk_overlap):
        if chunks:
            start = _overlap_start(text, chunks[-1].start + 1, start, chunk_overlap)
        chunks.append(TextChunk(text[start:end], start, end))
    return chunks


def _windows(text: str, window_size: int) -> List[Tuple[int, int]]:
    """Cut text into consecutive, non-overlapping spans."""
    splitter = RecursiveCharacterTextSplitter(
        chunk_size=window_size,
        chunk_overlap=0,
        length_function=len,
        separators=SEPARATORS,
        keep_separator="end",
        strip_whitespace=False,
    )
    pieces = splitter.split_text(text)
    if "".join(pieces) != text:
        raise InconsistentStateError("Splitter output does not cover the source text")

    spans = []
    offset = 0
    for piece in pieces:
        spans.append((offset, offset + len(piece)))
        offset += len(piece)
    return spans


def _overlap_start(text: str, lower: int, boundary: int, chunk_overlap: int) -> int:
    """Earliest position after the strongest separator within the overlap window."""
    lower = max(lower, boundary - chunk_overlap)
    for separator in SEPARATORS:
        for pos in range(lower, boundary):
            if text.endswith(separator, 0, pos):
                return pos
    return boundary


def merge_chunks(chunks: List[TextChunk]) -> str:
    """Rebuild the source text from chunks by dropping the overlapping prefixes."""
    if not chunks:
        return ""
    parts = [chunks[0].text]
    for prev, chunk in zip(chunks, chunks[1:]):
        parts.append(chunk.text[prev.end - chunk.start:])
    return "".join(parts)


class ChunkingService:
    """Service for chunking documents into smaller pieces."""

    def __init__(
        self, chunk_size: Optional[int] = None, chunk_overlap: Optional[int] = None
    ) -> None:
        """
        Initialize the chunking service.

        Args:
            chunk_size: Maximum chunk length in characters.
            chunk_overlap: Maximum overlap between consecutive chunks.
        """
        self.chunk_size = chunk_size or settings.chunk_size
        self.chunk_overlap = (
            settings.chunk_overlap if chunk_overlap is None else chunk_overlap
        )
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")

    def chunk_document(self, content: str) -> List[TextChunk]:
        """
        Chunk a document into smaller pieces.

        Args:
            content: Document content to chunk.

        Returns:
            Ordered list of chunks with their character offsets.
        """
        return split_text(content, self.chunk_size, self.chunk_overlap)
