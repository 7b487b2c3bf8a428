"""
Tests for docrag/services/chunking.py
Overlapping, boundary-aware splitting with exact source offsets.
"""

import random

import pytest

from docrag.services.chunking import ChunkingService, merge_chunks, split_text

PARAGRAPHS = "\n\n".join(
    [
        "Retrieval-Augmented Generation combines information retrieval with language models. "
        "It lets systems consult external knowledge bases before they answer. "
        "A retriever finds passages and a generator writes the response.",
        "Vector databases store high-dimensional embeddings! They support fast similarity search, "
        "metadata filtering and deletion by id. Popular choices include Qdrant, Pinecone and Weaviate.",
        "Chunking splits long documents into overlapping windows? Overlap keeps sentences that "
        "straddle a boundary retrievable from both sides, which improves recall for short questions.",
    ]
)

SAMPLES = [
    ("The sky is blue. Grass is green.", 1000, 200),
    (PARAGRAPHS, 120, 30),
    (PARAGRAPHS, 200, 50),
    (PARAGRAPHS, 60, 0),
    ("word " * 300, 50, 10),
    ("a" * 50, 10, 3),
    ("line one\nline two\nline three\n" * 20, 45, 15),
    (
        "Dog cat ran it mat on the dog. And dog and the cat cat the and. "
        "On mat ran it the the a sat dog to.\n\nMat the sat.\n\n",
        100,
        20,
    ),
    ("a\n\n\n", 2, 1),
    ("\n\n\nfirst\n\n\n\nsecond\n", 5, 2),
]

WORDS = ["dog", "cat", "ran", "it", "mat", "on", "the", "a", "sat", "to", "and"]
BREAKS = [" ", " ", " ", ". ", "! ", "? ", ", ", ".\n", ".\n\n", "\n\n\n", "\n"]


def random_document(rng: random.Random) -> str:
    """Prose made of a few sentences, some of them repeated, with mixed breaks."""
    sentences = [
        " ".join(rng.choice(WORDS) for _ in range(rng.randint(1, 12)))
        for _ in range(rng.randint(1, 6))
    ]
    parts = []
    for _ in range(rng.randint(1, 60)):
        parts.append(rng.choice(sentences))
        parts.append(rng.choice(BREAKS))
    if rng.random() < 0.3:
        parts.insert(0, "\n" * rng.randint(1, 4))
    return "".join(parts)


class TestSplitText:
    """Test the pure splitting function."""

    @pytest.mark.parametrize("text,chunk_size,chunk_overlap", SAMPLES)
    def test_chunks_reconstruct_source(self, text, chunk_size, chunk_overlap):
        """Test dropping the overlaps rebuilds the input exactly."""
        chunks = split_text(text, chunk_size, chunk_overlap)

        assert len(chunks) >= 1
        assert merge_chunks(chunks) == text

    @pytest.mark.parametrize("text,chunk_size,chunk_overlap", SAMPLES)
    def test_chunk_bounds(self, text, chunk_size, chunk_overlap):
        """Test offsets, sizes and overlaps stay within the parameters."""
        chunks = split_text(text, chunk_size, chunk_overlap)

        assert chunks[0].start == 0
        assert chunks[-1].end == len(text)
        for chunk in chunks[:-1]:
            assert len(chunk.text) <= chunk_size
        for chunk in chunks:
            assert text[chunk.start:chunk.end] == chunk.text
        for prev, chunk in zip(chunks, chunks[1:]):
            assert prev.start < chunk.start <= prev.end
            assert prev.end - chunk.start <= chunk_overlap

    @pytest.mark.parametrize("seed", range(50))
    def test_random_documents_reconstruct(self, seed):
        """Test generated prose with blank-line runs and repeated sentences."""
        rng = random.Random(seed)
        text = random_document(rng)
        chunk_size = rng.randint(2, 400)
        chunk_overlap = rng.randint(0, min(chunk_size - 1, 120))

        chunks = split_text(text, chunk_size, chunk_overlap)

        assert merge_chunks(chunks) == text
        assert chunks[0].start == 0
        assert chunks[-1].end == len(text)
        for chunk in chunks:
            assert text[chunk.start:chunk.end] == chunk.text
            assert len(chunk.text) <= chunk_size
        for prev, chunk in zip(chunks, chunks[1:]):
            assert prev.start < chunk.start <= prev.end
            assert prev.end - chunk.start <= chunk_overlap

    def test_overlap_repeats_context(self):
        """Test consecutive chunks share text when an overlap is requested."""
        text = " ".join(f"token{i}" for i in range(200))
        chunks = split_text(text, 60, 20)

        assert len(chunks) > 3
        for prev, chunk in zip(chunks, chunks[1:]):
            assert prev.end > chunk.start
            assert text[chunk.start:prev.end] == chunk.text[:prev.end - chunk.start]

    def test_prefers_paragraph_boundaries(self):
        """Test paragraphs that fit are never cut in the middle."""
        text = "First paragraph here.\n\nSecond paragraph here.\n\nThird one."
        chunks = split_text(text, 30, 0)

        assert [chunk.text for chunk in chunks] == [
            "First paragraph here.\n\n",
            "Second paragraph here.\n\n",
            "Third one.",
        ]

    def test_prefers_sentence_over_word_boundaries(self):
        """Test a long paragraph is cut after sentence punctuation."""
        text = "Alpha beta gamma. Delta epsilon zeta. Eta theta iota."
        chunks = split_text(text, 25, 0)

        assert chunks[0].text == "Alpha beta gamma. "
        assert chunks[1].text == "Delta epsilon zeta. "

    def test_hard_cut_without_separators(self):
        """Test text without any separator falls back to a character cut."""
        chunks = split_text("x" * 25, 10, 0)

        assert [len(chunk.text) for chunk in chunks] == [10, 10, 5]

    def test_is_deterministic(self):
        """Test identical input yields identical chunks."""
        assert split_text(PARAGRAPHS, 90, 20) == split_text(PARAGRAPHS, 90, 20)

    @pytest.mark.parametrize("text", ["", "   ", "\n\n\t"])
    def test_blank_input_produces_no_chunks(self, text):
        """Test empty or whitespace-only input yields nothing."""
        assert split_text(text, 100, 10) == []

    @pytest.mark.parametrize("chunk_size,chunk_overlap", [(100, 100), (100, 150), (0, 0), (10, -1)])
    def test_invalid_parameters_rejected(self, chunk_size, chunk_overlap):
        """Test overlap must be smaller than the chunk size."""
        with pytest.raises(ValueError):
            split_text("some text", chunk_size, chunk_overlap)


class TestChunkingService:
    """Test the service wrapper."""

    def test_uses_configured_sizes(self):
        """Test the service forwards its parameters."""
        service = ChunkingService(chunk_size=120, chunk_overlap=30)

        assert service.chunk_document(PARAGRAPHS) == split_text(PARAGRAPHS, 120, 30)

    def test_zero_overlap_is_kept(self):
        """Test an explicit zero overlap is not replaced by the default."""
        service = ChunkingService(chunk_size=50, chunk_overlap=0)

        assert service.chunk_overlap == 0

    def test_rejects_overlap_not_below_size(self):
        """Test misconfiguration fails at construction."""
        with pytest.raises(ValueError):
            ChunkingService(chunk_size=100, chunk_overlap=100)
