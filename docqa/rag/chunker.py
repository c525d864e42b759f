"""Text chunking for the RAG pipeline.

Token counts are estimated as one token per four characters to avoid a
tokenizer dependency.
"""
import math
import re
from typing import List, Tuple, Dict, Any
import structlog

from docqa import config

logger = structlog.get_logger()

CHARS_PER_TOKEN = 4

# A sentence is a run of text ending in one or more of . ! ?; a trailing
# fragment without punctuation counts as a final sentence.
SENTENCE_PATTERN = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")
PARAGRAPH_SPLIT = re.compile(r"\n{2,}")
WHITESPACE = re.compile(r"\s+")

# Windowed chunks only break at a sentence end past this fraction of the window
MIN_BREAK_FRACTION = 0.7


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def normalize_whitespace(text: str) -> str:
    """Trim and collapse whitespace runs to single spaces."""
    return WHITESPACE.sub(" ", text.strip())


def split_sentences(text: str) -> List[str]:
    """Split text into trimmed sentences.

    Text without any sentence-ending punctuation is returned as one sentence.
    """
    sentences = [s.strip() for s in SENTENCE_PATTERN.findall(text)]
    return [s for s in sentences if s]


class TextChunker:
    """Sentence-aware text chunker with token budgets."""

    def __init__(
        self,
        max_tokens: int = None,
        overlap_tokens: int = None,
    ):
        """Initialize the text chunker.

        Args:
            max_tokens: Token budget per chunk (default from config)
            overlap_tokens: Overlap between windowed chunks (default from config)
        """
        self.max_tokens = max_tokens or config.CHUNK_MAX_TOKENS
        self.overlap_tokens = (
            config.CHUNK_OVERLAP_TOKENS if overlap_tokens is None else overlap_tokens
        )

        if self.overlap_tokens >= self.max_tokens:
            raise ValueError(
                f"Overlap ({self.overlap_tokens}) must be less than "
                f"chunk size ({self.max_tokens})"
            )

        logger.info(
            "chunker_initialized",
            max_tokens=self.max_tokens,
            overlap_tokens=self.overlap_tokens,
        )

    @staticmethod
    def token_windows(text: str, chunk_size: int, overlap: int) -> List[Tuple[int, int]]:
        """Compute (start, end) character spans of windowed chunks.

        Spans index into the whitespace-normalized text.

        Args:
            text: Already normalized text
            chunk_size: Window size in tokens
            overlap: Overlap between consecutive windows in tokens

        Returns:
            List of (start, end) spans in order
        """
        if overlap >= chunk_size:
            raise ValueError(
                f"Overlap ({overlap}) must be less than chunk size ({chunk_size})"
            )

        char_size = chunk_size * CHARS_PER_TOKEN
        char_overlap = overlap * CHARS_PER_TOKEN
        text_length = len(text)

        spans = []
        start = 0

        while start < text_length:
            end = min(start + char_size, text_length)

            # Try to break just after the last sentence end inside the window
            if end < text_length:
                threshold = start + char_size * MIN_BREAK_FRACTION
                last_break = max(text.rfind(mark, start, end + 1) for mark in ".!?\n")
                if last_break > threshold:
                    end = last_break + 1

            spans.append((start, end))

            if end >= text_length:
                break

            next_start = end - char_overlap
            start = next_start if next_start > start else end

        return spans

    def chunk_by_tokens(self, text: str, chunk_size: int = None, overlap: int = None) -> List[str]:
        """Split text into overlapping fixed-size windows.

        Args:
            text: Text to chunk
            chunk_size: Window size in tokens (default: chunker budget)
            overlap: Overlap in tokens (default: chunker overlap)

        Returns:
            List of chunk strings
        """
        if not text or not text.strip():
            return []

        chunk_size = chunk_size or self.max_tokens
        overlap = self.overlap_tokens if overlap is None else overlap

        clean = normalize_whitespace(text)
        chunks = [clean[start:end].strip() for start, end in self.token_windows(clean, chunk_size, overlap)]
        return [c for c in chunks if c]

    def chunk_by_sentences(
        self, text: str, sentences_per_chunk: int = 5, overlap_sentences: int = 1
    ) -> List[str]:
        """Group sentences into fixed-size windows with sentence overlap."""
        if not text or not text.strip():
            return []

        if overlap_sentences >= sentences_per_chunk:
            raise ValueError(
                f"Overlap ({overlap_sentences}) must be less than "
                f"sentences per chunk ({sentences_per_chunk})"
            )

        sentences = split_sentences(text)
        chunks = []
        start = 0

        while start < len(sentences):
            end = min(start + sentences_per_chunk, len(sentences))
            chunks.append(" ".join(sentences[start:end]))
            if end == len(sentences):
                break
            start = end - overlap_sentences

        return [c for c in chunks if c]

    def chunk_by_paragraphs(self, text: str) -> List[str]:
        """Split text on blank lines."""
        if not text or not text.strip():
            return []

        paragraphs = (p.strip() for p in PARAGRAPH_SPLIT.split(text))
        return [p for p in paragraphs if p]

    def smart_chunk(
        self, text: str, max_tokens: int = None, overlap_tokens: int = None
    ) -> List[str]:
        """Accumulate whole sentences into chunks within a token budget.

        This is the chunking used at ingestion. ``overlap_tokens`` is
        accepted for signature parity with ``chunk_by_tokens`` but sealed
        chunks do not share text.

        Args:
            text: Text to chunk
            max_tokens: Token budget per chunk (default: chunker budget)
            overlap_tokens: Ignored

        Returns:
            List of chunk strings
        """
        if not text or not text.strip():
            return []

        max_tokens = max_tokens or self.max_tokens

        chunks = []
        current: List[str] = []
        current_tokens = 0

        for sentence in split_sentences(text):
            sentence_tokens = estimate_tokens(sentence)

            if current and current_tokens + sentence_tokens > max_tokens:
                chunks.append(" ".join(current))
                current = [sentence]
                current_tokens = sentence_tokens
            else:
                current.append(sentence)
                current_tokens += sentence_tokens

        if current:
            chunks.append(" ".join(current))

        logger.debug(
            "text_chunked",
            text_length=len(text),
            chunk_count=len(chunks),
            max_tokens=max_tokens,
        )

        return chunks

    @staticmethod
    def get_stats(chunks: List[str]) -> Dict[str, Any]:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of chunk strings

        Returns:
            Dictionary with chunk statistics
        """
        sizes = [len(c) for c in chunks]
        total_chars = sum(sizes)
        average = total_chars / len(chunks) if chunks else 0

        return {
            "total_chunks": len(chunks),
            "total_characters": total_chars,
            "total_tokens": math.ceil(total_chars / CHARS_PER_TOKEN),
            "average_chunk_size": average,
            "average_chunk_tokens": math.ceil(average / CHARS_PER_TOKEN),
            "min_chunk_size": min(sizes) if sizes else 0,
            "max_chunk_size": max(sizes) if sizes else 0,
        }


# Singleton instance for convenience
_chunker_instance = None


def get_chunker() -> TextChunker:
    """Get a singleton text chunker instance.

    Returns:
        TextChunker instance with default config
    """
    global _chunker_instance
    if _chunker_instance is None:
        _chunker_instance = TextChunker()
    return _chunker_instance


# Convenience function
def chunk_text(text: str) -> List[str]:
    """Chunk text the way ingestion does (convenience function)."""
    return get_chunker().smart_chunk(text)
