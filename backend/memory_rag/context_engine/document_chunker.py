"""
Document Chunker - Sentence-aware segmentation for embedding

Splits extracted document text into bounded chunks that respect sentence and
paragraph boundaries, so a chunk never ends in the middle of a word.

Key properties:
    - Sentences accumulate until the next one would overflow the size limit
    - A sentence longer than the limit becomes its own (oversized) chunk
    - Chunks are joined with single spaces, so joining the chunks back
      reproduces the text up to whitespace normalization
    - Optional sentence overlap between consecutive chunks
"""

import math
import re
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class DocumentChunk:
    """A chunk plus its position inside the parent document"""
    text: str
    chunk_index: int
    total_chunks: int
    section: Optional[str] = None
    page: Optional[int] = None


class DocumentChunker:
    """
    Sentence-boundary chunker.

    Boundaries are sentence terminators (. ! ?) followed by whitespace, and
    blank lines between paragraphs. No external state; safe to share.
    """

    def __init__(self, max_chunk_size: int = 1500, overlap_sentences: int = 0):
        """
        Initialize the chunker.

        Args:
            max_chunk_size: Default maximum chunk length in characters
            overlap_sentences: Trailing sentences repeated at the start of the next chunk
        """
        if max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        if overlap_sentences < 0:
            raise ValueError("overlap_sentences cannot be negative")

        self.max_chunk_size = max_chunk_size
        self.overlap_sentences = overlap_sentences

        self.sentence_boundary_pattern = re.compile(r'(?<=[.!?])\s+|\n\s*\n')
        self.header_pattern = re.compile(r'^#{1,6}\s+(.+)$')

    def chunk(self, text: str, max_chunk_size: Optional[int] = None) -> List[str]:
        """
        Split text into ordered chunks.

        Args:
            text: Raw extracted text
            max_chunk_size: Overrides the configured limit for this call

        Returns:
            Ordered list of non-empty chunks; empty for blank input
        """
        return [self._join(group) for group in self._sentence_groups(text, max_chunk_size)]

    def chunk_document(
        self,
        text: str,
        max_chunk_size: Optional[int] = None,
        page_count: Optional[int] = None,
    ) -> List[DocumentChunk]:
        """
        Chunk text and attach index, section and estimated page to each chunk.

        A chunk is labelled with the heading in effect where it starts (or the
        first heading it contains). Pages are estimated by spreading chunks
        evenly over ``page_count``.
        """
        groups = self._sentence_groups(text, max_chunk_size)
        total = len(groups)

        chunks: List[DocumentChunk] = []
        current_section: Optional[str] = None

        for index, group in enumerate(groups):
            headings = [h for h in (self._heading(sentence) for sentence in group) if h]

            section = current_section
            if headings and (section is None or self._heading(group[0])):
                section = headings[0]
            if headings:
                current_section = headings[-1]

            page = None
            if page_count:
                page = math.floor((index / total) * page_count) + 1

            chunks.append(DocumentChunk(
                text=self._join(group),
                chunk_index=index,
                total_chunks=total,
                section=section,
                page=page,
            ))

        return chunks

    def _sentence_groups(self, text: str, max_chunk_size: Optional[int]) -> List[List[str]]:
        limit = self.max_chunk_size if max_chunk_size is None else max_chunk_size
        if limit <= 0:
            raise ValueError("max_chunk_size must be positive")

        if not text or not text.strip():
            return []

        return self._pack_sentences(self._split_sentences(text), limit)

    def _split_sentences(self, text: str) -> List[str]:
        pieces = self.sentence_boundary_pattern.split(text.strip())
        return [piece.strip() for piece in pieces if piece and piece.strip()]

    def _pack_sentences(self, sentences: List[str], limit: int) -> List[List[str]]:
        groups: List[List[str]] = []
        current: List[str] = []
        current_length = 0

        for sentence in sentences:
            added = len(_collapse(sentence)) + (1 if current else 0)

            if current and current_length + added > limit:
                groups.append(current)
                current = self._overlap_tail(current, limit - len(_collapse(sentence)) - 1)
                current_length = len(self._join(current))
                added = len(_collapse(sentence)) + (1 if current else 0)

            current.append(sentence)
            current_length += added

        if current:
            groups.append(current)

        return groups

    def _overlap_tail(self, sentences: List[str], budget: int) -> List[str]:
        """Trailing sentences to repeat, trimmed from the front to fit ``budget``."""
        if self.overlap_sentences == 0 or budget <= 0:
            return []

        tail = sentences[-self.overlap_sentences:]
        while tail and len(self._join(tail)) > budget:
            tail = tail[1:]
        return list(tail)

    @staticmethod
    def _join(sentences: List[str]) -> str:
        return " ".join(_collapse(sentence) for sentence in sentences)

    def _heading(self, sentence: str) -> Optional[str]:
        first_line = sentence.splitlines()[0].strip()

        header = self.header_pattern.match(first_line)
        if header:
            return header.group(1).strip()

        # ALL-CAPS short line without terminal punctuation
        letters = [c for c in first_line if c.isalpha()]
        if (
            len(letters) >= 2
            and first_line == first_line.upper()
            and first_line[-1] not in ".!?"
            and len(first_line.split()) <= 10
        ):
            return first_line.title()
        return None


def _collapse(sentence: str) -> str:
    return " ".join(sentence.split())
