"""
Context Blender - Merges retrieval results into one prompt context block

Document chunks go first (they carry most factual answers), conversational
memories fill the remaining slots. Every item is labelled with its source,
position or recency, and similarity so answers can be traced back.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from .models import (
    BlendedContext,
    ContextBudget,
    ContextSource,
    RetrievalResult,
    SourceType,
    StrategyResults,
)


CONTRADICTION_NOTE = (
    "IMPORTANT NOTE: Earlier in this conversation you stated that you could not access "
    "files or uploaded information. Files may have been uploaded since then, but fresh "
    "context may not be visible in this conversation.\n"
    "Answer the user's question as well as you can with the information currently "
    "available. If the question is about specific files you cannot see, tell the user "
    "that starting a NEW conversation will give you full access to the file contents "
    "from the beginning."
)

FILE_SEPARATOR = "\n\n─────────────\n\n"
MEMORY_SEPARATOR = "\n\n---\n\n"
SECTION_SEPARATOR = "\n\n════════════════════════════════════════\n\n"
END_MARKER = "--- END OF AVAILABLE INFORMATION ---"


class ContextBlender:
    """Deterministic formatter for blended retrieval context."""

    def __init__(self, fallback_note: str = CONTRADICTION_NOTE) -> None:
        self.fallback_note = fallback_note

    def blend(
        self,
        results: StrategyResults,
        guard_tripped: bool,
        budget: Optional[ContextBudget] = None,
        now: Optional[datetime] = None,
        current_project_id: Optional[str] = None,
    ) -> BlendedContext:
        """
        Build the context block for one request.

        Args:
            results: Per-corpus retrieval results, each sorted by similarity
            guard_tripped: When True, all results are discarded
            budget: Slot allocation; defaults to 8 total / 6 documents
            now: Reference time for recency labels
            current_project_id: Marks documents from other projects as such

        Returns:
            BlendedContext; empty text when nothing was retrieved
        """
        if guard_tripped:
            return BlendedContext(text=self.fallback_note, guard_tripped=True)

        budget = budget or ContextBudget()
        now = now or datetime.now(timezone.utc)

        knowledge = list(results.knowledge[: budget.max_knowledge_items])
        used_slots = min(len(knowledge), budget.max_knowledge_items)
        conversation_slots = min(
            max(budget.max_total_items - used_slots, 0),
            budget.max_conversational_items,
        )
        conversational = list(results.conversational[:conversation_slots])

        sections: List[str] = []
        if knowledge:
            parts = [self._format_document(r, current_project_id) for r in knowledge]
            sections.append(
                f"--- UPLOADED FILES ({len(knowledge)} found) ---\n" + FILE_SEPARATOR.join(parts)
            )
        if conversational:
            parts = [self._format_memory(r, now) for r in conversational]
            sections.append(
                f"--- CONVERSATIONAL CONTEXT ({len(conversational)} found) ---\n"
                + MEMORY_SEPARATOR.join(parts)
            )

        if not sections:
            return BlendedContext(text="")

        text = SECTION_SEPARATOR.join(sections) + f"\n\n{END_MARKER}"
        sources = tuple(self._source(r) for r in knowledge + conversational)

        return BlendedContext(
            text=text,
            sources=sources,
            knowledge_used=len(knowledge),
            conversational_used=len(conversational),
        )

    def _format_document(self, result: RetrievalResult, current_project_id: Optional[str]) -> str:
        meta = result.metadata
        filename = meta.filename or "uploaded_file"

        header = f"**{filename}**"
        if meta.chunk_index is not None and meta.total_chunks:
            header += f" (part {meta.chunk_index + 1}/{meta.total_chunks})"
        if current_project_id is not None and meta.project_id is not None:
            scope = "CURRENT PROJECT" if meta.project_id == current_project_id else "OTHER PROJECT"
            header += f" [{scope}]"

        location = f"Section: {meta.section or 'content'}"
        if meta.page is not None:
            location += f" | Page {meta.page}"

        return f"{header}\n{location}\nRelevance: {_percent(result.similarity)}\n\n{result.content}"

    def _format_memory(self, result: RetrievalResult, now: datetime) -> str:
        when = relative_time(result.metadata.timestamp, now)
        return f"[{_percent(result.similarity)} similarity | {when}]\n{result.content}"

    @staticmethod
    def _source(result: RetrievalResult) -> ContextSource:
        meta = result.metadata
        if result.source_type is SourceType.DOCUMENT:
            title = meta.filename or "uploaded_file"
            if meta.chunk_index is not None:
                title += f" #{meta.chunk_index + 1}"
        else:
            title = f"conversation {meta.conversation_id or result.origin_id}"
        return ContextSource(
            type=result.source_type,
            id=result.origin_id,
            title=title,
            relevance=result.similarity,
        )


def relative_time(timestamp: Optional[datetime], now: datetime) -> str:
    """Human label for how long ago ``timestamp`` was, relative to ``now``."""
    if timestamp is None:
        return "unknown time"

    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    seconds = (now - timestamp).total_seconds()
    if seconds < 60:
        return "just now"

    minutes = int(seconds // 60)
    if minutes < 60:
        return _plural(minutes, "minute")
    hours = minutes // 60
    if hours < 24:
        return _plural(hours, "hour")
    days = hours // 24
    if days < 14:
        return _plural(days, "day")
    if days < 60:
        return _plural(days // 7, "week")
    return f"on {timestamp.date().isoformat()}"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def _percent(similarity: float) -> str:
    return f"{similarity * 100:.1f}%"

