"""
Contradiction Guard - Detects prior "no file access" claims in history

Once the assistant has told the user it cannot see any files, silently
injecting retrieved file content afterwards yields a transcript that
contradicts itself. The guard finds those claims so the caller can suppress
context injection and ask the model to acknowledge the change instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from memory_rag.config.vocabulary import ACCESS_DENIAL_MARKERS

logger = logging.getLogger(__name__)

_APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "´": "'"})


@dataclass(frozen=True)
class ContradictionFinding:
    turn_index: int
    marker: str


class ContradictionGuard:
    """Phrase-marker scan over assistant-authored turns."""

    def __init__(self, markers: Optional[Sequence[str]] = None) -> None:
        """
        Args:
            markers: Access-denial phrases; defaults to the built-in vocabulary
        """
        source = ACCESS_DENIAL_MARKERS if markers is None else markers
        self.markers = tuple(self._normalize(m) for m in source if m)

    def has_contradiction(self, recent_turns: Iterable[Any]) -> bool:
        return self.find_contradiction(recent_turns) is not None

    def find_contradiction(self, recent_turns: Iterable[Any]) -> Optional[ContradictionFinding]:
        """
        Return the first assistant turn containing an access-denial marker.

        Turns may be dicts with ``role``/``content`` keys or objects exposing
        those attributes. User turns are ignored.
        """
        for index, turn in enumerate(recent_turns or []):
            role, content = self._unpack(turn)
            if role != "assistant" or not content:
                continue

            normalized = self._normalize(content)
            for marker in self.markers:
                if marker in normalized:
                    logger.warning(
                        "Assistant turn %d claimed no file access (marker: %r)",
                        index + 1,
                        marker,
                    )
                    return ContradictionFinding(turn_index=index, marker=marker)

        return None

    @staticmethod
    def _unpack(turn: Any) -> tuple:
        if isinstance(turn, dict):
            return turn.get("role"), turn.get("content")
        return getattr(turn, "role", None), getattr(turn, "content", None)

    @staticmethod
    def _normalize(text: str) -> str:
        return str(text).translate(_APOSTROPHES).lower()
