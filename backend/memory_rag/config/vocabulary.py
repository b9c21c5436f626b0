"""
Marker vocabularies used by query classification and the contradiction guard.

The defaults cover Spanish and English. Matching is plain substring matching
against lowercased text, so short markers ("antes", "text") also match inside
longer words. Deployments can replace any list by pointing
``settings.VOCABULARY_FILE`` at a JSON object keyed by field name.
"""

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from memory_rag.core.exceptions import ConfigurationError


CONVERSATIONAL_MARKERS: Tuple[str, ...] = (
    "dijimos", "hablamos", "discutimos", "mencionaste", "mencioné",
    "conversamos", "charlamos", "platicamos", "comentaste", "comenté",
    "acordamos", "decidimos", "concluimos",
    "said", "talked", "discussed", "mentioned", "conversation",
    "ayer", "antes", "anteriormente", "previamente", "la vez pasada",
    "yesterday", "before", "previously", "last time", "earlier",
)

KNOWLEDGE_MARKERS: Tuple[str, ...] = (
    "archivo", "documento", "pdf", "texto", "dice", "contiene",
    "según", "basándote", "lee", "revisa", "consulta",
    "file", "document", "paper", "text", "says", "contains",
    "according", "based on", "read", "check", "review",
)

HYBRID_MARKERS: Tuple[str, ...] = (
    "continúa", "profundiza", "amplía", "elabora", "explica más",
    "basándote en", "tomando en cuenta", "considerando",
    "continue", "expand", "elaborate", "explain more",
    "based on", "taking into account", "considering",
)

TEMPORAL_MARKERS: Tuple[str, ...] = (
    "ayer", "yesterday", "antes", "before", "previamente", "previously",
    "la semana pasada", "last week", "el mes pasado", "last month",
)

STOP_WORDS: Tuple[str, ...] = (
    "el", "la", "de", "que", "en", "un", "una", "los", "las",
    "por", "con", "para", "su", "al", "del", "es", "y", "a",
    "the", "is", "at", "which", "on", "in", "an", "and", "or",
)

CONVERSATION_SCOPE_MARKERS: Tuple[str, ...] = ("esta conversación", "this conversation")
GLOBAL_SCOPE_MARKERS: Tuple[str, ...] = ("todos los proyectos", "all projects", "global")
# Empty by default; deployments opt in through VOCABULARY_FILE
CROSS_PROJECT_SCOPE_MARKERS: Tuple[str, ...] = ()

# Phrases an assistant uses when it claims it cannot see uploaded material
ACCESS_DENIAL_MARKERS: Tuple[str, ...] = (
    "sorry, could not generate",
    "no tengo acceso",
    "no puedo ver",
    "no veo archivos",
    "no he recibido",
    "no tengo información sobre archivos",
    "no puedo acceder",
    "no dispongo de",
    "no me has proporcionado",
    "no has compartido",
    "no está disponible",
    "cannot access",
    "can't access",
    "do not have access",
    "don't have access",
    "cannot see",
    "can't see",
    "haven't received",
)


@dataclass(frozen=True)
class QueryVocabulary:
    """Externalized word lists; every field is an ordered tuple of lowercase phrases."""
    conversational_markers: Tuple[str, ...] = CONVERSATIONAL_MARKERS
    knowledge_markers: Tuple[str, ...] = KNOWLEDGE_MARKERS
    hybrid_markers: Tuple[str, ...] = HYBRID_MARKERS
    temporal_markers: Tuple[str, ...] = TEMPORAL_MARKERS
    stop_words: Tuple[str, ...] = STOP_WORDS
    conversation_scope_markers: Tuple[str, ...] = CONVERSATION_SCOPE_MARKERS
    global_scope_markers: Tuple[str, ...] = GLOBAL_SCOPE_MARKERS
    cross_project_scope_markers: Tuple[str, ...] = CROSS_PROJECT_SCOPE_MARKERS
    access_denial_markers: Tuple[str, ...] = ACCESS_DENIAL_MARKERS
    max_keywords: int = field(default=8)

    def with_overrides(self, overrides: Dict[str, Any]) -> "QueryVocabulary":
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown vocabulary keys: {', '.join(sorted(unknown))}",
                setting="VOCABULARY_FILE",
            )

        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key == "max_keywords":
                changes[key] = int(value)
                continue
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigurationError(
                    f"Vocabulary entry '{key}' must be a list of strings",
                    setting="VOCABULARY_FILE",
                )
            changes[key] = tuple(v.lower() for v in value)
        return replace(self, **changes)


DEFAULT_VOCABULARY = QueryVocabulary()


def load_vocabulary(path: Optional[str] = None) -> QueryVocabulary:
    """Load the vocabulary, applying overrides from a JSON file when given."""
    if not path:
        return DEFAULT_VOCABULARY

    vocabulary_path = Path(path)
    try:
        overrides = json.loads(vocabulary_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(
            f"Cannot read vocabulary file {vocabulary_path}: {exc}",
            setting="VOCABULARY_FILE",
        ) from exc

    if not isinstance(overrides, dict):
        raise ConfigurationError("Vocabulary file must contain a JSON object", setting="VOCABULARY_FILE")

    return DEFAULT_VOCABULARY.with_overrides(overrides)


def get_vocabulary() -> QueryVocabulary:
    from memory_rag.core.config import settings

    return load_vocabulary(settings.VOCABULARY_FILE)
