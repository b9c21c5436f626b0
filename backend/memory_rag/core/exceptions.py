"""
Error taxonomy for the retrieval engine.

Retrieval-side errors are recoverable: callers degrade to "no context" and
keep answering. Only completion failures reach the end user.
"""

from typing import Any, Dict, Optional


class MemoryEngineError(Exception):
    """Base exception for engine errors"""
    def __init__(self, message: str, code: str = None, details: Dict[str, Any] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ConfigurationError(MemoryEngineError):
    """Invalid or missing configuration"""
    def __init__(self, message: str, setting: Optional[str] = None):
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message, code="CONFIGURATION_ERROR", details=details)


class EmbeddingUnavailable(MemoryEngineError):
    """Embedding collaborator unreachable, timed out or returned garbage"""
    def __init__(self, message: str, service: str = None):
        details = {}
        if service:
            details["service"] = service
        super().__init__(message, code="EMBEDDING_UNAVAILABLE", details=details)


class RetrievalUnavailable(MemoryEngineError):
    """Vector search could not be completed for a corpus"""
    def __init__(self, message: str, corpus: str = None):
        self.corpus = corpus
        details = {}
        if corpus:
            details["corpus"] = corpus
        super().__init__(message, code="RETRIEVAL_UNAVAILABLE", details=details)


class CompletionUnavailable(MemoryEngineError):
    """Completion collaborator failed or timed out"""
    def __init__(self, message: str, service: str = None):
        details = {}
        if service:
            details["service"] = service
        super().__init__(message, code="COMPLETION_UNAVAILABLE", details=details)
