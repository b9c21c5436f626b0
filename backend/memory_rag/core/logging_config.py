"""
Logging configuration for the retrieval engine
"""

import logging
import sys
import json
from datetime import datetime, timezone


# Request-scoped fields copied from ``extra=`` into structured output
CONTEXT_FIELDS = (
    "request_id",
    "conversation_id",
    "project_id",
    "corpus",
    "query_type",
)


class StructuredFormatter(logging.Formatter):
    """JSON structured logging formatter for production"""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""

        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field_name in CONTEXT_FIELDS:
            if hasattr(record, field_name):
                log_data[field_name] = getattr(record, field_name)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", structured: bool = True) -> None:
    """Setup logging configuration"""

    if structured:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.addHandler(console_handler)

    # Reduce noise from collaborators
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def setup_logging_from_settings() -> None:
    from memory_rag.core.config import settings

    setup_logging(settings.LOG_LEVEL, structured=settings.LOG_FORMAT == "json")


class LoggerMixin:
    """Mixin to add logging capabilities to classes"""

    @property
    def logger(self) -> logging.Logger:
        """Get logger for this class"""
        return logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    def log_info(self, message: str, **kwargs):
        """Log info message with context"""
        self.logger.info(message, extra=kwargs)

    def log_error(self, message: str, **kwargs):
        """Log error message with context"""
        self.logger.error(message, extra=kwargs)

    def log_warning(self, message: str, **kwargs):
        """Log warning message with context"""
        self.logger.warning(message, extra=kwargs)
