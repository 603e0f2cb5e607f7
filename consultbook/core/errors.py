"""
Application error types and de-duplicated error logging.

Services raise ``AppError`` subclasses; the HTTP layer renders them as
``{"message", "status", "details"?}``. Anything else is a server error and is
reported through the aggregator without leaking internals to the caller.
"""
import hashlib
import time
from enum import Enum
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class AppError(Exception):
    """Error carrying an HTTP status and optional machine-readable details."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message, "status": self.status_code}
        if self.details:
            body["details"] = self.details
        return body


class InvalidRequestError(AppError):
    status_code = 400


class UnauthorizedError(AppError):
    status_code = 401


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class ConfigurationError(AppError):
    """Deployment misconfiguration; raised at startup, not per request."""
    status_code = 500


class ErrorSeverity(Enum):
    """Error severity levels for log volume control."""
    LOW = "low"           # expected failures, validation
    MEDIUM = "medium"     # notification failures, timeouts
    HIGH = "high"         # storage failures
    CRITICAL = "critical"


class ErrorPattern:
    """Track error patterns to reduce duplicate logging."""

    def __init__(self, error_type: str, message: str, context: Dict[str, Any]):
        self.error_type = error_type
        self.message = message[:100]
        self.context = {k: v for k, v in context.items() if k in ['endpoint', 'component', 'kind']}
        self.fingerprint = self._generate_fingerprint()
        self.first_seen = time.time()
        self.last_seen = time.time()
        self.count = 1

    def _generate_fingerprint(self) -> str:
        content = f"{self.error_type}:{self.message}:{self.context.get('endpoint', '')}:{self.context.get('component', '')}"
        return hashlib.md5(content.encode(), usedforsecurity=False).hexdigest()[:8]

    def update(self):
        self.last_seen = time.time()
        self.count += 1


class ErrorAggregator:
    """Aggregate and deduplicate errors so a flapping dependency logs once per burst."""

    def __init__(self, log_threshold: int = 10, time_window: int = 300, max_patterns: int = 500):
        self.log_threshold = log_threshold  # Log every Nth repeat
        self.time_window = time_window
        self.max_patterns = max_patterns
        self.patterns: Dict[str, ErrorPattern] = {}

    def _make_room(self) -> None:
        """Forget patterns idle past the window, then the least recently seen over the cap."""
        now = time.time()
        for fp in [fp for fp, p in self.patterns.items() if now - p.last_seen >= self.time_window]:
            del self.patterns[fp]
        while self.patterns and len(self.patterns) >= self.max_patterns:
            oldest = min(self.patterns, key=lambda fp: self.patterns[fp].last_seen)
            del self.patterns[oldest]

    def should_log(self, pattern: ErrorPattern, severity: ErrorSeverity) -> bool:
        if severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            return True
        if pattern.count == 1:
            return True
        # Repeats inside the window are sampled
        return pattern.count % self.log_threshold == 0

    def log_error(self, error: Exception, context: Optional[Dict[str, Any]] = None,
                  severity: ErrorSeverity = ErrorSeverity.MEDIUM) -> str:
        context = context or {}
        error_type = type(error).__name__
        message = str(error)

        pattern = ErrorPattern(error_type, message, context)
        fingerprint = pattern.fingerprint

        existing = self.patterns.get(fingerprint)
        if existing and time.time() - existing.last_seen < self.time_window:
            existing.update()
            pattern = existing
        else:
            self._make_room()
            self.patterns[fingerprint] = pattern

        if self.should_log(pattern, severity):
            logger.error(
                "aggregated_error",
                error_hash=fingerprint,
                error_type=error_type,
                error=message,
                count=pattern.count,
                severity=severity.value,
                **context
            )

        return fingerprint


# Global error aggregator instance
error_aggregator = ErrorAggregator()

def log_error(error: Exception, context: Optional[Dict[str, Any]] = None,
              severity: ErrorSeverity = ErrorSeverity.MEDIUM) -> str:
    """Convenience function to log errors through the global aggregator."""
    return error_aggregator.log_error(error, context, severity)
