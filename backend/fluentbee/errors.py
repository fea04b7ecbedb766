"""Error taxonomy shared by the lesson engine and the HTTP layer.

Each error carries a stable reason code so callers never have to parse
upstream error strings. Diagnostics are truncated before they leave the
process.
"""

from datetime import datetime

MAX_DIAGNOSTIC_CHARS = 500


def truncate_diagnostic(text: str | None, limit: int = MAX_DIAGNOSTIC_CHARS) -> str | None:
    if text is None:
        return None
    text = str(text)
    return text if len(text) <= limit else text[:limit] + "..."


class LessonEngineError(Exception):
    reason_code = "internal_error"
    status_code = 500

    def __init__(self, message: str = "", diagnostic: str | None = None):
        super().__init__(message or self.reason_code)
        self.diagnostic = truncate_diagnostic(diagnostic)


class ValidationError(LessonEngineError):
    reason_code = "invalid_input"
    status_code = 400


class NotFound(LessonEngineError):
    reason_code = "not_found"
    status_code = 404


class RateLimitExceeded(LessonEngineError):
    reason_code = "rate_limited"
    status_code = 429

    def __init__(self, identity: str, limit: int, reset_at: datetime):
        super().__init__(f"Daily limit exceeded ({limit}/day)")
        self.identity = identity
        self.limit = limit
        self.reset_at = reset_at


class UpstreamFailure(LessonEngineError):
    reason_code = "upstream_failure"
    status_code = 502


class UpstreamTimeout(UpstreamFailure):
    reason_code = "upstream_timeout"


class ParseFailure(LessonEngineError):
    reason_code = "parse_failure"
    status_code = 502

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message, diagnostic=raw)
        self.raw = raw


class GenerationExhausted(LessonEngineError):
    reason_code = "generation_exhausted"
    status_code = 502


class PersistenceError(LessonEngineError):
    reason_code = "persistence_error"
    status_code = 500
