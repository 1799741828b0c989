"""Error taxonomy for the EzStudy backend.

Every error carries the HTTP status it is rendered with; the FastAPI
handlers in `ezstudy.main` turn them into `{"error": message}` bodies.
"""

from typing import Optional


class EzStudyError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(EzStudyError):
    """A required field is missing or malformed."""

    status_code = 400


class ContentBlocked(EzStudyError):
    """The moderation filter rejected the user text."""

    status_code = 400

    def __init__(self, reason: str):
        super().__init__(f"Content blocked: {reason}")
        self.reason = reason


class ConfigurationError(EzStudyError):
    """A required credential or setting is missing on the server."""

    status_code = 500


class UpstreamError(EzStudyError):
    """The AI provider call failed and no fallback remains."""

    status_code = 500


class FileProcessingError(EzStudyError):
    """Text extraction failed for an uploaded file. Never reaches the caller."""

    status_code = 422
