"""
Error kinds raised across the interview service.
Each carries the HTTP status it maps to; the API renders them as {success: false, error}.
"""

from __future__ import annotations


class InterviewError(Exception):
    status_code = 500
    public_message = "Request failed"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ValidationError(InterviewError):
    status_code = 400
    public_message = "Missing data"


class AuthError(InterviewError):
    status_code = 401
    public_message = "Unauthorized"


class ForbiddenError(AuthError):
    status_code = 403
    public_message = "Forbidden"


class NotFoundError(InterviewError):
    status_code = 404
    public_message = "Interview not found"


class GenerationError(InterviewError):
    """The text-generation service could not be reached or returned nothing usable."""

    status_code = 502
    public_message = "Generation failed"


class GenerationParseError(GenerationError):
    public_message = "Could not parse generated response"


class PersistenceError(InterviewError):
    status_code = 500
    public_message = "Save failed"


class CapabilityUnavailable(InterviewError):
    status_code = 503
    public_message = "Capability unavailable"
