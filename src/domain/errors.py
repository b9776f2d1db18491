"""
Error kinds raised while handling a submission.

Each error maps to one HTTP status, one audit log event and one public
message. Public messages and context never contain submitted values.
"""

from typing import Any, Dict, Iterable, Optional


class SubmissionError(Exception):
    """Base class for errors that terminate a request with a response."""

    status_code = 500
    event = 'SUBMISSION_ERROR'
    log_level = 'ERROR'
    public_message = 'Failed to process submission. Please try again.'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)

    def response_message(self) -> str:
        """Message returned to the caller."""
        return self.public_message

    def context(self) -> Dict[str, Any]:
        """Extra fields merged into the response body."""
        return {}


class OriginDenied(SubmissionError):
    """Raised when the request origin is not on the allow-list."""

    status_code = 403
    event = 'CORS_VIOLATION'
    log_level = 'WARN'
    public_message = 'Access denied from this origin'


class RateLimitExceeded(SubmissionError):
    """Raised when a client has used up its submissions for the window."""

    status_code = 429
    event = 'RATE_LIMIT_EXCEEDED'
    log_level = 'WARN'
    public_message = 'Too many requests. Please try again later.'

    def __init__(self, retry_after: int):
        super().__init__()
        self.retry_after = retry_after

    def context(self) -> Dict[str, Any]:
        return {'retryAfter': self.retry_after}


class MalformedContentType(SubmissionError):
    """Raised when the request is not declared as JSON."""

    status_code = 400
    event = 'INVALID_CONTENT_TYPE'
    log_level = 'WARN'
    public_message = 'Invalid content type. Expected application/json'


class MalformedBody(SubmissionError):
    """Raised when the body is not a JSON object."""

    status_code = 400
    event = 'INVALID_BODY'
    log_level = 'WARN'
    public_message = 'Request body must be a JSON object'


class PayloadTooLarge(SubmissionError):
    """Raised when the body exceeds the configured size limit."""

    status_code = 413
    event = 'INVALID_BODY'
    log_level = 'WARN'
    public_message = 'Request body too large'


class ValidationError(SubmissionError):
    """Raised when required fields are missing or blank."""

    status_code = 400
    event = 'VALIDATION_FAILED'
    log_level = 'WARN'

    def __init__(self, missing_fields: Iterable[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(f"Missing required fields: {', '.join(self.missing_fields)}")

    def response_message(self) -> str:
        return str(self)

    def context(self) -> Dict[str, Any]:
        return {'missingFields': self.missing_fields}


class ConfigurationError(SubmissionError):
    """Raised when the mail transport is not configured."""

    status_code = 500
    event = 'CONFIG_MISSING_TRANSPORT'
    public_message = 'Server configuration error'


class DeliveryError(SubmissionError):
    """Raised when the mail transport call fails or times out."""

    status_code = 500
    event = 'DELIVERY_FAILED'
