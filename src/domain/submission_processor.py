"""
Submission pipeline - core request handling logic.

This module handles one intake form request end to end:
1. Answer CORS preflight requests
2. Check the request origin against the allow-list
3. Apply the per-client rate limit
4. Check content type, body size and required fields
5. Sanitize the whole body
6. Render the markup and plain text message bodies
7. Deliver the message through the mail transport (one attempt)
8. Return exactly one result

Errors are raised as SubmissionError subclasses inside the pipeline and
converted to a SubmissionResult. No exceptions propagate out of the public
methods. Audit records carry request metadata only, never field values.
"""

import json
import logging
import math
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from config import GatewayConfig
from domain.errors import (
    ConfigurationError,
    MalformedContentType,
    OriginDenied,
    PayloadTooLarge,
    RateLimitExceeded,
    SubmissionError,
    ValidationError,
)
from domain.models import (
    ApiRequest,
    IntakeSubmission,
    RateLimitDecision,
    RenderedMessage,
    SubmissionResult,
)
from integrations import ses_delivery
from services import http
from services.hashing import hash_identifier
from services.origin import is_allowed_origin
from services.rate_limiter import SlidingWindowRateLimiter
from services.renderer import render
from services.sanitizer import sanitize

logger = logging.getLogger(__name__)

SUBMIT_METHOD = 'POST'
PREFLIGHT_METHOD = 'OPTIONS'
SUCCESS_MESSAGE = 'Form submitted successfully'
USER_AGENT_LOG_LENGTH = 50

# send(sender, recipient, subject, message, request_id, reply_to) -> delivery id
MailTransport = Callable[..., str]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def find_missing_fields(data: Dict[str, Any], required_fields: List[str]) -> List[str]:
    """
    List required fields that are absent or blank, in configured order.

    None, whitespace-only strings and empty lists/objects count as missing;
    numbers and booleans count as present.
    """
    return [name for name in required_fields if _is_blank(data.get(name))]


class SubmissionProcessor:
    """
    Handles one intake form request from preflight to delivery.

    The rate limiter is the only state kept between requests; reuse one
    processor per Lambda container so the limiter lives as long as the
    container does.
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        transport: Optional[MailTransport] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config or GatewayConfig.from_environment()
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_per_window=self.config.rate_limit_max,
            window_seconds=self.config.rate_limit_window_seconds,
            clock=clock
        )
        self.transport = transport or ses_delivery.send_submission_email
        self._clock = clock

    def handle(self, request: ApiRequest) -> SubmissionResult:
        """
        Handle a single request.

        Args:
            request: Normalized API request

        Returns:
            SubmissionResult (exactly one per request)
        """
        if request.method == PREFLIGHT_METHOD:
            return self._handle_preflight(request)

        if request.method != SUBMIT_METHOD:
            return SubmissionResult(
                status_code=405,
                body={'success': False, 'error': 'Method not allowed'},
                headers={'Allow': http.ALLOWED_METHODS}
            )

        request_id = self._generate_request_id()
        ip_hash = hash_identifier(request.client_ip)
        headers: Dict[str, str] = {}

        try:
            self._check_origin(request)
            headers.update(http.cors_headers(request.origin))

            decision = self._check_rate_limit(request)
            data = self._parse_body(request)
            self._check_required_fields(data)

            sanitized = sanitize(data)
            self._check_transport_config()

            submission = IntakeSubmission.from_mapping(sanitized)
            message = render(submission, self._submitted_at())
            delivery_id = self._deliver(submission, message, request_id)

        except SubmissionError as e:
            return self._error_result(e, request, request_id, ip_hash, headers)

        except Exception as e:
            logger.error(f"Unexpected error handling {request_id}: {e.__class__.__name__}", exc_info=True)
            self._audit(
                'ERROR', 'SUBMISSION_ERROR', request_id,
                ipHash=ip_hash, error=f"{e.__class__.__name__}: {e}"
            )
            return SubmissionResult(
                status_code=500,
                body={
                    'success': False,
                    'error': SubmissionError.public_message,
                    'requestId': request_id
                },
                headers=headers,
                request_id=request_id
            )

        self._audit(
            'INFO', 'FORM_SUBMITTED', request_id,
            ipHash=ip_hash,
            userAgent=request.user_agent[:USER_AGENT_LOG_LENGTH],
            emailId=delivery_id,
            remaining=decision.remaining
        )

        return SubmissionResult(
            status_code=200,
            body={
                'success': True,
                'message': SUCCESS_MESSAGE,
                'requestId': request_id,
                'remainingSubmissions': decision.remaining
            },
            headers=headers,
            request_id=request_id,
            delivery_id=delivery_id
        )

    def _handle_preflight(self, request: ApiRequest) -> SubmissionResult:
        """Answer a CORS preflight; allow headers only for allowed origins."""
        headers = {}
        if is_allowed_origin(request.origin, self.config.allowed_origins):
            headers = http.cors_headers(request.origin, preflight=True)
        return SubmissionResult(status_code=204, headers=headers)

    def _check_origin(self, request: ApiRequest) -> None:
        if not is_allowed_origin(request.origin, self.config.allowed_origins):
            raise OriginDenied()

    def _check_rate_limit(self, request: ApiRequest) -> RateLimitDecision:
        decision = self.rate_limiter.check(request.client_ip)
        if not decision.allowed:
            retry_after = max(1, math.ceil(decision.reset_at - self._clock()))
            raise RateLimitExceeded(retry_after)
        return decision

    def _parse_body(self, request: ApiRequest) -> Dict[str, Any]:
        if 'application/json' not in request.content_type.lower():
            raise MalformedContentType()

        if len(request.body.encode('utf-8')) > self.config.max_body_bytes:
            raise PayloadTooLarge()

        return http.parse_json_body(request.body)

    def _check_required_fields(self, data: Dict[str, Any]) -> None:
        missing = find_missing_fields(data, list(self.config.required_fields))
        if missing:
            raise ValidationError(missing)

    def _check_transport_config(self) -> None:
        missing = self.config.missing_transport_settings()
        if missing:
            raise ConfigurationError(f"Mail transport not configured: {', '.join(missing)}")

    def _deliver(
        self,
        submission: IntakeSubmission,
        message: RenderedMessage,
        request_id: str
    ) -> str:
        """
        Send the rendered message through the mail transport.

        Raises:
            DeliveryError: If the transport call fails or times out
        """
        logger.info(f"Delivering submission {request_id}")
        start_time = time.time()

        delivery_id = self.transport(
            sender=self.config.sender_email,
            recipient=self.config.recipient_email,
            subject=f"Medication Intake - {submission.patient_name}",
            message=message,
            request_id=request_id,
            reply_to=submission.email
        )

        logger.info(f"Delivery completed: {time.time() - start_time:.3f}s")
        return delivery_id

    def _error_result(
        self,
        error: SubmissionError,
        request: ApiRequest,
        request_id: str,
        ip_hash: str,
        headers: Dict[str, str]
    ) -> SubmissionResult:
        """Log one audit record for the error and build its response."""
        record: Dict[str, Any] = {'ipHash': ip_hash}
        if isinstance(error, OriginDenied):
            record['origin'] = request.origin
        elif isinstance(error, ValidationError):
            record['missingFields'] = error.missing_fields
        elif error.status_code >= 500:
            record['error'] = str(error)
        self._audit(error.log_level, error.event, request_id, **record)

        body = {'success': False, 'error': error.response_message()}
        body.update(error.context())
        if error.status_code >= 500:
            body['requestId'] = request_id

        headers = dict(headers)
        if isinstance(error, RateLimitExceeded):
            headers['Retry-After'] = str(error.retry_after)

        return SubmissionResult(
            status_code=error.status_code,
            body=body,
            headers=headers,
            request_id=request_id
        )

    def _submitted_at(self) -> str:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()

    def _generate_request_id(self) -> str:
        return f"req_{int(self._clock() * 1000)}_{uuid.uuid4().hex[:9]}"

    def _audit(self, level: str, event: str, request_id: str, **fields) -> None:
        """Emit one single-line JSON audit record (metadata only, no PHI)."""
        record = {
            'level': level,
            'event': event,
            'requestId': request_id,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }
        record.update(fields)
        log_level = logging.WARNING if level == 'WARN' else getattr(logging, level, logging.INFO)
        logger.log(log_level, json.dumps(record))
