"""
AWS Lambda handler for medication intake form submissions.

Thin orchestration layer that delegates to SubmissionProcessor.
Policy: one attempt per request, no retries. Errors are returned as HTTP
responses and logged to CloudWatch without submitted field values.
"""

import json
import logging
import os
from typing import Dict, Any

from config import GatewayConfig
from domain.submission_processor import SubmissionProcessor
from services import http

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO').upper())

# Add console handler for local testing (AWS Lambda provides handlers automatically)
if not logger.handlers:
    console_handler = logging.StreamHandler()
    formatter = logging.Formatter('%(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Initialize processor once at module level (reused across invocations, so the
# rate limit store lives as long as this execution environment)
config = GatewayConfig.from_environment()
submission_processor = SubmissionProcessor(config=config)

if not config.transport_configured:
    logger.error(
        f"Mail transport not configured: missing {', '.join(config.missing_transport_settings())}. "
        f"Submissions will fail until it is set."
    )


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Handle one API Gateway request for the intake endpoint.

    Args:
        event: API Gateway proxy event (payload format v1 or v2)
        context: Lambda context

    Returns:
        Dict in Lambda proxy response format
    """
    request = http.parse_event(event)
    logger.info(f"Received {request.method or 'UNKNOWN'} request")

    result = submission_processor.handle(request)
    logger.info(f"Completed: {result!r}")

    return http.build_response(result.status_code, result.body, result.headers)


def health_check(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Simple health check endpoint for monitoring.
    """
    return {
        'statusCode': 200,
        'headers': http.response_headers(),
        'body': json.dumps({
            'status': 'healthy',
            'environment': config.environment,
            'transportConfigured': config.transport_configured
        })
    }
