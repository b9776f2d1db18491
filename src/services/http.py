"""
API Gateway event parsing and response helpers.

Accepts both REST API (payload v1) and HTTP API (payload v2) proxy events
and produces Lambda proxy responses carrying the defensive headers the
gateway sends on every response.
"""

import base64
import binascii
import json
import logging
from typing import Any, Dict, Optional

from domain.errors import MalformedBody
from domain.models import ApiRequest

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    'Content-Type': 'application/json',
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'X-XSS-Protection': '1; mode=block',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'Strict-Transport-Security': 'max-age=31536000; includeSubDomains; preload',
    'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
}

ALLOWED_METHODS = 'POST, OPTIONS'
PREFLIGHT_MAX_AGE = '86400'

# Deepest object/array nesting accepted in a request body
MAX_JSON_DEPTH = 32


def _client_ip(headers: Dict[str, str], request_context: Dict[str, Any]) -> str:
    forwarded = headers.get('x-forwarded-for', '')
    if forwarded:
        first = forwarded.split(',')[0].strip()
        if first:
            return first

    # v2 payload: requestContext.http.sourceIp, v1: requestContext.identity.sourceIp
    source_ip = (
        request_context.get('http', {}).get('sourceIp')
        or request_context.get('identity', {}).get('sourceIp')
    )
    return source_ip or 'unknown'


def parse_event(event: Dict[str, Any]) -> ApiRequest:
    """
    Normalize an API Gateway proxy event.

    Args:
        event: Lambda event from API Gateway (payload format v1 or v2)

    Returns:
        ApiRequest with lower-case header names and a decoded body
    """
    request_context = event.get('requestContext') or {}

    method = event.get('httpMethod') or request_context.get('http', {}).get('method') or ''
    headers = {
        str(name).lower(): str(value)
        for name, value in (event.get('headers') or {}).items()
        if value is not None
    }

    body = event.get('body') or ''
    if body and event.get('isBase64Encoded'):
        try:
            body = base64.b64decode(body, validate=True).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError) as e:
            # Left empty so the body check rejects it in pipeline order
            logger.warning(f"Failed to decode base64 request body: {e.__class__.__name__}")
            body = ''

    return ApiRequest(
        method=method.upper(),
        headers=headers,
        body=body,
        client_ip=_client_ip(headers, request_context),
    )


def _exceeds_depth(data: Any, limit: int) -> bool:
    """Check whether decoded JSON nests objects/arrays deeper than `limit`."""
    pending = [(data, 1)]
    while pending:
        value, depth = pending.pop()
        if isinstance(value, dict):
            children = value.values()
        elif isinstance(value, list):
            children = value
        else:
            continue
        if depth > limit:
            return True
        pending.extend((child, depth + 1) for child in children)
    return False


def parse_json_body(raw: str, max_depth: int = MAX_JSON_DEPTH) -> Dict[str, Any]:
    """
    Decode a JSON request body that must be an object.

    Args:
        raw: Request body text
        max_depth: Deepest object/array nesting accepted (the top-level
            object counts as 1)

    Raises:
        MalformedBody: If the body is empty, not JSON, not a JSON object, or
            nested deeper than max_depth
    """
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        # Exception text may quote the body, so only the type is logged
        logger.warning(f"Request body is not valid JSON: {e.__class__.__name__}")
        raise MalformedBody()

    if not isinstance(data, dict):
        raise MalformedBody()

    if _exceeds_depth(data, max_depth):
        logger.warning(f"Request body nests deeper than {max_depth} levels")
        raise MalformedBody()
    return data


def cors_headers(origin: str, preflight: bool = False) -> Dict[str, str]:
    """CORS headers for an origin that passed the allow-list check."""
    headers = {
        'Access-Control-Allow-Origin': origin,
        'Access-Control-Allow-Methods': ALLOWED_METHODS,
        'Access-Control-Allow-Headers': 'Content-Type',
        'Vary': 'Origin',
    }
    if preflight:
        headers['Access-Control-Max-Age'] = PREFLIGHT_MAX_AGE
    return headers


def response_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Security headers merged with any request-specific headers."""
    headers = dict(SECURITY_HEADERS)
    if extra:
        headers.update(extra)
    return headers


def build_response(
    status_code: int,
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Build a Lambda proxy response with the security headers applied.

    Args:
        status_code: HTTP status
        body: JSON-serializable body; omitted for 204 responses
        headers: Additional headers (CORS, Retry-After, Allow)

    Returns:
        Dict with statusCode, headers and a JSON string body
    """
    return {
        'statusCode': status_code,
        'headers': response_headers(headers),
        'body': json.dumps(body) if body is not None else '',
    }
