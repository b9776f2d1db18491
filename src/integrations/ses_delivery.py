"""
Amazon SES Delivery Module

This module sends the rendered intake message to the configured recipient
through Amazon SES. It makes exactly one bounded attempt per call: the
client is configured with no retries and strict connect/read timeouts, so
a slow transport fails the request instead of hanging it.

Usage:
    from integrations import ses_delivery

    message_id = ses_delivery.send_submission_email(
        sender="Medication Intake <intake@example.org>",
        recipient="pharmacy@example.org",
        subject="Medication Intake - Jane Doe",
        message=rendered,
        request_id="req_1700000000000_abc123def",
    )
"""

import logging
import os
import re
from typing import Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from domain.errors import DeliveryError
from domain.models import RenderedMessage

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5
DEFAULT_READ_TIMEOUT = 10

_EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

# SES tag values may only contain ASCII letters, digits, '_', '-', '.' and '@'
_TAG_UNSAFE = re.compile(r'[^A-Za-z0-9_.@-]')


# ============================================================================
# Module-Level Configuration and Initialization
# ============================================================================

def _read_timeout_setting(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return max(1, int(raw))
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}s")
        return default


def _initialize_ses_client():
    """
    Initialize boto3 SES client with timeout configuration.

    Returns:
        boto3.client: Configured SES client
    """
    connect_timeout = _read_timeout_setting('MAIL_CONNECT_TIMEOUT', DEFAULT_CONNECT_TIMEOUT)
    read_timeout = _read_timeout_setting('MAIL_READ_TIMEOUT', DEFAULT_READ_TIMEOUT)

    # NO retries and strict timeouts: one synchronous attempt per submission
    client_config = Config(
        retries={
            'max_attempts': 0,  # 0 attempts = 1 total call, NO retries
            'mode': 'standard'
        },
        connect_timeout=connect_timeout,
        read_timeout=read_timeout
    )

    region = os.environ.get('AWS_REGION', os.environ.get('AWS_DEFAULT_REGION', 'us-east-1'))

    client = boto3.client(
        'ses',
        region_name=region,
        config=client_config
    )

    logger.info(
        f"SES client initialized: region={region}, "
        f"connect_timeout={connect_timeout}s, read_timeout={read_timeout}s, "
        f"max_attempts=0 (no retries)"
    )
    return client


# Initialize at module import time (reused across invocations)
ses_client = _initialize_ses_client()


# ============================================================================
# Delivery
# ============================================================================

def is_valid_email(address: Optional[str]) -> bool:
    """Basic syntactic check: local@domain.tld with no whitespace."""
    return bool(address) and _EMAIL_PATTERN.match(address) is not None


def _build_tags(request_id: str) -> List[Dict[str, str]]:
    return [
        {'Name': 'type', 'Value': 'medication_intake'},
        {'Name': 'source', 'Value': 'web_form'},
        {'Name': 'request_id', 'Value': _TAG_UNSAFE.sub('_', request_id)},
    ]


def send_submission_email(
    sender: str,
    recipient: str,
    subject: str,
    message: RenderedMessage,
    request_id: str,
    reply_to: Optional[str] = None
) -> str:
    """
    Send one rendered submission through SES.

    Args:
        sender: Verified SES source identity
        recipient: Destination address
        subject: Subject line
        message: Rendered markup and plain text bodies
        request_id: Gateway request id, attached as a message tag
        reply_to: Optional reply-to address; ignored unless it is a valid address

    Returns:
        str: SES message id

    Raises:
        DeliveryError: If SES rejects the message, the call times out, or the
            endpoint cannot be reached
    """
    kwargs = {
        'Source': sender,
        'Destination': {'ToAddresses': [recipient]},
        'Message': {
            'Subject': {'Data': subject, 'Charset': 'UTF-8'},
            'Body': {
                'Html': {'Data': message.html_body, 'Charset': 'UTF-8'},
                'Text': {'Data': message.text_body, 'Charset': 'UTF-8'},
            },
        },
        'Tags': _build_tags(request_id),
    }
    if is_valid_email(reply_to):
        kwargs['ReplyToAddresses'] = [reply_to]

    logger.info(
        f"Sending submission email: request_id={request_id}, "
        f"html_length={len(message.html_body)}, text_length={len(message.text_body)}"
    )

    try:
        response = ses_client.send_email(**kwargs)
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        error_message = e.response.get('Error', {}).get('Message', str(e))
        logger.error(
            f"SES send failed: request_id={request_id}, "
            f"error_code={error_code}, error_message={error_message}"
        )
        raise DeliveryError(f"SES rejected message ({error_code}): {error_message}") from e
    except BotoCoreError as e:
        # Connect/read timeouts and endpoint errors land here
        logger.error(f"SES transport error: request_id={request_id}, error={e}")
        raise DeliveryError(f"SES transport error: {e}") from e

    message_id = response.get('MessageId')
    if not message_id:
        raise DeliveryError("SES response did not include a MessageId")

    logger.info(f"SES accepted message: request_id={request_id}, message_id={message_id}")
    return message_id
