"""
Gateway configuration loaded from environment variables.

Every setting has a default except the mail transport settings. Missing
transport settings are reported per request as a configuration error
rather than failing at import time, so the function still answers
preflight and health check requests.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_MAX = 5
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 3600
DEFAULT_ALLOWED_ORIGINS = ('https://*.vercel.app', 'http://localhost:3000')
DEFAULT_REQUIRED_FIELDS = ('patientName', 'dateOfBirth')
DEFAULT_MAX_BODY_BYTES = 64 * 1024


def _split_list(raw: Optional[str], default: Tuple[str, ...]) -> Tuple[str, ...]:
    """Split a comma-separated setting, dropping blank entries."""
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(',') if item.strip())


def _read_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"{name} must be positive, got {value}, using default {default}")
        return default
    return value


@dataclass(frozen=True)
class GatewayConfig:
    """
    Settings for one gateway instance.

    Attributes:
        sender_email: Verified SES identity used as the message source
        recipient_email: The single downstream recipient
        rate_limit_max: Submissions allowed per client within one window
        rate_limit_window_seconds: Sliding window length
        allowed_origins: Exact origins or single-wildcard patterns
        required_fields: Fields that must be present and non-blank
        max_body_bytes: Largest request body accepted
        environment: Deployment stage label (dev, staging, prod)
    """
    sender_email: Optional[str] = None
    recipient_email: Optional[str] = None
    rate_limit_max: int = DEFAULT_RATE_LIMIT_MAX
    rate_limit_window_seconds: int = DEFAULT_RATE_LIMIT_WINDOW_SECONDS
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    required_fields: Tuple[str, ...] = DEFAULT_REQUIRED_FIELDS
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    environment: str = 'dev'

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> 'GatewayConfig':
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            GatewayConfig with defaults applied for absent settings
        """
        if environ is None:
            environ = os.environ

        return cls(
            sender_email=(environ.get('SES_SENDER_EMAIL') or '').strip() or None,
            recipient_email=(environ.get('RECIPIENT_EMAIL') or '').strip() or None,
            rate_limit_max=_read_int(environ, 'RATE_LIMIT_MAX', DEFAULT_RATE_LIMIT_MAX),
            rate_limit_window_seconds=_read_int(
                environ, 'RATE_LIMIT_WINDOW_SECONDS', DEFAULT_RATE_LIMIT_WINDOW_SECONDS
            ),
            allowed_origins=_split_list(environ.get('ALLOWED_ORIGINS'), DEFAULT_ALLOWED_ORIGINS),
            required_fields=_split_list(environ.get('REQUIRED_FIELDS'), DEFAULT_REQUIRED_FIELDS),
            max_body_bytes=_read_int(environ, 'MAX_BODY_BYTES', DEFAULT_MAX_BODY_BYTES),
            environment=environ.get('ENVIRONMENT', 'dev'),
        )

    def missing_transport_settings(self) -> List[str]:
        """Names of the mail transport settings that are not configured."""
        missing = []
        if not self.sender_email:
            missing.append('SES_SENDER_EMAIL')
        if not self.recipient_email:
            missing.append('RECIPIENT_EMAIL')
        return missing

    @property
    def transport_configured(self) -> bool:
        return not self.missing_transport_settings()
