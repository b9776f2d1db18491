"""
Email template management utilities.

Templates are packaged with the Lambda under services/email_templates/ and
use string.Template "$name" placeholders, so CSS braces in the markup
template need no escaping. Loaded templates are cached in memory for warm
Lambda invocations with a TTL.
"""

import logging
import os
import time
from pathlib import Path
from string import Template
from typing import Dict, Tuple

logger = logging.getLogger(__name__)

# Cache TTL in seconds (default: 5 minutes)
CACHE_TTL_SECONDS = int(os.environ.get('TEMPLATE_CACHE_TTL', '300'))

# Module-level cache: {template_name: (template_content, timestamp)}
_template_cache: Dict[str, Tuple[str, float]] = {}

# src/services/templates.py -> src/services/email_templates/
TEMPLATES_DIR = Path(__file__).parent / 'email_templates'


def _load_from_filesystem(template_name: str) -> str:
    """
    Load template from the packaged templates directory.

    Raises:
        FileNotFoundError: If template file doesn't exist
    """
    template_path = TEMPLATES_DIR / template_name

    with open(template_path, 'r', encoding='utf-8') as f:
        content = f.read()

    logger.debug(f"Loaded template from filesystem: {template_name} ({len(content)} characters)")
    return content


def load_template(template_name: str, use_cache: bool = True) -> str:
    """
    Load an email template, using the in-memory cache when fresh.

    Args:
        template_name: Template file name (e.g., "intake_email.html")
        use_cache: Use cached version if available (default: True)

    Returns:
        str: Template content

    Raises:
        ValueError: If template not found
    """
    current_time = time.time()

    if use_cache and template_name in _template_cache:
        cached_content, cached_time = _template_cache[template_name]
        if current_time - cached_time < CACHE_TTL_SECONDS:
            return cached_content
        logger.info(f"Cache expired for template: {template_name}, reloading...")

    try:
        content = _load_from_filesystem(template_name)
    except FileNotFoundError:
        logger.error(
            f"Template not found: {template_name}. "
            f"Expected location: {TEMPLATES_DIR / template_name}"
        )
        raise ValueError(f"Template '{template_name}' not found")

    _template_cache[template_name] = (content, current_time)
    return content


def format_template(template: str, **variables) -> str:
    """
    Substitute "$name" placeholders in a template.

    Substituted values are inserted verbatim and never re-scanned, so
    user-controlled text containing "$" cannot inject placeholders.

    Args:
        template: Template string with $variable placeholders
        **variables: Variables to substitute in the template

    Returns:
        str: Template with all variables substituted

    Raises:
        ValueError: If a placeholder has no matching variable

    Example:
        >>> format_template("Hello $name", name="Alice")
        'Hello Alice'
    """
    try:
        return Template(template).substitute(**variables)
    except KeyError as e:
        missing_var = str(e).strip("'")
        logger.error(f"Missing variable in email template: {missing_var}")
        raise ValueError(f"Missing required variable in template: {missing_var}")


def render_template(template_name: str, **variables) -> str:
    """Load a template by name and substitute variables."""
    return format_template(load_template(template_name), **variables)


def clear_cache() -> None:
    """Clear the template cache."""
    _template_cache.clear()
    logger.info("Template cache cleared")
