"""
Helper services for the submission pipeline.

This package contains the stateless building blocks the processor chains
together: identifier hashing, rate limiting, origin matching, sanitizing,
template loading, message rendering and API Gateway event handling.
"""

__all__ = ['hashing', 'http', 'origin', 'rate_limiter', 'renderer', 'sanitizer', 'templates']
