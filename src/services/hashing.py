"""
Privacy-preserving client identifiers.

Client addresses are never logged or used as keys directly. They are
reduced to a short CRC-32 digest that is good enough for bucketing rate
limit entries and correlating log records, but is not meant to resist
collisions or reversal by a determined attacker.
"""

import zlib


def hash_identifier(identifier: str) -> str:
    """
    Hash a raw client identifier (usually an IP address).

    Args:
        identifier: Raw identifier; None and empty strings are accepted

    Returns:
        str: 8-character lowercase hexadecimal digest

    Example:
        >>> hash_identifier("")
        '00000000'
    """
    data = (identifier or '').encode('utf-8', errors='replace')
    return format(zlib.crc32(data) & 0xFFFFFFFF, '08x')
