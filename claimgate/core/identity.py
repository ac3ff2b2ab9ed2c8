"""
Caller Identity

Derives the caller's network address from transport headers.

Headers are checked in the configured order; for each one, only the first
comma-separated value is considered (for X-Forwarded-For this is the
original client hop). The first value that is a well-formed IPv4 or IPv6
literal wins. Addresses are returned in canonical form so that equivalent
spellings of one IPv6 address share a single claim record.
"""

import ipaddress
from typing import Iterable, Mapping, Optional


def parse_ip(candidate: str) -> Optional[str]:
    """
    Validate an IP literal and return its canonical text.

    Returns None for anything that is not a bare IPv4/IPv6 literal,
    including scoped IPv6 addresses ("fe80::1%eth0"), ports and brackets.
    """
    candidate = candidate.strip()
    if not candidate or "%" in candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def is_valid_ip(candidate: str) -> bool:
    return parse_ip(candidate) is not None


def resolve_client_address(
    headers: Mapping[str, str],
    header_order: Iterable[str],
    peer_address: Optional[str] = None,
) -> Optional[str]:
    """
    Pick the caller address from headers, in priority order.

    Args:
        headers: Transport headers (any key case)
        header_order: Lower-case header names, most preferred first
        peer_address: Socket peer, used only when given and no header matched

    Returns:
        Canonical address, or None if no source yields a valid literal
    """
    lowered = {k.lower(): v for k, v in headers.items()}

    for name in header_order:
        value = lowered.get(name)
        if not value:
            continue
        address = parse_ip(value.split(",")[0])
        if address is not None:
            return address

    if peer_address:
        return parse_ip(peer_address)

    return None
