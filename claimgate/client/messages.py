"""
Visitor-facing messages for claim failures.

Every rejection the claim flow returns carries one of these kinds and a
pre-formatted message. Unknown kinds fall back to the generic message,
never to raw error text.
"""

from enum import Enum
from typing import Optional, Union


class ClaimErrorKind(str, Enum):
    DEVICE_RESTRICTED = "device_restricted"
    RATE_LIMITED = "rate_limited"
    VALIDATION_ERROR = "validation_error"
    NETWORK_ERROR = "network_error"
    TIMEOUT_ERROR = "timeout_error"
    SERVER_ERROR = "server_error"
    BUSY = "busy"
    UNKNOWN_ERROR = "unknown_error"


MESSAGES = {
    ClaimErrorKind.DEVICE_RESTRICTED: "Materials have already been claimed on this device",
    ClaimErrorKind.RATE_LIMITED: "Too many claims from this network. Try again later or switch networks",
    ClaimErrorKind.VALIDATION_ERROR: "Please check your selection and try again",
    ClaimErrorKind.NETWORK_ERROR: "Network connection failed. Check your connection and retry",
    ClaimErrorKind.TIMEOUT_ERROR: "The request timed out. Please try again later",
    ClaimErrorKind.SERVER_ERROR: "The service is temporarily unavailable. Please try again later",
    ClaimErrorKind.BUSY: "A claim is already being processed",
    ClaimErrorKind.UNKNOWN_ERROR: "Something went wrong. Please try again later",
}


def format_error_message(
    kind: Union[ClaimErrorKind, str, None],
    detail: Optional[str] = None,
) -> str:
    """
    Message to show for a failure kind.

    detail is only used for validation errors, where it is a message the
    claim flow (or the server's 400 body) already wrote for visitors.
    """
    try:
        kind = ClaimErrorKind(kind)
    except ValueError:
        return MESSAGES[ClaimErrorKind.UNKNOWN_ERROR]

    if kind == ClaimErrorKind.VALIDATION_ERROR and detail:
        return detail
    return MESSAGES[kind]


def remaining_days_message(days: int) -> str:
    if days <= 0:
        return "You can claim materials now"
    unit = "day" if days == 1 else "days"
    return f"You can claim again in {days} {unit}"
