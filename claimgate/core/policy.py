"""
Claim Policy

Explicit configuration for the server-side claim gate. Passed to
ClaimService; nothing reads these settings from module globals.

CONFIGURATION:
- CLAIMGATE_WINDOW_DAYS: Length of the per-address window (default: 30)
- CLAIMGATE_IDENTITY_HEADERS: Comma-separated header order
  (default: x-forwarded-for,x-real-ip,cf-connecting-ip,x-client-ip)
- CLAIMGATE_TRUST_PEER_ADDRESS: Fall back to the socket peer address when
  no header yields an address (default: false)

TRUST BOUNDARY:
Identity headers are client-supplied unless a trusted proxy strips and
rewrites them. Deployments must put such a proxy in front of the service.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Tuple


DEFAULT_WINDOW_DAYS = 30

# Ordered preference: forwarded-for first hop, real-ip, CDN header, client-ip
DEFAULT_IDENTITY_HEADERS = (
    "x-forwarded-for",
    "x-real-ip",
    "cf-connecting-ip",
    "x-client-ip",
)


@dataclass(frozen=True)
class ClaimPolicy:
    """Window and identity rules for the claim gate."""
    window_days: int = DEFAULT_WINDOW_DAYS
    identity_headers: Tuple[str, ...] = DEFAULT_IDENTITY_HEADERS
    trust_peer_address: bool = False

    def __post_init__(self):
        if self.window_days < 1:
            raise ValueError(f"window_days must be >= 1, got {self.window_days}")
        if not self.identity_headers and not self.trust_peer_address:
            raise ValueError("At least one identity source is required")

    @property
    def window(self) -> timedelta:
        return timedelta(days=self.window_days)

    def window_start(self, now: datetime) -> datetime:
        """
        Earliest claim time that still blocks a new claim at `now`.

        A record with last_claimed_at >= window_start(now) is inside the window.
        """
        return now - self.window

    @classmethod
    def from_env(cls) -> "ClaimPolicy":
        """Load policy from environment variables."""
        headers_env = os.environ.get("CLAIMGATE_IDENTITY_HEADERS", "")
        headers = tuple(
            h.strip().lower() for h in headers_env.split(",") if h.strip()
        ) or DEFAULT_IDENTITY_HEADERS

        return cls(
            window_days=int(os.environ.get("CLAIMGATE_WINDOW_DAYS", str(DEFAULT_WINDOW_DAYS))),
            identity_headers=headers,
            trust_peer_address=os.environ.get(
                "CLAIMGATE_TRUST_PEER_ADDRESS", ""
            ).lower() in ("1", "true", "yes"),
        )
