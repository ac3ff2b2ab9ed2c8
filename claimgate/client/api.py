"""
HTTP client for the claim API.

Wraps POST /api/claims and folds every transport or HTTP outcome into a
ServerReply. Nothing here raises for a failed claim; callers branch on
reply.success and reply.kind.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from .messages import ClaimErrorKind, format_error_message

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
CLAIMS_PATH = "/api/claims"


@dataclass
class ServerReply:
    success: bool
    kind: Optional[ClaimErrorKind] = None
    message: Optional[str] = None
    status_code: Optional[int] = None
    data: dict[str, Any] = field(default_factory=dict)


class ClaimClient:
    """
    Synchronous claim API client.

    Usage:
        with ClaimClient("https://claims.example.com") as client:
            reply = client.submit("bnu")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.Client] = None,
        caller_agent: Optional[str] = None,
    ):
        """
        Args:
            base_url: Service root, without trailing /api
            timeout: Whole-request timeout in seconds
            http_client: Pre-built client (tests, shared pools); owned by caller
            caller_agent: Sent as callerAgent (default: httpx user agent)
        """
        self._url = base_url.rstrip("/") + CLAIMS_PATH
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)
        self._caller_agent = caller_agent or f"claimgate-client/{httpx.__version__}"

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ClaimClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def submit(self, option_id: str) -> ServerReply:
        """Submit a claim and classify the result."""
        payload = {
            "optionId": option_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "callerAgent": self._caller_agent,
        }

        try:
            response = self._client.post(self._url, json=payload)
        except httpx.TimeoutException as e:
            logger.warning(f"Claim request timed out: {e!r}")
            return self._failure(ClaimErrorKind.TIMEOUT_ERROR)
        except httpx.TransportError as e:
            logger.warning(f"Claim request failed: {e!r}")
            return self._failure(ClaimErrorKind.NETWORK_ERROR)

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        status = response.status_code
        if status == 200 and body.get("success"):
            return ServerReply(success=True, status_code=status, data=body.get("data") or {})

        if status == 429:
            kind = ClaimErrorKind.RATE_LIMITED
        elif status == 400:
            kind = ClaimErrorKind.VALIDATION_ERROR
        else:
            kind = ClaimErrorKind.SERVER_ERROR

        logger.info(f"Claim rejected by server: {status} {body.get('reason')}")
        return self._failure(kind, status_code=status, detail=body.get("message"))

    @staticmethod
    def _failure(
        kind: ClaimErrorKind,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> ServerReply:
        return ServerReply(
            success=False,
            kind=kind,
            message=format_error_message(kind, detail),
            status_code=status_code,
        )
