"""
Claim Error Taxonomy

Every rejection or failure on the claim path is a ClaimError. Each kind
carries the HTTP status it maps to, a machine-readable reason, and a
message that is safe to return to the caller. Internal detail (raw store
errors) stays in the exception chain and the logs, never in public_message.
"""


class ClaimError(Exception):
    """Base exception for claim rejections and failures."""

    status_code = 500
    reason = "server_error"
    public_message = "Internal server error occurred"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.public_message)
        self.detail = detail


class InvalidOption(ClaimError):
    """Option is empty or not in the catalog. Correctable by reselecting."""
    status_code = 400
    reason = "invalid_option"
    public_message = "The selected edition is not available"


class IdentityUnavailable(ClaimError):
    """No transport header yielded a valid network address."""
    status_code = 400
    reason = "identity_unavailable"
    public_message = "Unable to determine client address"


class RateLimited(ClaimError):
    """Address already claimed within the window. Expected business rejection."""
    status_code = 429
    reason = "rate_limited"

    def __init__(self, detail: str = "", window_days: int = 30):
        self.window_days = window_days
        self.public_message = (
            "This network address has already claimed materials "
            f"within the last {window_days} days"
        )
        super().__init__(detail)


class StorageError(ClaimError):
    """Claim store failed while checking or committing."""
    status_code = 500
    reason = "storage_error"
    public_message = "Failed to record claim"
