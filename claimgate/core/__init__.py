# Core claim gate services
from .catalog import Catalog, default_catalog
from .compaction import CompactionConfig, CompactionScheduler
from .errors import (
    ClaimError,
    IdentityUnavailable,
    InvalidOption,
    RateLimited,
    StorageError,
)
from .identity import is_valid_ip, parse_ip, resolve_client_address
from .policy import ClaimPolicy, DEFAULT_IDENTITY_HEADERS, DEFAULT_WINDOW_DAYS
from .service import ClaimOutcome, ClaimService, ClaimState
from .validation import sanitize_input, validate_option

__all__ = [
    "Catalog",
    "default_catalog",
    "CompactionConfig",
    "CompactionScheduler",
    "ClaimError",
    "IdentityUnavailable",
    "InvalidOption",
    "RateLimited",
    "StorageError",
    "is_valid_ip",
    "parse_ip",
    "resolve_client_address",
    "ClaimPolicy",
    "DEFAULT_IDENTITY_HEADERS",
    "DEFAULT_WINDOW_DAYS",
    "ClaimOutcome",
    "ClaimService",
    "ClaimState",
    "sanitize_input",
    "validate_option",
]
