"""
Input validation shared by the claim service and the client flow.
"""

import re
from typing import Optional

from ..schemas import CatalogEntry
from .catalog import Catalog
from .errors import InvalidOption


MAX_INPUT_LENGTH = 100

_MARKUP_CHARS = re.compile(r"[<>]")


def sanitize_input(value: Optional[str], max_length: int = MAX_INPUT_LENGTH) -> str:
    """Trim, drop angle brackets, and cap length."""
    if not value:
        return ""
    return _MARKUP_CHARS.sub("", value.strip())[:max_length]


def validate_option(catalog: Catalog, option_id: Optional[str]) -> CatalogEntry:
    """
    Resolve an option against the catalog.

    Raises:
        InvalidOption: option is missing, blank, or unknown
    """
    cleaned = option_id.strip() if isinstance(option_id, str) else ""
    if not cleaned:
        raise InvalidOption("Option is required")

    # Exact match only; sanitizing is for the error text, not the lookup.
    entry = catalog.get(cleaned)
    if entry is None:
        raise InvalidOption(f"Unknown option: {sanitize_input(cleaned)!r}")
    return entry
