"""
Tests for caller identity, input validation and the catalog.
"""

import pytest

from claimgate.core import (
    Catalog,
    ClaimPolicy,
    DEFAULT_IDENTITY_HEADERS,
    InvalidOption,
    default_catalog,
    is_valid_ip,
    parse_ip,
    resolve_client_address,
    sanitize_input,
    validate_option,
)
from claimgate.schemas import CatalogEntry


class TestParseIp:
    """IP literal validation."""

    @pytest.mark.parametrize("value", [
        "1.2.3.4",
        "255.255.255.255",
        "0.0.0.0",
        "::1",
        "2001:db8::1",
        "::ffff:192.0.2.1",
    ])
    def test_valid_literals(self, value):
        """Well-formed IPv4 and IPv6 literals are accepted."""
        assert is_valid_ip(value)

    @pytest.mark.parametrize("value", [
        "",
        "   ",
        "256.1.1.1",
        "1.2.3",
        "1.2.3.4:8080",
        "[2001:db8::1]",
        "fe80::1%eth0",
        "example.com",
        "unknown",
    ])
    def test_invalid_literals(self, value):
        """Anything else is rejected."""
        assert parse_ip(value) is None

    def test_ipv6_canonicalized(self):
        """Equivalent IPv6 spellings map to one address."""
        assert parse_ip("2001:0DB8:0000::0001") == "2001:db8::1"
        assert parse_ip(" 2001:db8::1 ") == "2001:db8::1"


class TestResolveClientAddress:
    """Header priority and fallbacks."""

    def test_forwarded_for_first_hop(self):
        """Only the first X-Forwarded-For value is used."""
        headers = {"X-Forwarded-For": "1.2.3.4, 10.0.0.1, 10.0.0.2"}
        assert resolve_client_address(headers, DEFAULT_IDENTITY_HEADERS) == "1.2.3.4"

    def test_forwarded_for_beats_real_ip(self):
        """x-forwarded-for wins over x-real-ip."""
        headers = {"x-real-ip": "5.6.7.8", "x-forwarded-for": "1.2.3.4"}
        assert resolve_client_address(headers, DEFAULT_IDENTITY_HEADERS) == "1.2.3.4"

    def test_invalid_header_falls_through(self):
        """A garbage value in one header moves on to the next."""
        headers = {"x-forwarded-for": "not-an-ip", "cf-connecting-ip": "9.9.9.9"}
        assert resolve_client_address(headers, DEFAULT_IDENTITY_HEADERS) == "9.9.9.9"

    def test_garbage_first_hop_not_rescued_by_later_hops(self):
        """Later X-Forwarded-For hops are never consulted."""
        headers = {"x-forwarded-for": "garbage, 1.2.3.4"}
        assert resolve_client_address(headers, DEFAULT_IDENTITY_HEADERS) is None

    def test_client_ip_last_resort(self):
        """x-client-ip is used when nothing else is present."""
        headers = {"X-Client-IP": "2001:db8::7"}
        assert resolve_client_address(headers, DEFAULT_IDENTITY_HEADERS) == "2001:db8::7"

    def test_no_headers(self):
        """No identity headers and no peer means no identity."""
        assert resolve_client_address({}, DEFAULT_IDENTITY_HEADERS) is None

    def test_peer_address_fallback(self):
        """The peer address is used only when headers yield nothing."""
        assert resolve_client_address({}, DEFAULT_IDENTITY_HEADERS, "7.7.7.7") == "7.7.7.7"
        headers = {"x-real-ip": "5.6.7.8"}
        assert resolve_client_address(headers, DEFAULT_IDENTITY_HEADERS, "7.7.7.7") == "5.6.7.8"

    def test_custom_header_order(self):
        """The configured order is honoured."""
        headers = {"x-forwarded-for": "1.2.3.4", "x-real-ip": "5.6.7.8"}
        assert resolve_client_address(headers, ("x-real-ip",)) == "5.6.7.8"


class TestClaimPolicy:
    """Policy configuration."""

    def test_defaults(self):
        """30-day window, four headers, no peer trust."""
        policy = ClaimPolicy()
        assert policy.window_days == 30
        assert policy.identity_headers == DEFAULT_IDENTITY_HEADERS
        assert policy.trust_peer_address is False

    def test_rejects_zero_window(self):
        """A window must be at least a day."""
        with pytest.raises(ValueError):
            ClaimPolicy(window_days=0)

    def test_rejects_no_identity_source(self):
        """Some identity source is required."""
        with pytest.raises(ValueError):
            ClaimPolicy(identity_headers=())

    def test_from_env(self, monkeypatch):
        """Environment variables override defaults."""
        monkeypatch.setenv("CLAIMGATE_WINDOW_DAYS", "7")
        monkeypatch.setenv("CLAIMGATE_IDENTITY_HEADERS", "X-Real-IP, cf-connecting-ip")
        monkeypatch.setenv("CLAIMGATE_TRUST_PEER_ADDRESS", "true")
        policy = ClaimPolicy.from_env()
        assert policy.window_days == 7
        assert policy.identity_headers == ("x-real-ip", "cf-connecting-ip")
        assert policy.trust_peer_address is True


class TestValidation:
    """Option validation against the catalog."""

    @pytest.fixture
    def catalog(self):
        return default_catalog()

    def test_known_option(self, catalog):
        """A catalog id resolves to its entry."""
        entry = validate_option(catalog, "bnu")
        assert entry.option_id == "bnu"
        assert entry.linkage.startswith("https://")

    def test_surrounding_whitespace_ignored(self, catalog):
        """Leading and trailing whitespace is trimmed before lookup."""
        assert validate_option(catalog, "  yilin ").option_id == "yilin"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_option(self, catalog, value):
        """Blank options are rejected."""
        with pytest.raises(InvalidOption):
            validate_option(catalog, value)

    @pytest.mark.parametrize("value", ["BNU", "unknown", "<script>bnu</script>"])
    def test_unknown_option(self, catalog, value):
        """Lookup is exact; near misses and markup are rejected."""
        with pytest.raises(InvalidOption) as exc_info:
            validate_option(catalog, value)
        assert "<" not in exc_info.value.detail

    def test_sanitize_input(self):
        """Sanitizing trims, strips angle brackets and truncates."""
        assert sanitize_input("  <b>hi</b>  ") == "bhi/b"
        assert sanitize_input(None) == ""
        assert len(sanitize_input("x" * 500)) == 100


class TestCatalog:
    """The shipped catalog."""

    def test_default_catalog_contents(self):
        """Nine editions, each with a link and code."""
        catalog = default_catalog()
        assert len(catalog) == 9
        assert "bnu" in catalog
        assert "yilin" in catalog
        for entry in catalog:
            assert entry.linkage
            assert entry.extraction_code

    def test_public_options_have_no_links(self):
        """The public view carries only id and name."""
        options = default_catalog().public_options()
        dumped = options[0].model_dump(by_alias=True)
        assert set(dumped) == {"optionId", "name"}

    def test_duplicate_ids_rejected(self):
        """Option ids are unique."""
        entry = CatalogEntry(option_id="a", name="A", linkage="https://x")
        with pytest.raises(ValueError):
            Catalog([entry, entry])
