"""Unit tests for generators and conversions."""
import base64
import logging
import random
import re
import uuid

import pytest

from xui_inbounds import util
from xui_inbounds.util import (
    KeyGenerationError,
    PanelError,
    derive_reality_public_key,
    generate_reality_keypair,
    generate_short_id,
    generate_uuid,
)

# RFC 7748 section 6.1, Alice's key pair
RFC7748_PRIVATE = "77076d0a7318a57d3c16c17251b26645df4c2f87ebc0992ab177fba51db92c2a"
RFC7748_PUBLIC = "8520f0098930a754748b7ddcb43ef75a0dbf3a0d26381af4eba4a98eaa9b4e6a"


def b64(hex_key: str) -> str:
    return base64.urlsafe_b64encode(bytes.fromhex(hex_key)).rstrip(b"=").decode()


class TestIdentifiers:
    """Test suite for UUID, short ID and port generators."""

    def test_uuid_is_version_4(self):
        """Generated UUIDs carry the RFC 4122 version and variant bits."""
        value = uuid.UUID(generate_uuid())
        assert value.version == 4
        assert value.variant == uuid.RFC_4122

    def test_uuid_with_seeded_source_is_reproducible(self):
        """A threaded random source makes UUIDs deterministic."""
        first = generate_uuid(random.Random(7))
        second = generate_uuid(random.Random(7))
        assert first == second
        assert uuid.UUID(first).version == 4

    def test_non_cryptographic_source_is_flagged(self, caplog):
        """Using a plain Random logs a warning."""
        with caplog.at_level(logging.WARNING, logger="xui_inbounds.util"):
            generate_uuid(random.Random(1))
        assert "non-cryptographic" in caplog.text

    def test_system_random_is_not_flagged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="xui_inbounds.util"):
            generate_uuid(random.SystemRandom())
        assert caplog.text == ""

    def test_short_id_is_8_hex_chars(self):
        """Short IDs are 4 bytes as lowercase hex."""
        assert re.fullmatch(r"[0-9a-f]{8}", generate_short_id())
        assert re.fullmatch(r"[0-9a-f]{8}", generate_short_id(random.Random(3)))

    def test_random_port_range(self, rng):
        ports = [util.random_port(rng) for _ in range(500)] + [util.random_port() for _ in range(50)]
        assert all(10000 <= p < 60000 for p in ports)


class TestRealityKeys:
    """Test suite for X25519 key generation."""

    def test_public_key_derived_from_private(self):
        """The RFC 7748 vector derives the expected public key."""
        assert derive_reality_public_key(b64(RFC7748_PRIVATE)) == b64(RFC7748_PUBLIC)

    def test_padded_private_key_accepted(self):
        padded = base64.urlsafe_b64encode(bytes.fromhex(RFC7748_PRIVATE)).decode()
        assert padded.endswith("=")
        assert derive_reality_public_key(padded) == b64(RFC7748_PUBLIC)

    def test_generated_pair_matches(self):
        """The generated public key belongs to the generated private key."""
        pair = generate_reality_keypair()
        assert derive_reality_public_key(pair.private_key) == pair.public_key
        assert pair.private_key != pair.public_key
        assert len(pair.private_key) == 43
        assert "=" not in pair.private_key

    def test_seeded_pair_is_reproducible(self):
        assert generate_reality_keypair(random.Random(5)) == generate_reality_keypair(random.Random(5))

    @pytest.mark.parametrize("key", ["c2hvcnQ", "!!!not base64!!!"])
    def test_invalid_private_key(self, key):
        """Keys that do not decode to 32 bytes are rejected."""
        with pytest.raises(KeyGenerationError):
            derive_reality_public_key(key)


class TestConversions:
    """Test suite for editor value conversions."""

    @pytest.mark.parametrize("text, expected", [
        ("5", 5368709120),
        ("0", 0),
        ("", 0),
        ("0.5", 536870912),
        ("abc", 0),
        ("inf", 0),
        ("nan", 0),
        ("-1", 0),
        ("1e308", 0),
    ])
    def test_gib_to_bytes(self, text, expected):
        assert util.gib_to_bytes(text) == expected

    @pytest.mark.parametrize("value, expected", [
        (5368709120, "5"),
        (0, "0"),
        (536870912, "0.5"),
    ])
    def test_bytes_to_gib_text(self, value, expected):
        assert util.bytes_to_gib_text(value) == expected

    def test_date_round_trip(self):
        """Dates are UTC midnight epoch milliseconds."""
        assert util.date_to_epoch_ms("2025-01-01") == 1735689600000
        assert util.epoch_ms_to_date(1735689600000) == "2025-01-01"

    def test_blank_date_is_never(self):
        assert util.date_to_epoch_ms("") == 0
        assert util.date_to_epoch_ms("   ") == 0
        assert util.epoch_ms_to_date(0) == ""

    @pytest.mark.parametrize("text", ["2025-13-01", "01/02/2025", "soon", "1960-01-01"])
    def test_unusable_date_is_never(self, text):
        assert util.date_to_epoch_ms(text) == 0

    @pytest.mark.parametrize("text, expected", [
        ("42", 42),
        (" 7 ", 7),
        ("", 0),
        ("nan", 0),
        ("abc", 0),
        ("3.0", 3),
        (None, 0),
    ])
    def test_parse_int(self, text, expected):
        assert util.parse_int(text) == expected

    def test_split_helpers(self):
        assert util.split_lines("a.com\n\n  b.com \n") == ["a.com", "b.com"]
        assert util.split_csv("a.com, b.com") == ["a.com", "b.com"]


class TestResponseValidity:
    """Test suite for panel envelope checks."""

    def test_ok(self):
        assert util.check_panel_response_validity({"success": True, "msg": "", "obj": []}) == "OK"

    def test_db_locked(self):
        resp = {"success": False, "msg": "database is locked", "obj": None}
        assert util.check_panel_response_validity(resp) == "DB_LOCKED"

    def test_error(self):
        resp = {"success": False, "msg": "port already in use", "obj": None}
        assert util.check_panel_response_validity(resp) == "ERROR"

    def test_not_an_envelope(self):
        with pytest.raises(PanelError):
            util.check_panel_response_validity({"private_key": "x"})
