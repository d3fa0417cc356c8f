"""Utility functions and helpers for the inbound configuration model.

This module provides common utilities used across the package including:
- Identifier generators (UUIDs, reality short IDs, listening ports)
- X25519 key pair generation for the reality security layer
- Unit conversions between editor values and stored values
- Panel response validation
- The exception types raised by the package
"""

import base64
import logging
import math
import random
import secrets
import uuid
from datetime import UTC, date, datetime
from typing import TypeAlias, Union, Dict, Any, List, NamedTuple

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import x25519

logger = logging.getLogger(__name__)

JsonType: TypeAlias = Union[Dict[Any, Any], List[Any]]

GIB = 1024 ** 3
PORT_MIN = 10000
PORT_MAX = 60000


class InboundValidationError(ValueError):
    """Raised when an inbound form fails one of the submission rules.

    Attributes:
        field: The form field the violated rule is keyed to.
        message: The user-facing message for that rule.
    """

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class EncodingError(ValueError):
    """Raised when a share link cannot be encoded or decoded."""


class UnsupportedProtocolError(EncodingError):
    """Raised when the share link grammar for a protocol is not available."""

    def __init__(self, protocol: str):
        super().__init__(f"Share links are not supported for protocol {protocol!r}")
        self.protocol = protocol


class KeyGenerationError(RuntimeError):
    """Raised when a reality key pair could not be fetched or generated."""


class PanelError(RuntimeError):
    """Raised when the panel answers with an unsuccessful envelope."""


class DBLockedError(PanelError):
    """Exception raised when the panel database is locked.

    This exception is raised when an operation fails because the SQLite
    database used by the panel is locked by another operation.
    """

    def __init__(self, message: str):
        """Initialize the DBLockedError.

        Args:
            message: Explanation of the error.
        """
        super().__init__(message)


class RealityKeyPair(NamedTuple):
    private_key: str
    public_key: str


def _random_bytes(count: int, rng: random.Random | None) -> bytes:
    if rng is None:
        return secrets.token_bytes(count)
    if not isinstance(rng, random.SystemRandom):
        logger.warning("Using a non-cryptographic random source for key material")
    return bytes(rng.getrandbits(8) for _ in range(count))


def generate_uuid(rng: random.Random | None = None) -> str:
    """Generate a random version 4 UUID string.

    Args:
        rng: Optional random source. When omitted the operating system's
            cryptographic source is used. Anything other than
            ``random.SystemRandom`` is not cryptographically strong and is
            logged as such; pass one only for deterministic fixtures.

    Returns:
        The UUID in canonical 36 character form.

    Examples:
        >>> len(generate_uuid())
        36
        >>> generate_uuid()[14]
        '4'
    """
    if rng is None:
        return str(uuid.uuid4())
    return str(uuid.UUID(bytes=_random_bytes(16, rng), version=4))


def generate_short_id(rng: random.Random | None = None) -> str:
    """Generate a reality short ID: 4 random bytes as 8 lowercase hex characters."""
    return _random_bytes(4, rng).hex()


def _encode_key(raw: bytes) -> str:
    # xray prints keys as url-safe base64 without padding
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _decode_key(key: str) -> bytes:
    padded = key.strip() + "=" * (-len(key.strip()) % 4)
    try:
        return base64.urlsafe_b64decode(padded)
    except ValueError as exc:
        raise KeyGenerationError("Reality key is not valid base64") from exc


def derive_reality_public_key(private_key: str) -> str:
    """Derive the X25519 public key matching a reality private key.

    Args:
        private_key: The private key, url-safe base64 with or without padding.

    Returns:
        The public key in the same encoding.

    Raises:
        KeyGenerationError: If the private key does not decode to 32 bytes.
    """
    raw = _decode_key(private_key)
    if len(raw) != 32:
        raise KeyGenerationError("Reality private key must decode to 32 bytes")
    private = x25519.X25519PrivateKey.from_private_bytes(raw)
    public = private.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return _encode_key(public)


def generate_reality_keypair(rng: random.Random | None = None) -> RealityKeyPair:
    """Generate a reality X25519 key pair.

    The public key is derived from the private key, so clients holding the
    public key can complete the handshake with the server.

    Args:
        rng: Optional random source for the private key bytes, see
            :func:`generate_uuid`.

    Returns:
        A RealityKeyPair of url-safe base64 strings.
    """
    if rng is None:
        private = x25519.X25519PrivateKey.generate()
    else:
        private = x25519.X25519PrivateKey.from_private_bytes(_random_bytes(32, rng))
    raw = private.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    private_key = _encode_key(raw)
    return RealityKeyPair(private_key, derive_reality_public_key(private_key))


def random_port(rng: random.Random | None = None) -> int:
    """Pick a listening port in [10000, 60000)."""
    if rng is None:
        return PORT_MIN + secrets.randbelow(PORT_MAX - PORT_MIN)
    return rng.randrange(PORT_MIN, PORT_MAX)


def parse_int(value: str | int | float | None) -> int:
    """Parse an editor value as an integer, defaulting to 0 on empty or garbage.

    Examples:
        >>> parse_int("42")
        42
        >>> parse_int("")
        0
        >>> parse_int("abc")
        0
    """
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    value = value.strip()
    if not value:
        return 0
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        return 0


def parse_number(value: str) -> float | None:
    """Parse an editor value as a number, returning None when it is not one."""
    try:
        number = float(value.strip())
    except ValueError:
        return None
    if number != number:
        return None
    return number


def gib_to_bytes(value: str) -> int:
    """Convert a quota typed in GiB to bytes, 0 for blank, negative or non-finite input.

    Examples:
        >>> gib_to_bytes("5")
        5368709120
        >>> gib_to_bytes("")
        0
        >>> gib_to_bytes("inf")
        0
    """
    number = parse_number(value) if value else None
    if number is None or number < 0 or not math.isfinite(number * GIB):
        return 0
    return int(number * GIB)


def bytes_to_gib_text(value: int) -> str:
    """Render a byte quota as GiB, dropping a trailing ``.0``.

    Examples:
        >>> bytes_to_gib_text(5368709120)
        '5'
        >>> bytes_to_gib_text(536870912)
        '0.5'
    """
    gib = value / GIB
    if gib.is_integer():
        return str(int(gib))
    return repr(gib)


def date_to_epoch_ms(value: str) -> int:
    """Convert a ``YYYY-MM-DD`` date to epoch milliseconds at UTC midnight.

    Blank or malformed dates, and dates before the epoch, give 0 (never expires).
    """
    value = value.strip()
    if not value:
        return 0
    try:
        day = date.fromisoformat(value)
    except ValueError:
        logger.debug("Ignoring malformed expiry date %r", value)
        return 0
    midnight = datetime(day.year, day.month, day.day, tzinfo=UTC)
    return max(int(midnight.timestamp() * 1000), 0)


def epoch_ms_to_date(value: int) -> str:
    """Render epoch milliseconds as a UTC ``YYYY-MM-DD`` date, empty for 0."""
    if not value:
        return ""
    return datetime.fromtimestamp(value / 1000, UTC).date().isoformat()


def split_lines(value: str) -> list[str]:
    """Split a textarea value into its non-blank lines."""
    return [line.strip() for line in value.splitlines() if line.strip()]


def split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",")]


def check_panel_response_validity(response: JsonType | httpx.Response) -> str:
    """Validate a panel API response.

    Checks if the response follows the panel's envelope format with
    'success', 'msg', and 'obj' keys, and determines the response status.

    Args:
        response: Either a JSON response dict or an httpx Response object.

    Returns:
        str: One of three status strings:
            - "OK": Response is valid and successful.
            - "DB_LOCKED": Database is locked, operation should be retried.
            - "ERROR": Operation was unsuccessful.

    Raises:
        PanelError: If the response doesn't match the expected envelope.

    Examples:
        >>> check_panel_response_validity({"success": True, "msg": "", "obj": {}})
        'OK'
        >>> check_panel_response_validity({"success": False, "msg": "database is locked", "obj": None})
        'DB_LOCKED'
    """
    if isinstance(response, httpx.Response):
        json_resp = response.json()
    else:
        json_resp = response

    if isinstance(json_resp, dict) and "success" in json_resp:
        success: bool = json_resp["success"]
        msg: str = json_resp.get("msg") or ""
        if success:
            return "OK"
        if "database" in msg.lower() and "locked" in msg.lower():
            logger.warning("Database is locked, retrying...")
            return "DB_LOCKED"
        logger.error("Unsuccessful operation! Message: %s", msg)
        return "ERROR"
    raise PanelError("Response is not a panel envelope (success, msg, obj)")
