import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class PanelSettings:
    host: str
    port: int
    base_path: str
    username: str
    password: str
    scheme: str
    verify_tls: bool
    request_timeout: int
    share_address: str


def _to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings(env_file: str | None = None) -> PanelSettings:
    """Read panel settings from the environment, loading ``.env`` first.

    Raises:
        ValueError: If a required value is missing or malformed.
    """
    load_dotenv(env_file)

    host = os.getenv("PANEL_HOST", "").strip()
    port_raw = os.getenv("PANEL_PORT", "").strip()
    username = os.getenv("PANEL_USERNAME", "").strip()
    password = os.getenv("PANEL_PASSWORD", "")

    if not host:
        raise ValueError("PANEL_HOST is required")
    if not port_raw:
        raise ValueError("PANEL_PORT is required")
    if not username or not password:
        raise ValueError("PANEL_USERNAME and PANEL_PASSWORD are required")

    try:
        port = int(port_raw)
    except ValueError as exc:
        raise ValueError("PANEL_PORT must be an integer") from exc

    return PanelSettings(
        host=host,
        port=port,
        base_path=os.getenv("PANEL_BASE_PATH", "").strip(),
        username=username,
        password=password,
        scheme=os.getenv("PANEL_SCHEME", "https").strip() or "https",
        verify_tls=_to_bool(os.getenv("PANEL_VERIFY_TLS"), default=True),
        request_timeout=int(os.getenv("REQUEST_TIMEOUT", "60")),
        share_address=os.getenv("SHARE_ADDRESS", "").strip() or host,
    )
