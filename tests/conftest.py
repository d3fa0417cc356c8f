"""
Shared pytest fixtures for inbound model and endpoint tests.
"""
import json
import os
import random
from typing import Callable

import httpx
import pytest

from xui_inbounds.api import PanelClient
from xui_inbounds.config import load_settings
from xui_inbounds.form import InboundForm

TEST_UUID = "11111111-1111-4111-8111-111111111111"

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source so generated keys and IDs are reproducible."""
    return random.Random(20240601)


@pytest.fixture
def vless_form() -> InboundForm:
    """A valid vless form with socket flags off, so stream settings stay minimal."""
    return InboundForm(
        remark="node",
        protocol="vless",
        uuid=TEST_UUID,
        port="443",
        tcp_fast_open=False,
        tcp_no_delay=False,
    )


@pytest.fixture
def stored_inbound() -> dict:
    """An inbound the way the panel database hands it out: settings as JSON strings."""
    return {
        "id": "2a80a671",
        "remark": "reality-node",
        "protocol": "vless",
        "port": 44300,
        "enable": True,
        "tag": "inbound-2a80a671",
        "settings": json.dumps({
            "clients": [{"id": TEST_UUID, "flow": "xtls-rprx-vision"}],
            "decryption": "none",
        }),
        "streamSettings": json.dumps({
            "network": "tcp",
            "security": "reality",
            "realitySettings": {
                "show": False,
                "dest": "www.microsoft.com:443",
                "xver": 0,
                "serverNames": ["www.microsoft.com"],
                "privateKey": "cFpC2Y3bdQ5yV0bVg4hJ8k6n9Yx0y0H9m1pU7r3sT1E",
                "publicKey": "Zx9k3ZpJrV7yq3YFQmJf0kq2X9cT8l2gVn0aT4xQ0xM",
                "shortIds": ["6ba85179"],
                "fingerprint": "chrome",
            },
            "sockopt": {"tcpFastOpen": True, "tcpNoDelay": True},
        }),
        "sniffing": json.dumps({"enabled": True, "destOverride": ["http", "tls"]}),
        "up": 362637,
        "down": 8903,
        "total": 0,
        "expiry": 0,
    }


@pytest.fixture
def make_client() -> Callable[[Handler], PanelClient]:
    """
    Build a connected PanelClient whose requests are answered by ``handler``
    instead of a real panel.
    """
    def factory(handler: Handler, base_path: str = "") -> PanelClient:
        client = PanelClient("panel.test", 2053, base_path, username="admin", password="admin",
                             transport=httpx.MockTransport(handler))
        client.retry_delay = 0
        client.connect()
        return client

    return factory


@pytest.fixture
async def live_client() -> PanelClient:
    """
    Create and authenticate a PanelClient against a real panel.
    Skipped unless the PANEL_* variables are configured (.env file or environment).
    """
    env_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env")
    try:
        settings = load_settings(env_path)
    except ValueError as e:
        pytest.skip(f"Panel not configured: {e}")

    client = PanelClient.from_settings(settings)
    async with client:
        yield client
