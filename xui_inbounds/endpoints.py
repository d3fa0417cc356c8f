"""API endpoint handlers for the panel.

This module provides endpoint classes that wrap the panel's API endpoints
for inbound storage and reality key generation. They only move inbound
records to and from the panel; building and checking them happens in
:mod:`xui_inbounds.builder` and :mod:`xui_inbounds.validator`.
"""

import logging
from typing import Any, Dict, Generic, List, TypeVar, TYPE_CHECKING

import httpx
from httpx import Response

from xui_inbounds.models import InboundRecord, parse_inbound, parse_inbounds
from xui_inbounds.util import JsonType, KeyGenerationError, PanelError, RealityKeyPair

if TYPE_CHECKING:
    from xui_inbounds.api import PanelClient

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")


class BaseEndpoint(Generic[ResultT]):
    """Base class for API endpoint handlers.

    Provides common functionality for making API requests to the panel.

    Attributes:
        _url: The base URL path for this endpoint group.
        client: Reference to the PanelClient instance.
    """
    _url: str

    def __init__(self, client: "PanelClient") -> None:
        self.client = client

    def _endpoint(self, caller_endpoint: str) -> str:
        if caller_endpoint.startswith(self._url):
            return caller_endpoint
        return f"{self._url}/{caller_endpoint.lstrip('/')}"

    async def _simple_get(self, caller_endpoint: str) -> JsonType:
        """Perform a simple GET request and return the response object.

        Args:
            caller_endpoint: The endpoint path to request. If it doesn't start
                with the base URL, the base URL will be prepended.

        Returns:
            The 'obj' field from the JSON response.
        """
        resp = await self.client.safe_get(self._endpoint(caller_endpoint))
        return resp.json()["obj"]


class Inbounds(BaseEndpoint[InboundRecord]):
    """Handler for inbound storage endpoints.

    Endpoints:
        - /api/inbound/list
        - /api/inbound/add
        - /api/inbound/update
        - /api/inbound/del
    """
    _url = "inbound"

    async def list(self) -> List[InboundRecord]:
        """Retrieve all inbounds, settings normalized to nested objects."""
        obj = await self._simple_get("list")
        return parse_inbounds(obj or [])

    async def create(self, record: InboundRecord) -> InboundRecord:
        """Store a new inbound.

        Args:
            record: The record built for the new inbound.

        Returns:
            The record as stored by the panel.
        """
        resp = await self.client.safe_post(self._endpoint("add"), json=record.to_wire())
        return self._stored(resp, record)

    async def update(self, id: str, record: InboundRecord) -> InboundRecord:
        """Replace a stored inbound.

        Args:
            id: The id of the inbound to replace.
            record: The new content. Its id is overridden with ``id``.

        Returns:
            The record as stored by the panel.
        """
        payload = record.to_wire()
        payload["id"] = id
        resp = await self.client.safe_post(self._endpoint("update"), json=payload)
        return self._stored(resp, record)

    async def delete(self, id: str) -> Response:
        return await self.client.safe_post(self._endpoint("del"), json={"id": id})

    async def set_enabled(self, id: str, enable: bool) -> Response:
        """Toggle an inbound without touching any other field."""
        return await self.client.safe_post(self._endpoint("update"), json={"id": id, "enable": enable})

    @staticmethod
    def _stored(resp: Response, fallback: InboundRecord) -> InboundRecord:
        obj = resp.json().get("obj")
        if not obj:
            return fallback
        return parse_inbound(obj)


class Server(BaseEndpoint[RealityKeyPair]):
    """Handler for key generation endpoints.

    Endpoints:
        - /api/xray/generate-reality-keys
    """
    _url = "xray"

    async def generate_key_pair(self) -> RealityKeyPair:
        """Generate a reality X25519 key pair on the server.

        Returns:
            The key pair, base64 encoded by the server.

        Raises:
            KeyGenerationError: If the request failed or the answer lacks a key.
        """
        try:
            resp = await self.client.safe_get(self._endpoint("generate-reality-keys"), envelope=False)
            keys: Dict[str, Any] = resp.json()
        except (httpx.HTTPError, PanelError, ValueError) as exc:
            logger.error("Reality key generation failed: %s", exc)
            raise KeyGenerationError(f"Failed to generate keys: {exc}") from exc

        private_key = keys.get("private_key") or keys.get("privateKey") or ""
        public_key = keys.get("public_key") or keys.get("publicKey") or ""
        if not private_key or not public_key:
            raise KeyGenerationError("Key generation endpoint returned an incomplete key pair")
        return RealityKeyPair(private_key, public_key)
