import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Self, Optional, Dict, Union, Any, List, Tuple

import httpx
from httpx import Response, AsyncClient

from xui_inbounds import util
from xui_inbounds.config import PanelSettings
from xui_inbounds.endpoints import Inbounds, Server
from xui_inbounds.util import DBLockedError, PanelError

logger = logging.getLogger(__name__)

PrimitiveData = Optional[Union[str, int, float, bool]]
ParamType = Union[
    Mapping[str, Union[PrimitiveData, Sequence[PrimitiveData]]],
    List[Tuple[str, PrimitiveData]],
    Tuple[Tuple[str, PrimitiveData], ...],
    str,
    bytes,
]
HeaderType = Union[
    Mapping[str, str],
    Sequence[Tuple[str, str]],
]


class PanelClient:
    """Async client for the panel's JSON API.

    Every panel response is an envelope ``{"success", "msg", "obj"}``;
    ``safe_get``/``safe_post`` unwrap nothing but check it, re-login once when
    the token expired and retry while the panel database is locked.

    Attributes:
        inbounds_end: Inbound storage endpoints.
        server_end: Key generation endpoints.
    """

    def __init__(self, base_host: str, base_port: int, base_path: str = "",
                 *, username: str | None = None, password: str | None = None,
                 scheme: str = "https", verify_tls: bool = True, timeout: float = 60,
                 transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.session: AsyncClient | None = None
        self.base_host: str = base_host
        self.base_port: int = base_port
        self.base_path: str = base_path.strip("/")
        root = f"{scheme}://{self.base_host}:{self.base_port}"
        self.base_url: str = f"{root}/{self.base_path}/api" if self.base_path else f"{root}/api"
        self.username: str | None = username
        self.password: str | None = password
        self.verify_tls: bool = verify_tls
        self.timeout: float = timeout
        self.token: str | None = None
        self.max_retries: int = 5
        self.retry_delay: float = 1
        self._transport = transport

        self.inbounds_end = Inbounds(self)
        self.server_end = Server(self)

    @classmethod
    def from_settings(cls, settings: PanelSettings, **kwargs: Any) -> Self:
        return cls(settings.host, settings.port, settings.base_path,
                   username=settings.username, password=settings.password,
                   scheme=settings.scheme, verify_tls=settings.verify_tls,
                   timeout=settings.request_timeout, **kwargs)

    def _auth_headers(self, headers: HeaderType | None) -> Dict[str, str]:
        merged = dict(headers or {})
        if self.token:
            merged["Authorization"] = f"Bearer {self.token}"
        return merged

    async def _request(self, method: str, url: str, *, envelope: bool = True, **kwargs: Any) -> Response:
        if self.session is None:
            raise RuntimeError("Session is not initialized")

        headers = kwargs.pop("headers", None)
        relogged = False
        for attempt in range(self.max_retries):
            logger.debug("%s %s (attempt %d)", method, url, attempt + 1)
            resp = await self.session.request(method, url, headers=self._auth_headers(headers), **kwargs)
            if resp.status_code == 401 and not relogged and self.username is not None:
                relogged = True
                await self.login()
                continue
            if resp.status_code != 200:
                raise PanelError(f"Server returned status code {resp.status_code}")
            if not envelope:
                return resp

            status = util.check_panel_response_validity(resp)
            if status == "OK":
                return resp
            if status == "DB_LOCKED":
                if attempt + 1 >= self.max_retries:
                    raise DBLockedError("Database locked: max retries exceeded")
                await asyncio.sleep(self.retry_delay)
                continue
            raise PanelError(resp.json().get("msg") or "Unsuccessful operation")
        raise PanelError("Max retries exceeded")

    async def safe_get(self, url: httpx.URL | str, *, params: ParamType | None = None,
                       headers: HeaderType | None = None, envelope: bool = True) -> Response:
        return await self._request("GET", str(url), params=params, headers=headers, envelope=envelope)

    async def safe_post(self, url: httpx.URL | str, *, json: Any | None = None,
                        params: ParamType | None = None, headers: HeaderType | None = None) -> Response:
        return await self._request("POST", str(url), json=json, params=params, headers=headers)

    async def login(self, username: str | None = None, password: str | None = None) -> None:
        """Authenticate and keep the bearer token for later requests.

        Args:
            username: Overrides the username given at construction.
            password: Overrides the password given at construction.

        Raises:
            ValueError: If no credentials are available or they are rejected.
            PanelError: If the panel answers with an unexpected status.
        """
        if self.session is None:
            raise RuntimeError("Session is not initialized")
        username = username or self.username
        password = password or self.password
        if not username or not password:
            raise ValueError("You must provide a username and a password either to the client or to login()")

        resp = await self.session.post("auth/login", json={"username": username, "password": password})
        if resp.status_code not in (200, 401):
            raise PanelError(f"Error: server returned a status code of {resp.status_code}")
        resp_json = resp.json()
        if resp.status_code == 200 and resp_json.get("success"):
            self.token = (resp_json.get("obj") or {}).get("token")
            logger.info("Logged in to %s as %s", self.base_host, username)
            return
        raise ValueError("Error: wrong credentials or failed login")

    def connect(self) -> None:
        self.session = AsyncClient(base_url=f"{self.base_url}/", verify=self.verify_tls,
                                   timeout=self.timeout, transport=self._transport)

    async def disconnect(self) -> None:
        if self.session is not None:
            await self.session.aclose()
            self.session = None

    async def __aenter__(self) -> Self:
        self.connect()
        if self.username and self.password:
            await self.login()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
