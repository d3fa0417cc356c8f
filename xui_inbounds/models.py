import json
from typing import Any, Annotated, Dict, List, Literal, Optional, Self, TypeAlias, Union

import pydantic
from pydantic import ConfigDict, Field, TypeAdapter, field_validator, model_validator

timestamp_ms: TypeAlias = int

Protocol: TypeAlias = Literal["vless", "vmess", "trojan", "shadowsocks"]
Network: TypeAlias = Literal["tcp", "ws", "grpc", "h2", "xhttp"]
Security: TypeAlias = Literal["none", "tls", "reality"]
Flow: TypeAlias = Literal["", "xtls-rprx-vision"]
XhttpMode: TypeAlias = Literal["auto", "packet-up", "stream-up", "stream-one"]

PROTOCOLS: tuple[str, ...] = ("vless", "vmess", "trojan", "shadowsocks")
NETWORKS: tuple[str, ...] = ("tcp", "ws", "grpc", "h2", "xhttp")
SECURITIES: tuple[str, ...] = ("none", "tls", "reality")

# network -> attribute holding its transport block
TRANSPORT_BLOCKS: Dict[str, str] = {
    "ws": "ws_settings",
    "grpc": "grpc_settings",
    "h2": "http_settings",
    "xhttp": "xhttp_settings",
}


class WireModel(pydantic.BaseModel):
    """Base for every piece of the stored inbound shape.

    Python attributes are snake_case; the camelCase aliases are the names the
    proxy server, the storage and third-party clients read.
    """
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        """Dump by alias, leaving out every key that is unset."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------- clients

class ClientBase(WireModel):
    level: Annotated[Optional[int], Field(ge=0)] = None
    email: Optional[str] = None

    @property
    def effective_level(self) -> int:
        """The user level, an absent level meaning 0."""
        return self.level or 0


class VlessClient(ClientBase):
    id: str
    flow: Optional[Flow] = None


class VmessClient(ClientBase):
    id: str
    alter_id: Annotated[Optional[int], Field(ge=0, alias="alterId")] = None


class TrojanClient(ClientBase):
    password: Annotated[str, Field(min_length=1)]


class VlessSettings(WireModel):
    model_config = ConfigDict(extra="allow")
    clients: list[VlessClient]
    decryption: Literal["none"] = "none"


class VmessSettings(WireModel):
    model_config = ConfigDict(extra="allow")
    clients: list[VmessClient]


class TrojanSettings(WireModel):
    model_config = ConfigDict(extra="allow")
    clients: list[TrojanClient]


class ShadowsocksSettings(WireModel):
    model_config = ConfigDict(extra="allow")
    method: str = "chacha20-ietf-poly1305"
    password: Annotated[str, Field(min_length=1)]
    network: str = "tcp,udp"


# ---------------------------------------------------------------- stream

class WsSettings(WireModel):
    path: str = "/"
    headers: Optional[Dict[str, str]] = None

    @property
    def host(self) -> str:
        return (self.headers or {}).get("Host", "")


class GrpcSettings(WireModel):
    service_name: Annotated[str, Field(alias="serviceName")] = ""
    multi_mode: Annotated[bool, Field(alias="multiMode")] = False


class HttpSettings(WireModel):
    host: Optional[List[str]] = None
    path: str = "/"


class XhttpSettings(WireModel):
    mode: XhttpMode = "auto"
    path: str = "/"
    host: Optional[str] = None


class TlsSettings(WireModel):
    model_config = ConfigDict(extra="allow")
    server_name: Annotated[str, Field(alias="serverName")] = ""


class RealitySettings(WireModel):
    show: bool = False
    dest: str = ""
    xver: Annotated[int, Field(ge=0)] = 0
    server_names: Annotated[List[str], Field(alias="serverNames")] = []
    private_key: Annotated[str, Field(alias="privateKey")] = ""
    # kept on the server record so share links can be synthesized from it
    public_key: Annotated[str, Field(alias="publicKey")] = ""
    short_ids: Annotated[List[str], Field(alias="shortIds")] = []
    fingerprint: str = "chrome"
    min_client_ver: Annotated[Optional[str], Field(alias="minClientVer")] = None
    max_client_ver: Annotated[Optional[str], Field(alias="maxClientVer")] = None
    max_time_diff: Annotated[Optional[int], Field(alias="maxTimeDiff")] = None


class Sockopt(WireModel):
    model_config = ConfigDict(extra="allow")
    tcp_fast_open: Annotated[Optional[bool], Field(alias="tcpFastOpen")] = None
    tcp_no_delay: Annotated[Optional[bool], Field(alias="tcpNoDelay")] = None


class StreamSettings(WireModel):
    """Transport and security half of an inbound.

    A transport block may only accompany its own network, and a security
    block only its own security layer.
    """
    model_config = ConfigDict(extra="allow")

    network: Network = "tcp"
    security: Security = "none"
    ws_settings: Annotated[Optional[WsSettings], Field(alias="wsSettings")] = None
    grpc_settings: Annotated[Optional[GrpcSettings], Field(alias="grpcSettings")] = None
    http_settings: Annotated[Optional[HttpSettings], Field(alias="httpSettings")] = None
    xhttp_settings: Annotated[Optional[XhttpSettings], Field(alias="xhttpSettings")] = None
    tls_settings: Annotated[Optional[TlsSettings], Field(alias="tlsSettings")] = None
    reality_settings: Annotated[Optional[RealitySettings], Field(alias="realitySettings")] = None
    sockopt: Optional[Sockopt] = None
    accept_proxy_protocol: Annotated[Optional[bool], Field(alias="acceptProxyProtocol")] = None

    @model_validator(mode="after")
    def check_blocks_match_selection(self) -> Self:
        for network, attr in TRANSPORT_BLOCKS.items():
            if getattr(self, attr) is not None and network != self.network:
                raise ValueError(f"{attr} is only allowed when network is {network!r}, got {self.network!r}")
        if self.reality_settings is not None and self.security != "reality":
            raise ValueError(f"realitySettings is only allowed when security is 'reality', got {self.security!r}")
        if self.tls_settings is not None and self.security != "tls":
            raise ValueError(f"tlsSettings is only allowed when security is 'tls', got {self.security!r}")
        return self


# ---------------------------------------------------------------- inbound

class InboundBase(WireModel):
    """Fields shared by every inbound regardless of protocol.

    Attributes:
        id: Opaque identifier, stable for the record's lifetime.
        remark: Human-readable label.
        enable: Whether the inbound is currently enabled.
        port: The port number the inbound listens on.
        tag: Routing tag.
        listen: The address the inbound listens on.
        total: Traffic quota in bytes (0 = unlimited).
        expiry: Expiry as epoch milliseconds (0 = never).
        up: Uploaded bytes, reported by the server.
        down: Downloaded bytes, reported by the server.
        stream_settings: Transport and security configuration.
        sniffing: Sniffing configuration, passed through untouched.
    """
    model_config = ConfigDict(extra="allow")

    id: str
    remark: Annotated[str, Field(min_length=1)]
    enable: bool = True
    port: Annotated[int, Field(ge=1, le=65535)]
    tag: Optional[str] = None
    listen: Optional[str] = None
    total: Annotated[int, Field(ge=0)] = 0
    expiry: Annotated[timestamp_ms, Field(ge=0)] = 0
    up: int = 0
    down: int = 0
    stream_settings: Annotated[Optional[StreamSettings], Field(alias="streamSettings")] = None
    sniffing: Optional[Dict[str, Any]] = None

    # noinspection PyNestedDecorators
    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    # noinspection PyNestedDecorators
    @field_validator("settings", "stream_settings", "sniffing", mode="before", check_fields=False)
    @classmethod
    def parse_json_fields(cls, value: Any) -> Any:
        """Parse JSON string fields into dictionaries.

        Some deployments store settings, streamSettings, and sniffing as
        JSON strings. This validator parses them so the rest of the model
        only ever sees nested objects.

        Args:
            value: The raw value, a JSON string or an already nested object.

        Returns:
            The parsed object, or None if the string was empty.
        """
        if isinstance(value, str):
            if value.strip() == "":
                return None
            return json.loads(value)
        return value

    @property
    def stream(self) -> StreamSettings:
        """Stream settings, defaulting to plain tcp without security."""
        return self.stream_settings if self.stream_settings is not None else StreamSettings()


class VlessInbound(InboundBase):
    protocol: Literal["vless"] = "vless"
    settings: VlessSettings

    @property
    def credential(self) -> str:
        return self.settings.clients[0].id if self.settings.clients else ""


class VmessInbound(InboundBase):
    protocol: Literal["vmess"] = "vmess"
    settings: VmessSettings

    @property
    def credential(self) -> str:
        return self.settings.clients[0].id if self.settings.clients else ""


class TrojanInbound(InboundBase):
    protocol: Literal["trojan"] = "trojan"
    settings: TrojanSettings

    @property
    def credential(self) -> str:
        return self.settings.clients[0].password if self.settings.clients else ""


class ShadowsocksInbound(InboundBase):
    protocol: Literal["shadowsocks"] = "shadowsocks"
    settings: ShadowsocksSettings

    @property
    def credential(self) -> str:
        return self.settings.password


InboundRecord: TypeAlias = Annotated[
    Union[VlessInbound, VmessInbound, TrojanInbound, ShadowsocksInbound],
    Field(discriminator="protocol"),
]

_inbound_adapter: TypeAdapter[InboundRecord] = TypeAdapter(InboundRecord)
_inbound_list_adapter: TypeAdapter[List[InboundRecord]] = TypeAdapter(List[InboundRecord])


def parse_inbound(data: Dict[str, Any] | str) -> InboundRecord:
    """Validate a stored inbound (mapping or JSON document) into its protocol variant.

    Raises:
        pydantic.ValidationError: If the data does not describe a valid inbound.
    """
    if isinstance(data, str):
        return _inbound_adapter.validate_json(data)
    return _inbound_adapter.validate_python(data)


def parse_inbounds(data: List[Dict[str, Any]]) -> List[InboundRecord]:
    return _inbound_list_adapter.validate_python(data)
