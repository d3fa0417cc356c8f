"""Client share links for inbounds.

A share link packs everything a client needs to connect to one inbound::

    <protocol>://<credential>@<address>:<port>?<query>#<remark>

The query names (``type``, ``security``, ``sni``, ``fp``, ``pbk``...) are
read by third-party clients and must not change. Query values are
form-encoded the way browsers serialize ``URLSearchParams`` and the remark is
percent-encoded the way ``encodeURIComponent`` does it, so links match the
ones the web panel produces byte for byte.

Only vless and trojan have a grammar here; vmess and shadowsocks raise
UnsupportedProtocolError.
"""

import logging
from typing import Any, Dict, Iterable, List, NamedTuple, Tuple
from urllib.parse import parse_qsl, quote, quote_plus, unquote, urlsplit

from pydantic import ValidationError

from xui_inbounds.models import (
    InboundRecord,
    StreamSettings,
    TrojanInbound,
    VlessInbound,
    parse_inbound,
)
from xui_inbounds.util import EncodingError, UnsupportedProtocolError, generate_uuid

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("vless", "trojan")

# characters encodeURIComponent leaves alone besides alphanumerics and -_.
_REMARK_SAFE = "!~*'()"
# unreserved and sub-delims; '@', ':' and '%' in a secret get escaped
_CREDENTIAL_SAFE = "!$&'()*+,;=-._~"

Query = List[Tuple[str, str]]


class DecodedShareLink(NamedTuple):
    address: str
    record: InboundRecord


def _form_quote(value: str) -> str:
    return quote_plus(value, safe="*").replace("~", "%7E")


def _format_query(params: Query) -> str:
    return "&".join(f"{key}={_form_quote(value)}" for key, value in params)


def _format_host(address: str) -> str:
    if ":" in address and not address.startswith("["):
        return f"[{address}]"
    return address


def _transport_params(stream: StreamSettings) -> Query:
    if stream.network == "ws":
        ws = stream.ws_settings
        return [("path", (ws.path if ws else "") or "/"), ("host", ws.host if ws else "")]
    if stream.network == "grpc":
        grpc = stream.grpc_settings
        return [("serviceName", grpc.service_name if grpc else "")]
    return []


def _tls_server_name(stream: StreamSettings) -> str:
    return stream.tls_settings.server_name if stream.tls_settings else ""


def _vless_params(record: VlessInbound) -> Query:
    stream = record.stream_settings
    if stream is None:
        return []
    params: Query = [("type", stream.network or "tcp"), ("security", stream.security or "none")]
    client = record.settings.clients[0] if record.settings.clients else None
    if client is not None and client.flow:
        params.append(("flow", client.flow))
    if stream.security == "reality":
        reality = stream.reality_settings
        if reality is not None:
            params += [
                ("sni", reality.server_names[0] if reality.server_names else ""),
                ("fp", reality.fingerprint or "chrome"),
                ("pbk", reality.public_key),
                ("sid", reality.short_ids[0] if reality.short_ids else ""),
            ]
    elif stream.security == "tls":
        params.append(("sni", _tls_server_name(stream)))
    return params + _transport_params(stream)


def _trojan_params(record: TrojanInbound) -> Query:
    stream = record.stream_settings
    if stream is None:
        return []
    params: Query = [
        ("security", stream.security or "tls"),
        ("type", stream.network or "tcp"),
        ("sni", _tls_server_name(stream)),
    ]
    return params + _transport_params(stream)


def encode_share_link(record: InboundRecord, server_address: str) -> str:
    """Encode an inbound as a client share link.

    Args:
        record: The inbound to share.
        server_address: Host name or IP clients should connect to. The
            caller decides it (usually the address the panel is reached at).

    Returns:
        The share link.

    Raises:
        UnsupportedProtocolError: For protocols without a link grammar.

    Examples:
        A vless inbound over websocket without security::

            vless://11111111-1111-4111-8111-111111111111@1.2.3.4:443?type=ws&security=none&path=%2Fx&host=ex.com#A%20B
    """
    if isinstance(record, VlessInbound):
        params = _vless_params(record)
    elif isinstance(record, TrojanInbound):
        params = _trojan_params(record)
    else:
        raise UnsupportedProtocolError(record.protocol)
    credential = quote(record.credential, safe=_CREDENTIAL_SAFE)
    remark = quote(record.remark, safe=_REMARK_SAFE)
    return (f"{record.protocol}://{credential}@{_format_host(server_address)}:{record.port}"
            f"?{_format_query(params)}#{remark}")


def share_links_for(records: Iterable[InboundRecord], server_address: str) -> List[str]:
    """Encode every shareable inbound, skipping protocols without a link grammar."""
    links: List[str] = []
    for record in records:
        try:
            links.append(encode_share_link(record, server_address))
        except UnsupportedProtocolError as exc:
            logger.warning("Skipping inbound %s (%s): %s", record.id, record.remark, exc)
    return links


def _decode_stream(params: Dict[str, str], default_security: str) -> Dict[str, Any]:
    network = params.get("type") or "tcp"
    security = params.get("security") or default_security
    stream: Dict[str, Any] = {"network": network, "security": security}
    sni = params.get("sni", "")

    if security == "reality":
        stream["realitySettings"] = {
            "serverNames": [sni] if sni else [],
            "fingerprint": params.get("fp") or "chrome",
            "publicKey": params.get("pbk", ""),
            "shortIds": [params["sid"]] if params.get("sid") else [],
        }
    elif security == "tls":
        stream["tlsSettings"] = {"serverName": sni}

    if network == "ws":
        ws: Dict[str, Any] = {"path": params.get("path") or "/"}
        if params.get("host"):
            ws["headers"] = {"Host": params["host"]}
        stream["wsSettings"] = ws
    elif network == "grpc":
        stream["grpcSettings"] = {"serviceName": params.get("serviceName", "")}
    return stream


def decode_share_link(uri: str) -> DecodedShareLink:
    """Decode a vless or trojan share link back into an inbound record.

    The record carries what the link carries: credential, port, remark,
    transport and security parameters. It gets a fresh id; quota, expiry,
    tag, listen address and the reality private key cannot be recovered.

    Args:
        uri: The share link.

    Returns:
        The server address from the link and the decoded record.

    Raises:
        UnsupportedProtocolError: For schemes other than vless and trojan.
        EncodingError: If the link is malformed.
    """
    parts = urlsplit(uri.strip())
    scheme = parts.scheme.lower()
    if not scheme:
        raise EncodingError(f"Not a share link: {uri!r}")
    if scheme not in SUPPORTED_SCHEMES:
        raise UnsupportedProtocolError(scheme)

    userinfo, sep, _ = parts.netloc.rpartition("@")
    if not sep or not userinfo:
        raise EncodingError("Share link has no credential")
    try:
        port = parts.port
    except ValueError as exc:
        raise EncodingError(f"Share link has an invalid port: {exc}") from exc
    if not parts.hostname or port is None:
        raise EncodingError("Share link has no server address or port")

    credential = unquote(userinfo)
    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    remark = unquote(parts.fragment) or f"{parts.hostname}:{port}"

    if scheme == "vless":
        client: Dict[str, Any] = {"id": credential}
        if params.get("flow"):
            client["flow"] = params["flow"]
        settings: Dict[str, Any] = {"clients": [client], "decryption": "none"}
        default_security = "none"
    else:
        settings = {"clients": [{"password": credential}]}
        default_security = "tls"

    data: Dict[str, Any] = {
        "id": generate_uuid(),
        "remark": remark,
        "port": port,
        "protocol": scheme,
        "settings": settings,
    }
    if parts.query:
        data["streamSettings"] = _decode_stream(params, default_security)
    try:
        record = parse_inbound(data)
    except ValidationError as exc:
        raise EncodingError(f"Share link does not describe a valid inbound: {exc}") from exc
    return DecodedShareLink(parts.hostname, record)
