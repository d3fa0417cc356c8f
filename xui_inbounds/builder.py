"""Assemble stored inbound records from editor forms.

Everything here is pure: the same form (and the same edited record) always
produces the same record. Keys are only emitted for values that are set, so
an empty flow, a zero level or a disabled socket flag leave no trace in the
stored record. Readers must treat an absent ``level`` as 0. Malformed,
negative or non-finite numbers and dates coerce to 0 instead of raising.
"""

from typing import Any, Dict

from xui_inbounds.form import InboundForm
from xui_inbounds.models import InboundRecord, parse_inbound
from xui_inbounds.util import (
    date_to_epoch_ms,
    generate_uuid,
    gib_to_bytes,
    parse_int,
    split_csv,
    split_lines,
)


def build_settings(form: InboundForm) -> Dict[str, Any]:
    """Build the protocol half of the record.

    Args:
        form: The editor form.

    Returns:
        The wire shape of ``settings`` for the form's protocol.
    """
    if form.protocol == "shadowsocks":
        return {
            "method": form.ss_method,
            "password": form.ss_password,
            "network": form.ss_network,
        }

    client: Dict[str, Any] = {}
    if form.protocol == "trojan":
        client["password"] = form.password
    else:
        client["id"] = form.uuid
        if form.protocol == "vless" and form.flow:
            client["flow"] = form.flow
    if (level := parse_int(form.level)) > 0:
        client["level"] = level
    if form.email:
        client["email"] = form.email
    if form.protocol == "vmess" and (alter_id := parse_int(form.alter_id)) > 0:
        client["alterId"] = alter_id

    settings: Dict[str, Any] = {"clients": [client]}
    if form.protocol == "vless":
        settings["decryption"] = form.decryption
    return settings


def _transport_block(form: InboundForm) -> tuple[str, Dict[str, Any]] | None:
    if form.network == "ws":
        ws: Dict[str, Any] = {"path": form.ws_path}
        if form.ws_host:
            ws["headers"] = {"Host": form.ws_host}
        return "wsSettings", ws
    if form.network == "grpc":
        return "grpcSettings", {
            "serviceName": form.grpc_service_name,
            "multiMode": form.grpc_multi_mode,
        }
    if form.network == "h2":
        http: Dict[str, Any] = {}
        if form.h2_host:
            http["host"] = split_csv(form.h2_host)
        http["path"] = form.h2_path
        return "httpSettings", http
    if form.network == "xhttp":
        xhttp: Dict[str, Any] = {"mode": form.xhttp_mode, "path": form.xhttp_path}
        if form.xhttp_host:
            xhttp["host"] = form.xhttp_host
        return "xhttpSettings", xhttp
    return None


def _reality_block(form: InboundForm) -> Dict[str, Any]:
    reality: Dict[str, Any] = {
        "show": form.reality_show,
        "dest": form.reality_dest,
        "xver": max(parse_int(form.reality_xver), 0),
        "serverNames": split_lines(form.reality_server_names),
        "privateKey": form.reality_private_key,
        "publicKey": form.reality_public_key,
        "shortIds": split_lines(form.reality_short_ids),
        "fingerprint": form.reality_fingerprint,
    }
    if form.reality_min_client_ver:
        reality["minClientVer"] = form.reality_min_client_ver
    if form.reality_max_client_ver:
        reality["maxClientVer"] = form.reality_max_client_ver
    if (max_time_diff := parse_int(form.reality_max_time_diff)) > 0:
        reality["maxTimeDiff"] = max_time_diff
    return reality


def build_stream_settings(form: InboundForm) -> Dict[str, Any]:
    """Build the transport/security half of the record.

    Only the block of the selected network is emitted, ``realitySettings``
    only for reality, and ``sockopt`` only when a socket flag is on.
    """
    stream: Dict[str, Any] = {"network": form.network, "security": form.security}

    if (block := _transport_block(form)) is not None:
        key, value = block
        stream[key] = value

    if form.security == "reality":
        stream["realitySettings"] = _reality_block(form)

    if form.tcp_fast_open or form.tcp_no_delay or form.accept_proxy_protocol:
        sockopt: Dict[str, Any] = {}
        if form.tcp_fast_open:
            sockopt["tcpFastOpen"] = True
        if form.tcp_no_delay:
            sockopt["tcpNoDelay"] = True
        stream["sockopt"] = sockopt

    if form.accept_proxy_protocol:
        stream["acceptProxyProtocol"] = True
    return stream


def build_inbound(form: InboundForm, existing: InboundRecord | None = None) -> InboundRecord:
    """Merge a form into a stored inbound record.

    Args:
        form: The editor form. Run :func:`xui_inbounds.validator.validate_form`
            on it first; the record model rejects what the validator would.
        existing: The record being edited, if any. Its id, traffic
            counters and sniffing block are carried over; a new record
            gets a fresh id.

    Returns:
        The protocol variant of the inbound record.

    Raises:
        pydantic.ValidationError: If the form cannot make a valid record.
    """
    data: Dict[str, Any] = {
        "id": existing.id if existing is not None else generate_uuid(),
        "remark": form.remark,
        "enable": form.is_enable,
        "port": parse_int(form.port),
        "protocol": form.protocol,
    }
    if form.tag:
        data["tag"] = form.tag
    if form.listen:
        data["listen"] = form.listen
    data["settings"] = build_settings(form)
    data["streamSettings"] = build_stream_settings(form)
    data["total"] = gib_to_bytes(form.total_traffic)
    data["expiry"] = date_to_epoch_ms(form.expiry_time)
    data["up"] = existing.up if existing is not None else 0
    data["down"] = existing.down if existing is not None else 0
    if existing is not None and existing.sniffing is not None:
        data["sniffing"] = existing.sniffing
    return parse_inbound(data)
