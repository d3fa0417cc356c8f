"""Editable field state for a single inbound.

The form holds what the user types (mostly strings, booleans for toggles)
and knows how to rehydrate itself from a stored inbound. Turning it into a
stored record is the builder's job, checking it is the validator's.
"""

import logging
import random
from typing import Any, Awaitable, Callable, Self

import httpx
import pydantic
from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from xui_inbounds.models import (
    Flow,
    InboundRecord,
    Network,
    Protocol,
    Security,
    ShadowsocksSettings,
    VlessSettings,
    XhttpMode,
)
from xui_inbounds.util import (
    KeyGenerationError,
    PanelError,
    RealityKeyPair,
    bytes_to_gib_text,
    derive_reality_public_key,
    epoch_ms_to_date,
    generate_reality_keypair,
    generate_short_id,
    generate_uuid,
    random_port,
)

logger = logging.getLogger(__name__)

KeyPairSource = Callable[[], Awaitable[RealityKeyPair]]

DEFAULT_SS_METHOD = "chacha20-ietf-poly1305"
DEFAULT_SS_NETWORK = "tcp,udp"
DEFAULT_REALITY_DEST = "www.microsoft.com:443"
DEFAULT_REALITY_SERVER_NAMES = "www.microsoft.com"
DEFAULT_FINGERPRINT = "chrome"


class InboundForm(pydantic.BaseModel):
    """Transient editor state for one inbound.

    Field names are snake_case; the camelCase aliases match what an editor
    front end posts (``wsPath``, ``realityPrivateKey``...).
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, validate_assignment=True)

    # base
    remark: str = ""
    is_enable: bool = True
    protocol: Protocol = "vless"
    tag: str = ""
    listen: str = ""
    port: str = Field(default_factory=lambda: str(random_port()))
    total_traffic: str = "0"  # GiB
    expiry_time: str = ""  # YYYY-MM-DD

    # protocol
    uuid: str = Field(default_factory=generate_uuid)
    flow: Flow = ""
    level: str = "0"
    email: str = ""
    alter_id: str = "0"
    password: str = ""
    ss_method: str = DEFAULT_SS_METHOD
    ss_password: str = ""
    ss_network: str = DEFAULT_SS_NETWORK
    decryption: str = "none"

    # transport
    network: Network = "tcp"
    ws_path: str = "/"
    ws_host: str = ""
    grpc_service_name: str = ""
    grpc_multi_mode: bool = False
    h2_host: str = ""  # comma separated
    h2_path: str = "/"
    xhttp_mode: XhttpMode = "auto"
    xhttp_path: str = "/"
    xhttp_host: str = ""

    # security
    security: Security = "none"
    reality_show: bool = False
    reality_dest: str = DEFAULT_REALITY_DEST
    reality_xver: str = "0"
    reality_fingerprint: str = DEFAULT_FINGERPRINT
    reality_server_names: str = DEFAULT_REALITY_SERVER_NAMES  # one per line
    reality_private_key: str = ""
    reality_public_key: str = ""
    reality_short_ids: str = ""  # one per line
    reality_min_client_ver: str = ""
    reality_max_client_ver: str = ""
    reality_max_time_diff: str = ""

    # socket options
    accept_proxy_protocol: bool = False
    tcp_fast_open: bool = True
    tcp_no_delay: bool = True

    @classmethod
    def from_record(cls, record: InboundRecord) -> Self:
        """Rehydrate a form from a stored inbound.

        Every field present on the record is copied over, anything missing
        keeps the same default a fresh form gets, so partially specified
        legacy records still open in the editor.

        Args:
            record: The inbound being edited.

        Returns:
            A form populated from the record.
        """
        values: dict[str, Any] = {
            "remark": record.remark,
            "is_enable": record.enable,
            "protocol": record.protocol,
            "tag": record.tag or "",
            "listen": record.listen or "",
            "port": str(record.port),
            "total_traffic": bytes_to_gib_text(record.total),
            "expiry_time": epoch_ms_to_date(record.expiry),
        }

        settings = record.settings
        if isinstance(settings, ShadowsocksSettings):
            values["ss_method"] = settings.method or DEFAULT_SS_METHOD
            values["ss_password"] = settings.password
            values["ss_network"] = settings.network or DEFAULT_SS_NETWORK
        else:
            if settings.clients:
                client = settings.clients[0]
                if getattr(client, "id", ""):
                    values["uuid"] = client.id
                values["flow"] = getattr(client, "flow", None) or ""
                values["level"] = str(client.effective_level)
                values["email"] = client.email or ""
                values["password"] = getattr(client, "password", "")
                values["alter_id"] = str(getattr(client, "alter_id", None) or 0)
            if isinstance(settings, VlessSettings):
                values["decryption"] = settings.decryption or "none"

        stream = record.stream_settings
        if stream is not None:
            values["network"] = stream.network
            values["security"] = stream.security
            if stream.ws_settings is not None:
                values["ws_path"] = stream.ws_settings.path or "/"
                values["ws_host"] = stream.ws_settings.host
            if stream.grpc_settings is not None:
                values["grpc_service_name"] = stream.grpc_settings.service_name
                values["grpc_multi_mode"] = stream.grpc_settings.multi_mode
            if stream.http_settings is not None:
                values["h2_host"] = ",".join(stream.http_settings.host or [])
                values["h2_path"] = stream.http_settings.path or "/"
            if stream.xhttp_settings is not None:
                values["xhttp_mode"] = stream.xhttp_settings.mode
                values["xhttp_path"] = stream.xhttp_settings.path or "/"
                values["xhttp_host"] = stream.xhttp_settings.host or ""
            reality = stream.reality_settings
            if reality is not None:
                values["reality_show"] = reality.show
                values["reality_dest"] = reality.dest or DEFAULT_REALITY_DEST
                values["reality_xver"] = str(reality.xver)
                values["reality_fingerprint"] = reality.fingerprint or DEFAULT_FINGERPRINT
                values["reality_server_names"] = "\n".join(reality.server_names) or DEFAULT_REALITY_SERVER_NAMES
                values["reality_private_key"] = reality.private_key
                values["reality_public_key"] = reality.public_key
                values["reality_short_ids"] = "\n".join(reality.short_ids)
                values["reality_min_client_ver"] = reality.min_client_ver or ""
                values["reality_max_client_ver"] = reality.max_client_ver or ""
                values["reality_max_time_diff"] = str(reality.max_time_diff or "")
            if stream.sockopt is not None:
                values["tcp_fast_open"] = stream.sockopt.tcp_fast_open is not False
                values["tcp_no_delay"] = stream.sockopt.tcp_no_delay is not False
            values["accept_proxy_protocol"] = bool(stream.accept_proxy_protocol)

        return cls(**values)

    def select_security(self, security: Security, rng: random.Random | None = None) -> None:
        """Switch the security layer.

        Switching to reality fills in what reality cannot work without: a
        short ID when none is set, and a key pair when no private key is
        set (a leftover public key is replaced along with it). A private key
        typed without its public half gets the matching public key derived.
        A private key the user entered is never replaced.

        Args:
            security: The newly selected security layer.
            rng: Optional random source, see :func:`xui_inbounds.util.generate_uuid`.
        """
        self.security = security
        if security != "reality":
            return
        if not self.reality_short_ids.strip():
            self.reality_short_ids = generate_short_id(rng)
        if not self.reality_private_key.strip():
            # a public key without its private half cannot be used
            self.reality_private_key, self.reality_public_key = generate_reality_keypair(rng)
        elif not self.reality_public_key.strip():
            try:
                self.reality_public_key = derive_reality_public_key(self.reality_private_key)
            except KeyGenerationError as exc:
                logger.warning("Could not derive reality public key: %s", exc)

    def generate_short_ids(self, rng: random.Random | None = None) -> str:
        """Replace the short IDs with one freshly generated ID."""
        self.reality_short_ids = generate_short_id(rng)
        return self.reality_short_ids

    def generate_reality_keys(self, rng: random.Random | None = None) -> RealityKeyPair:
        """Replace both reality keys with a freshly generated local pair."""
        pair = generate_reality_keypair(rng)
        self.reality_private_key, self.reality_public_key = pair
        return pair

    async def regenerate_reality_keys(self, source: KeyPairSource) -> RealityKeyPair:
        """Fetch a key pair from a remote generator and store it.

        Both key fields change together or not at all. Concurrent calls are
        not ordered: whichever finishes last wins.

        Args:
            source: Awaitable factory of key pairs, e.g. ``Server.generate_key_pair``.

        Returns:
            The key pair now held by the form.

        Raises:
            KeyGenerationError: If the source failed or returned an incomplete
                pair. The previous keys are left untouched.
        """
        try:
            pair = await source()
        except (httpx.HTTPError, PanelError) as exc:
            raise KeyGenerationError(f"Failed to generate keys: {exc}") from exc
        if not pair.private_key or not pair.public_key:
            raise KeyGenerationError("Key generator returned an incomplete key pair")
        self.reality_private_key, self.reality_public_key = pair.private_key, pair.public_key
        return pair
