"""Submission rules for inbound forms.

Rules are checked in a fixed order and the first violation is reported;
nothing is built or submitted for a form that fails.
"""

import logging

from xui_inbounds.form import InboundForm
from xui_inbounds.util import InboundValidationError, parse_number

logger = logging.getLogger(__name__)

VALIDATION_MESSAGES: dict[str, str] = {
    "remark": "Remark cannot be empty",
    "port": "Port must be a number between 1 and 65535",
    "uuid": "UUID cannot be empty",
    "password": "Password cannot be empty",
    "ss_password": "Shadowsocks password cannot be empty",
    "reality_private_key": "Reality private key cannot be empty",
}


def _fail(field: str) -> InboundValidationError:
    return InboundValidationError(field, VALIDATION_MESSAGES[field])


def _port_is_valid(port: str) -> bool:
    number = parse_number(port) if port.strip() else None
    return number is not None and number.is_integer() and 1 <= number <= 65535


def check_form(form: InboundForm) -> InboundValidationError | None:
    """Return the first violated rule of a form, or None when it may be submitted.

    Rules, in order:
        1. remark is not blank
        2. port is a number in 1-65535
        3. vless/vmess: uuid is set
        4. trojan: password is set
        5. shadowsocks: ss_password is set
        6. reality: the private key is set
    """
    if not form.remark.strip():
        return _fail("remark")
    if not _port_is_valid(form.port):
        return _fail("port")
    if form.protocol in ("vless", "vmess") and not form.uuid:
        return _fail("uuid")
    if form.protocol == "trojan" and not form.password:
        return _fail("password")
    if form.protocol == "shadowsocks" and not form.ss_password:
        return _fail("ss_password")
    if form.security == "reality" and not form.reality_private_key:
        return _fail("reality_private_key")
    return None


def validate_form(form: InboundForm) -> None:
    """Raise for the first violated rule of a form.

    Raises:
        InboundValidationError: Carries the field the rule is keyed to and
            the message to show the user.
    """
    error = check_form(form)
    if error is not None:
        logger.debug("Inbound form rejected on %s: %s", error.field, error.message)
        raise error
