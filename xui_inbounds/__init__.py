"""Inbound configuration model for a multi-protocol proxy panel."""

from xui_inbounds.builder import build_inbound
from xui_inbounds.form import InboundForm
from xui_inbounds.models import InboundRecord, parse_inbound, parse_inbounds
from xui_inbounds.share_link import decode_share_link, encode_share_link
from xui_inbounds.validator import check_form, validate_form

__all__ = [
    "InboundForm",
    "InboundRecord",
    "build_inbound",
    "check_form",
    "decode_share_link",
    "encode_share_link",
    "parse_inbound",
    "parse_inbounds",
    "validate_form",
]
