"""Unit tests for the submission rules."""
import pytest

from xui_inbounds.form import InboundForm
from xui_inbounds.util import InboundValidationError
from xui_inbounds.validator import VALIDATION_MESSAGES, check_form, validate_form

TEST_UUID = "11111111-1111-4111-8111-111111111111"


def valid_form(protocol: str = "vless", **changes) -> InboundForm:
    """A form that passes every rule; ``changes`` break one at a time."""
    values = dict(remark="node", port="443", protocol=protocol, uuid=TEST_UUID,
                  password="secret", ss_password="ss-secret")
    values.update(changes)
    return InboundForm(**values)


class TestRules:
    """Each rule checked with every other field valid."""

    @pytest.mark.parametrize("protocol", ["vless", "vmess", "trojan", "shadowsocks"])
    def test_valid_forms_pass(self, protocol):
        assert check_form(valid_form(protocol)) is None
        validate_form(valid_form(protocol))

    @pytest.mark.parametrize("remark", ["", "   "])
    def test_remark(self, remark):
        assert check_form(valid_form(remark=remark)).field == "remark"

    @pytest.mark.parametrize("port", ["", "abc", "0", "65536", "1.5", "-1", "nan"])
    def test_port(self, port):
        assert check_form(valid_form(port=port)).field == "port"

    @pytest.mark.parametrize("port", ["1", "65535", " 8443 "])
    def test_port_accepted(self, port):
        assert check_form(valid_form(port=port)) is None

    @pytest.mark.parametrize("protocol", ["vless", "vmess"])
    def test_uuid(self, protocol):
        assert check_form(valid_form(protocol, uuid="")).field == "uuid"

    def test_uuid_not_needed_for_trojan(self):
        assert check_form(valid_form("trojan", uuid="")) is None

    def test_trojan_password(self):
        """An empty trojan password is reported even when later rules fail too."""
        form = valid_form("trojan", password="", security="reality")
        error = check_form(form)
        assert error.field == "password"
        assert error.message == VALIDATION_MESSAGES["password"]

    def test_shadowsocks_password(self):
        assert check_form(valid_form("shadowsocks", ss_password="")).field == "ss_password"

    def test_reality_private_key(self):
        assert check_form(valid_form(security="reality")).field == "reality_private_key"
        assert check_form(valid_form(security="reality", reality_private_key="k")) is None


class TestPrecedence:
    """The first violated rule wins."""

    def test_remark_before_port(self):
        assert check_form(valid_form(remark="", port="x")).field == "remark"

    def test_port_before_credentials(self):
        assert check_form(valid_form(port="x", uuid="")).field == "port"

    def test_credentials_before_reality(self):
        assert check_form(valid_form(uuid="", security="reality")).field == "uuid"


class TestValidateForm:
    """Test suite for the raising entry point."""

    def test_raises_with_field_and_message(self):
        with pytest.raises(InboundValidationError) as exc_info:
            validate_form(valid_form("shadowsocks", ss_password=""))
        assert exc_info.value.field == "ss_password"
        assert str(exc_info.value) == VALIDATION_MESSAGES["ss_password"]

    def test_every_rule_has_a_distinct_message(self):
        assert len(set(VALIDATION_MESSAGES.values())) == len(VALIDATION_MESSAGES) == 6
