"""Tests for message models and serialization."""
import json

import pytest

from wa_embed.messages import (
    Action,
    Command,
    Credentials,
    LogDirection,
    MessageDecodeError,
    Role,
    WidgetEvent,
    decode_message,
    encode_message,
)
from wa_embed.message_log import MessageLog


class TestCommand:
    """Tests for host -> widget commands."""

    def test_login_command_shape(self):
        assert Command.login("T1").to_message() == {"action": "login", "data": {"token": "T1"}}

    def test_logout_round_trip(self):
        """A logout command survives serialize/deserialize unchanged."""
        wire = encode_message(Command.logout())
        assert json.loads(wire) == {"action": "logout"}
        assert Command.model_validate_json(wire) == Command.logout()
        assert encode_message(json.loads(wire)) == wire

    def test_unknown_action_is_rejected(self):
        with pytest.raises(ValueError):
            Command.model_validate({"action": "reboot"})


class TestWidgetEvent:
    """Tests for normalization to a single discriminant."""

    def test_status_wins_over_type(self):
        event = WidgetEvent.normalize({"type": "embed-login", "action": "login", "status": "success"})
        assert event.kind == "success"
        assert event.is_embed_login
        assert event.action == Action.LOGIN.value

    def test_type_used_without_status(self):
        assert WidgetEvent.normalize({"type": "EMBED_READY"}).kind == "EMBED_READY"

    def test_empty_record_has_empty_kind(self):
        assert WidgetEvent.normalize({}).kind == ""

    def test_extra_fields_are_kept(self):
        event = WidgetEvent.normalize({"type": "ack", "receivedType": "EMBED_READY"})
        assert event.model_extra == {"receivedType": "EMBED_READY"}

    def test_non_string_tags_are_coerced(self):
        event = WidgetEvent.normalize({"status": 500, "message": None})
        assert event.kind == "500"
        assert event.message is None


class TestDecode:
    """Tests for payload decoding."""

    def test_dict_passes_through(self):
        msg = {"type": "ready"}
        assert decode_message(msg) is msg

    def test_bytes_and_text(self):
        assert decode_message(b'{"type":"ready"}') == {"type": "ready"}
        assert decode_message('{"type":"ready"}') == {"type": "ready"}

    @pytest.mark.parametrize("payload", ["{", "42", "\"text\"", None, 3.5])
    def test_invalid_payloads(self, payload):
        with pytest.raises(MessageDecodeError):
            decode_message(payload)


class TestCredentials:
    def test_default_role_is_user(self):
        assert Credentials().role == Role.USER

    def test_payload_uses_role_value(self):
        creds = Credentials(email="a@b.com", name="A", role="Admin")
        assert creds.to_payload() == {"email": "a@b.com", "name": "A", "role": "Admin"}


def test_message_log_ids_are_monotonic():
    seen = []
    log = MessageLog(on_entry=seen.append)
    log.append("one")
    log.append("two", LogDirection.ERROR)
    log.clear()
    log.append("three", LogDirection.RECEIVED)

    assert [e.id for e in seen] == [0, 1, 2]
    assert [e.text for e in log.entries] == ["three"]
    assert log.by_direction(LogDirection.RECEIVED)[0].id == 2
