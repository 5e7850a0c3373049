"""Tests for ``zapflow.execution.actions`` — placeholders, registry, handlers."""

from __future__ import annotations

import json

import httpx
import pytest

from zapflow.core.errors import ActionError, UnsupportedActionError
from zapflow.core.settings import SmtpSettings
from zapflow.execution.actions import (
    ActionRegistry,
    EmailAction,
    PlaceholderStyle,
    SolanaAction,
    TelegramAction,
    WebhookAction,
    WhatsAppAction,
    default_registry,
    lookup,
    render_template,
    substitute_double_brace,
    substitute_single_brace,
)

PAYLOAD = {
    "name": "Ada",
    "email": "ada@example.com",
    "row_data": {"Email": "row@example.com", "Amount": 250},
    "items": [{"sku": "A-1"}],
    "row.number": 7,
}


class TestLookup:
    def test_exact_key_wins(self):
        assert lookup(PAYLOAD, "row.number") == 7

    def test_dotted_path(self):
        assert lookup(PAYLOAD, "row_data.Email") == "row@example.com"

    def test_list_index(self):
        assert lookup(PAYLOAD, "items.0.sku") == "A-1"

    def test_missing_returns_default(self):
        assert lookup(PAYLOAD, "nope.deeper", default="-") == "-"


class TestPlaceholders:
    def test_single_brace(self):
        assert substitute_single_brace("Hi {name} <{email}>", PAYLOAD) == "Hi Ada <ada@example.com>"

    def test_double_brace(self):
        assert substitute_double_brace("Hi {{name}}, {{ row_data.Amount }}", PAYLOAD) == "Hi Ada, 250"

    def test_unmatched_left_untouched(self):
        assert substitute_single_brace("{missing} {name}", PAYLOAD) == "{missing} Ada"
        assert substitute_double_brace("{{missing}} {{name}}", PAYLOAD) == "{{missing}} Ada"

    def test_double_brace_ignores_single(self):
        assert substitute_double_brace("{name}", PAYLOAD) == "{name}"

    def test_render_recurses(self):
        template = {"to": "{{email}}", "tags": ["{{name}}", 3], "nested": {"x": "{{items.0.sku}}"}}
        assert render_template(template, PAYLOAD, PlaceholderStyle.DOUBLE) == {
            "to": "ada@example.com",
            "tags": ["Ada", 3],
            "nested": {"x": "A-1"},
        }


class TestActionRegistry:
    def test_register_and_get(self):
        registry = ActionRegistry()
        handler = SolanaAction()
        registry.register(handler)
        assert registry.get("Solana") is handler
        assert registry.has("Solana")
        assert registry.list_handlers() == ["Solana"]

    def test_register_alias(self):
        registry = ActionRegistry()
        registry.register(SolanaAction(), action_type="SendSol")
        assert registry.has("SendSol")

    def test_unknown_type(self):
        with pytest.raises(UnsupportedActionError):
            ActionRegistry().get("Fax")

    def test_execute_renders_with_handler_style(self):
        registry = ActionRegistry()
        registry.register(SolanaAction())
        result = registry.execute("Solana", {"address": "{wallet}", "amount": "{amt}"}, {"wallet": "9xQe", "amt": 2})
        assert result == {"address": "9xQe", "amount": "2", "status": "logged"}

    def test_default_registry(self):
        registry = default_registry(SmtpSettings(), httpx.Client())
        assert registry.list_handlers() == ["Email", "Solana", "Telegram", "Webhook", "WhatsApp"]


class FakeSMTP:
    instances: list[FakeSMTP] = []

    def __init__(self, host: str, port: int):
        self.host, self.port = host, port
        self.events: list[tuple] = []
        FakeSMTP.instances.append(self)

    def starttls(self):
        self.events.append(("starttls",))

    def login(self, user, password):
        self.events.append(("login", user))

    def sendmail(self, sender, recipients, message):
        self.events.append(("sendmail", sender, tuple(recipients), message))

    def quit(self):
        self.events.append(("quit",))


class TestEmailAction:
    @pytest.fixture(autouse=True)
    def _reset(self):
        FakeSMTP.instances.clear()

    def _action(self, **smtp) -> EmailAction:
        settings = SmtpSettings(host="smtp.test", port=2525, from_address="bot@zapflow.dev", **smtp)
        return EmailAction(settings, smtp_factory=FakeSMTP)

    def test_sends_message(self):
        result = self._action(user="u", password="p").execute(
            {"to": "ada@example.com", "subject": "Hi", "body": "Row 7 changed"}, PAYLOAD
        )
        assert result == {"sent": True, "to": "ada@example.com"}
        server = FakeSMTP.instances[0]
        assert (server.host, server.port) == ("smtp.test", 2525)
        kinds = [e[0] for e in server.events]
        assert kinds == ["starttls", "login", "sendmail", "quit"]
        _, sender, recipients, message = server.events[2]
        assert sender == "bot@zapflow.dev"
        assert recipients == ("ada@example.com",)
        assert "Subject: Hi" in message

    def test_falls_back_to_payload_email(self):
        result = self._action().execute({"to": "{email}", "subject": "x"}, {"row_data": {"Email": "row@example.com"}})
        assert result["to"] == "row@example.com"

    def test_no_recipient(self):
        with pytest.raises(ActionError):
            self._action().execute({"subject": "x"}, {"name": "Ada"})
        assert FakeSMTP.instances == []

    def test_skips_login_without_credentials(self):
        self._action(use_tls=False).execute({"to": "ada@example.com"}, {})
        assert [e[0] for e in FakeSMTP.instances[0].events] == ["sendmail", "quit"]


class TestSolanaAction:
    def test_requires_address(self):
        with pytest.raises(ActionError):
            SolanaAction().execute({"amount": "1"}, {})


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestWebhookAction:
    def test_posts_json_body(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202)

        action = WebhookAction(_client(handler))
        result = action.execute({"url": "https://hooks.test/in", "body": {"who": "Ada"}}, PAYLOAD)
        assert result == {"status_code": 202}
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == {"who": "Ada"}

    def test_defaults_body_to_payload(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200)

        WebhookAction(_client(handler)).execute({"url": "https://hooks.test/in"}, {"a": 1})
        assert seen == [{"a": 1}]

    def test_get_has_no_body(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        WebhookAction(_client(handler)).execute({"url": "https://hooks.test/ping", "method": "get"}, PAYLOAD)
        assert seen[0].method == "GET"
        assert seen[0].content == b""

    def test_error_status_raises_http_error(self):
        action = WebhookAction(_client(lambda request: httpx.Response(503)))
        with pytest.raises(httpx.HTTPStatusError):
            action.execute({"url": "https://hooks.test/in"}, PAYLOAD)

    def test_requires_url(self):
        with pytest.raises(ActionError):
            WebhookAction(_client(lambda r: httpx.Response(200))).execute({}, PAYLOAD)


class TestTelegramAction:
    def test_send_message(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 99}})

        action = TelegramAction(_client(handler), api_base="https://tg.test")
        result = action.execute({"bot_token": "T0K", "chat_id": 42, "text": "Hello Ada"}, PAYLOAD)
        assert result == {"message_id": 99}
        assert str(seen[0].url) == "https://tg.test/botT0K/sendMessage"
        assert json.loads(seen[0].content) == {"chat_id": 42, "text": "Hello Ada", "parse_mode": "HTML"}

    def test_requires_token_and_chat(self):
        with pytest.raises(ActionError):
            TelegramAction(_client(lambda r: httpx.Response(200))).execute({"text": "x"}, {})


class TestWhatsAppAction:
    def test_send_text_message(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"messages": [{"id": "wamid.ABC"}]})

        action = WhatsAppAction(_client(handler), api_base="https://graph.test/v18.0")
        metadata = render_template(
            {"access_token": "EAAG", "phone_number_id": "1055", "to": "+49 151-234", "text": "Hi {{name}}"},
            PAYLOAD,
            action.placeholder_style,
        )
        result = action.execute(metadata, PAYLOAD)

        assert result == {"message_id": "wamid.ABC"}
        assert str(seen[0].url) == "https://graph.test/v18.0/1055/messages"
        assert seen[0].headers["authorization"] == "Bearer EAAG"
        body = json.loads(seen[0].content)
        assert body["messaging_product"] == "whatsapp"
        assert body["to"] == "49151234"
        assert body["type"] == "text"
        assert body["text"]["body"] == "Hi Ada"

    def test_error_status_raises(self):
        action = WhatsAppAction(_client(lambda r: httpx.Response(401, json={"error": {"message": "bad token"}})))
        with pytest.raises(httpx.HTTPStatusError):
            action.execute({"access_token": "x", "phone_number_id": "1", "to": "15550001"}, {})

    @pytest.mark.parametrize(
        "metadata",
        [
            {"phone_number_id": "1", "to": "15550001"},
            {"access_token": "x", "to": "15550001"},
            {"access_token": "x", "phone_number_id": "1", "to": "n/a"},
        ],
    )
    def test_requires_credentials_and_recipient(self, metadata):
        with pytest.raises(ActionError):
            WhatsAppAction(_client(lambda r: httpx.Response(200))).execute(metadata, {})
