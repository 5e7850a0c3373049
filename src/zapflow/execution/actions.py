"""Action Registry — action type → handler lookup and placeholder rendering.

Manifesto:
A workflow step names its action by type (``"Email"``, ``"Webhook"``).
The registry resolves the type to a handler object implementing
``execute(metadata, payload)``, so new action families are added by
registering a handler rather than editing a central switch.

ARCHITECTURE
────────────
::

    ActionRegistry
      ├── .register(handler)              ─ store handler under its type
      ├── .get(action_type)               ─ lookup (UnsupportedActionError)
      ├── .has(action_type)               ─ existence check
      ├── .list_handlers()                ─ registered types
      └── .execute(action_type, tpl, data)─ render + handler.execute

    Built-in handlers
      EmailAction     {key}    SMTP via smtplib
      SolanaAction    {key}    logged transfer request
      WebhookAction   {{key}}  HTTP request via httpx
      TelegramAction  {{key}}  Bot API sendMessage via httpx
      WhatsAppAction  {{key}}  Cloud API text message via httpx

PLACEHOLDERS
────────────
Two syntaxes coexist, chosen per handler family:

- ``{key}``   single-brace (Email, Solana)
- ``{{key}}`` double-brace (Webhook, Telegram, WhatsApp)

Keys may be dotted paths into the payload (``{{row_data.Email}}``).
Unmatched keys are left untouched in both syntaxes. Rendering recurses
into dicts and lists and only rewrites strings.

Tags:
    zapflow, execution, registry, actions, placeholders
"""

import re
import smtplib
from collections.abc import Callable, Mapping
from email.mime.text import MIMEText
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import httpx

from zapflow.core.errors import ActionError, UnsupportedActionError
from zapflow.core.logging import get_logger
from zapflow.core.settings import SmtpSettings

logger = get_logger(__name__)


# =============================================================================
# Placeholder substitution
# =============================================================================


class PlaceholderStyle(str, Enum):
    SINGLE = "single"  # {key}
    DOUBLE = "double"  # {{key}}


_SINGLE_BRACE = re.compile(r"\{([^{}]+)\}")
_DOUBLE_BRACE = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")


def lookup(payload: Any, key: str, default: Any = None) -> Any:
    """Resolve ``key`` in ``payload``: exact key first, then a dotted path."""
    if isinstance(payload, Mapping) and key in payload:
        return payload[key]
    current = payload
    for part in key.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
    return current


def _substitute(pattern: re.Pattern[str], template: str, payload: Any) -> str:
    def replace(match: re.Match[str]) -> str:
        value = lookup(payload, match.group(1).strip())
        if value is None:
            return match.group(0)
        return str(value)

    return pattern.sub(replace, template)


def substitute_single_brace(template: str, payload: Any) -> str:
    """Replace ``{key}`` placeholders."""
    return _substitute(_SINGLE_BRACE, template, payload)


def substitute_double_brace(template: str, payload: Any) -> str:
    """Replace ``{{key}}`` placeholders."""
    return _substitute(_DOUBLE_BRACE, template, payload)


def render_template(template: Any, payload: Any, style: PlaceholderStyle) -> Any:
    """Substitute placeholders in every string inside ``template``."""
    if isinstance(template, str):
        if style is PlaceholderStyle.DOUBLE:
            return substitute_double_brace(template, payload)
        return substitute_single_brace(template, payload)
    if isinstance(template, Mapping):
        return {k: render_template(v, payload, style) for k, v in template.items()}
    if isinstance(template, list):
        return [render_template(v, payload, style) for v in template]
    return template


# =============================================================================
# Handler protocol and registry
# =============================================================================


@runtime_checkable
class ActionHandler(Protocol):
    """One action family.

    ``service`` names the external API, so calls to the same service share
    one resilience-layer instance.
    """

    action_type: str
    service: str
    placeholder_style: PlaceholderStyle

    def execute(self, metadata: dict[str, Any], payload: dict[str, Any]) -> Any: ...


class ActionRegistry:
    """Injectable action handler registry.

    Example:
        >>> registry = ActionRegistry()
        >>> registry.register(SolanaAction())
        >>> registry.execute("Solana", {"address": "{wallet}", "amount": "1"},
        ...                  {"wallet": "9xQe..."})
    """

    def __init__(self):
        self._handlers: dict[str, ActionHandler] = {}

    def register(self, handler: ActionHandler, action_type: str | None = None) -> None:
        """Register ``handler`` under ``action_type`` (default: its own type)."""
        self._handlers[action_type or handler.action_type] = handler

    def get(self, action_type: str) -> ActionHandler:
        """Get a handler.

        Raises:
            UnsupportedActionError: If no handler is registered for the type
        """
        try:
            return self._handlers[action_type]
        except KeyError:
            raise UnsupportedActionError(action_type) from None

    def has(self, action_type: str) -> bool:
        return action_type in self._handlers

    def list_handlers(self) -> list[str]:
        return sorted(self._handlers)

    def execute(self, action_type: str, template: dict[str, Any], payload: dict[str, Any]) -> Any:
        """Render ``template`` and run the handler once (no resilience wrapping)."""
        handler = self.get(action_type)
        metadata = render_template(template, payload, handler.placeholder_style)
        return handler.execute(metadata, payload)


# =============================================================================
# Built-in handlers
# =============================================================================

_EMAIL = re.compile(r"^\S+@\S+\.\S+$")


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(_EMAIL.match(value))


def _find_email(payload: Any) -> str | None:
    """First valid address stored under an ``email``-like key in the payload."""
    if isinstance(payload, Mapping):
        for key, value in payload.items():
            if "email" in str(key).lower() and is_valid_email(value):
                return value
        for value in payload.values():
            found = _find_email(value)
            if found:
                return found
    elif isinstance(payload, list):
        for value in payload:
            found = _find_email(value)
            if found:
                return found
    return None


class EmailAction:
    """Send a plain-text email through an SMTP relay.

    Metadata: ``to``, ``subject``, ``body``. When ``to`` does not render to
    an address, the first email-looking field of the payload is used.
    """

    action_type = "Email"
    service = "smtp"
    placeholder_style = PlaceholderStyle.SINGLE

    def __init__(
        self,
        smtp: SmtpSettings | None = None,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self._smtp = smtp or SmtpSettings()
        self._smtp_factory = smtp_factory

    def _build_message(self, to: str, subject: str, body: str) -> str:
        msg = MIMEText(body, "plain")
        msg["Subject"] = subject
        msg["From"] = self._smtp.from_address
        msg["To"] = to
        return msg.as_string()

    def execute(self, metadata: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
        to = metadata.get("to")
        if not is_valid_email(to):
            to = _find_email(payload)
        if not to:
            raise ActionError("Email action has no valid recipient")

        subject = str(metadata.get("subject", ""))
        message = self._build_message(to, subject, str(metadata.get("body", "")))

        server = self._smtp_factory(self._smtp.host, self._smtp.port)
        try:
            if self._smtp.use_tls:
                server.starttls()
            if self._smtp.user and self._smtp.password:
                server.login(self._smtp.user, self._smtp.password)
            server.sendmail(self._smtp.from_address, [to], message)
        finally:
            server.quit()

        logger.info("email_sent", to=to, subject=subject)
        return {"sent": True, "to": to}


class SolanaAction:
    """Record a SOL transfer request (no chain client is wired in)."""

    action_type = "Solana"
    service = "solana"
    placeholder_style = PlaceholderStyle.SINGLE

    def execute(self, metadata: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
        address = metadata.get("address")
        amount = metadata.get("amount")
        if not address:
            raise ActionError("Solana action requires an address")
        logger.info("solana_transfer_requested", address=address, amount=amount)
        return {"address": address, "amount": amount, "status": "logged"}


class WebhookAction:
    """Call an arbitrary HTTP endpoint.

    Metadata: ``url``, ``method`` (POST), ``headers``, ``body``. A mapping
    body is sent as JSON, anything else as text. Error statuses raise
    ``httpx.HTTPStatusError`` so the resilience layer can classify them.
    """

    action_type = "Webhook"
    service = "webhook"
    placeholder_style = PlaceholderStyle.DOUBLE

    def __init__(self, client: httpx.Client | None = None, timeout: float = 30.0):
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def execute(self, metadata: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
        url = metadata.get("url")
        if not url:
            raise ActionError("Webhook action requires a url")
        method = str(metadata.get("method", "POST")).upper()
        headers = metadata.get("headers") or {}
        body = metadata.get("body", payload)

        kwargs: dict[str, Any] = {"headers": headers}
        if method not in ("GET", "HEAD", "DELETE") and body is not None:
            if isinstance(body, (Mapping, list)):
                kwargs["json"] = body
            else:
                kwargs["content"] = str(body)

        response = self._client.request(method, url, **kwargs)
        response.raise_for_status()
        logger.info("webhook_called", url=url, method=method, status_code=response.status_code)
        return {"status_code": response.status_code}


class TelegramAction:
    """Send a message through the Telegram Bot API.

    Metadata: ``bot_token``, ``chat_id``, ``text``, ``parse_mode`` (HTML).
    """

    action_type = "Telegram"
    service = "telegram"
    placeholder_style = PlaceholderStyle.DOUBLE

    def __init__(
        self,
        client: httpx.Client | None = None,
        api_base: str = "https://api.telegram.org",
        timeout: float = 30.0,
    ):
        self._client = client or httpx.Client(timeout=timeout)
        self._api_base = api_base.rstrip("/")

    def execute(self, metadata: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
        token = metadata.get("bot_token")
        chat_id = metadata.get("chat_id")
        if not token or chat_id in (None, ""):
            raise ActionError("Telegram action requires bot_token and chat_id")

        response = self._client.post(
            f"{self._api_base}/bot{token}/sendMessage",
            json={
                "chat_id": chat_id,
                "text": metadata.get("text", ""),
                "parse_mode": metadata.get("parse_mode", "HTML"),
            },
        )
        response.raise_for_status()
        message_id = (response.json().get("result") or {}).get("message_id")
        logger.info("telegram_message_sent", chat_id=chat_id, message_id=message_id)
        return {"message_id": message_id}


class WhatsAppAction:
    """Send a text message through the WhatsApp Cloud API.

    Metadata: ``access_token``, ``phone_number_id``, ``to``, ``text``. The
    recipient is reduced to its digits before sending.
    """

    action_type = "WhatsApp"
    service = "whatsapp"
    placeholder_style = PlaceholderStyle.DOUBLE

    def __init__(
        self,
        client: httpx.Client | None = None,
        api_base: str = "https://graph.facebook.com/v18.0",
        timeout: float = 30.0,
    ):
        self._client = client or httpx.Client(timeout=timeout)
        self._api_base = api_base.rstrip("/")

    def execute(self, metadata: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
        token = metadata.get("access_token")
        phone_number_id = metadata.get("phone_number_id")
        to = re.sub(r"\D", "", str(metadata.get("to") or ""))
        if not token or not phone_number_id or not to:
            raise ActionError("WhatsApp action requires access_token, phone_number_id and to")

        response = self._client.post(
            f"{self._api_base}/{phone_number_id}/messages",
            headers={"Authorization": f"Bearer {token}"},
            json={
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": to,
                "type": "text",
                "text": {"preview_url": True, "body": str(metadata.get("text", ""))},
            },
        )
        response.raise_for_status()
        messages = response.json().get("messages") or [{}]
        message_id = messages[0].get("id")
        logger.info("whatsapp_message_sent", to=to, message_id=message_id)
        return {"message_id": message_id}


def default_registry(
    smtp: SmtpSettings | None = None,
    http_client: httpx.Client | None = None,
) -> ActionRegistry:
    """Registry with every built-in handler."""
    registry = ActionRegistry()
    registry.register(EmailAction(smtp))
    registry.register(SolanaAction())
    registry.register(WebhookAction(http_client))
    registry.register(TelegramAction(http_client))
    registry.register(WhatsAppAction(http_client))
    return registry


__all__ = [
    "ActionHandler",
    "ActionRegistry",
    "EmailAction",
    "PlaceholderStyle",
    "SolanaAction",
    "TelegramAction",
    "WebhookAction",
    "WhatsAppAction",
    "default_registry",
    "lookup",
    "render_template",
    "substitute_double_brace",
    "substitute_single_brace",
]
