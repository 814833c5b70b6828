from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging
import smtplib
from email.message import EmailMessage

import httpx

from ..core.config import Settings, settings as default_settings
from ..core.errors import GatewayUnavailable, MailAuthError, MailDeliveryError
from .graph_client import GraphClient

logger = logging.getLogger(__name__)


@dataclass
class OutboundMessage:
    to: str
    subject: str
    text: str
    html: str | None = None
    cc: list[str] = field(default_factory=list)
    reply_to: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


class MailTransport(ABC):
    name = "base"

    @abstractmethod
    def send(self, message: OutboundMessage) -> None:
        """Hand one message to the provider or raise."""


def _from_header(config: Settings) -> str:
    if config.mail_from_name:
        return f"{config.mail_from_name} <{config.mail_from}>"
    return config.mail_from


class SmtpTransport(MailTransport):
    name = "smtp"

    def __init__(self, config: Settings):
        self.config = config

    def _build_message(self, message: OutboundMessage) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = message.subject
        msg["From"] = _from_header(self.config)
        msg["To"] = message.to
        if message.cc:
            msg["Cc"] = ", ".join(message.cc)
        if message.reply_to:
            msg["Reply-To"] = message.reply_to
        for key, value in message.headers.items():
            msg[key] = value
        msg.set_content(message.text)
        if message.html:
            msg.add_alternative(message.html, subtype="html")
        return msg

    def send(self, message: OutboundMessage) -> None:
        msg = self._build_message(message)
        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=10) as smtp:
            smtp.send_message(msg)


class ResendTransport(MailTransport):
    name = "resend"

    def __init__(self, config: Settings, http: httpx.Client | None = None):
        self.config = config
        self.http = http or httpx.Client(timeout=config.http_timeout_seconds)

    def send(self, message: OutboundMessage) -> None:
        payload: dict[str, object] = {
            "from": _from_header(self.config),
            "to": [message.to],
            "subject": message.subject,
            "text": message.text,
        }
        if message.html:
            payload["html"] = message.html
        if message.cc:
            payload["cc"] = message.cc
        if message.reply_to:
            payload["reply_to"] = message.reply_to
        if message.headers:
            payload["headers"] = message.headers
        try:
            resp = self.http.post(
                self.config.resend_api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.config.resend_api_key}"},
            )
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"Resend unreachable: {exc}") from exc
        if resp.status_code in (401, 403):
            raise MailAuthError(f"Resend rejected the API key: {resp.status_code}")
        if resp.status_code >= 400:
            raise MailDeliveryError(f"Email service error: {resp.status_code} {resp.text[:200]}")


class GraphTransport(MailTransport):
    name = "graph"

    def __init__(self, config: Settings, client: GraphClient | None = None):
        self.config = config
        self.client = client or GraphClient(config)

    def send(self, message: OutboundMessage) -> None:
        self.client.send_mail(
            self.config.mail_from,
            message.to,
            message.subject,
            message.text,
            cc=message.cc,
            reply_to=message.reply_to,
        )


def transport_ready(config: Settings | None = None) -> bool:
    cfg = config or default_settings
    if not cfg.mail_from:
        return False
    if cfg.mail_backend == "smtp":
        return bool(cfg.smtp_host)
    if cfg.mail_backend == "resend":
        return bool(cfg.resend_api_key)
    if cfg.mail_backend == "graph":
        return cfg.graph_configured
    return False


def build_transport(config: Settings | None = None) -> MailTransport | None:
    cfg = config or default_settings
    if not transport_ready(cfg):
        return None
    if cfg.mail_backend == "smtp":
        return SmtpTransport(cfg)
    if cfg.mail_backend == "resend":
        return ResendTransport(cfg)
    return GraphTransport(cfg)
