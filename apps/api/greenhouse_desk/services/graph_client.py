"""Microsoft Graph access for department mailboxes.

Tokens come from the client-credentials flow. A 401 from Graph triggers one
token refresh and one retry; a second 401 is reported as ``MailAuthError`` so
scheduled jobs can alert on it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging

import httpx

from ..core.config import Settings, settings as default_settings
from ..core.errors import GatewayUnavailable, MailAuthError, MailDeliveryError

logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
INBOX_PAGE_SIZE = 50


@dataclass
class GraphMessage:
    id: str
    mailbox: str
    subject: str
    sender: str
    sender_name: str | None
    recipients: list[str]
    body: str
    received_at: datetime | None
    conversation_id: str | None


def _parse_graph_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_graph_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _to_message(mailbox: str, item: dict) -> GraphMessage:
    sender = ((item.get("from") or {}).get("emailAddress") or {})
    recipients = [
        (r.get("emailAddress") or {}).get("address", "")
        for r in item.get("toRecipients") or []
    ]
    return GraphMessage(
        id=item["id"],
        mailbox=mailbox,
        subject=item.get("subject") or "",
        sender=sender.get("address", ""),
        sender_name=sender.get("name"),
        recipients=[r for r in recipients if r],
        body=(item.get("body") or {}).get("content") or "",
        received_at=_parse_graph_time(item.get("receivedDateTime")),
        conversation_id=item.get("conversationId"),
    )


class GraphClient:
    def __init__(self, config: Settings | None = None, http: httpx.Client | None = None):
        self.config = config or default_settings
        self.http = http or httpx.Client(timeout=self.config.http_timeout_seconds)
        self._token: str | None = None

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "GraphClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def acquire_token(self) -> str:
        cfg = self.config
        if not cfg.graph_configured:
            raise MailAuthError("Microsoft Graph credentials are not configured")
        url = f"{cfg.graph_login_url.rstrip('/')}/{cfg.graph_tenant_id}/oauth2/v2.0/token"
        try:
            resp = self.http.post(
                url,
                data={
                    "client_id": cfg.graph_client_id,
                    "client_secret": cfg.graph_client_secret,
                    "scope": GRAPH_SCOPE,
                    "grant_type": "client_credentials",
                },
            )
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"Token endpoint unreachable: {exc}") from exc
        if resp.status_code != 200:
            raise MailAuthError(f"Failed to get access token: {resp.status_code} {resp.text[:200]}")
        token = resp.json().get("access_token")
        if not token:
            raise MailAuthError("Token response did not contain an access_token")
        self._token = token
        return token

    def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        if path.startswith("https://"):
            url = path
        else:
            url = f"{self.config.graph_base_url.rstrip('/')}/{path.lstrip('/')}"
        for attempt in range(2):
            token = self._token or self.acquire_token()
            headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
            try:
                resp = self.http.request(method, url, headers=headers, **kwargs)
            except httpx.HTTPError as exc:
                raise GatewayUnavailable(f"Graph unreachable: {exc}") from exc
            if resp.status_code == 401 and attempt == 0:
                logger.info("Graph token rejected, refreshing once")
                self._token = None
                kwargs["headers"] = {k: v for k, v in headers.items() if k != "Authorization"}
                continue
            if resp.status_code == 401:
                raise MailAuthError("Graph rejected the refreshed access token")
            return resp
        raise MailAuthError("Graph authentication failed")

    def send_mail(
        self,
        sender: str,
        to: str,
        subject: str,
        text: str,
        *,
        cc: list[str] | None = None,
        reply_to: str | None = None,
    ) -> None:
        message: dict = {
            "subject": subject,
            "body": {"contentType": "Text", "content": text},
            "toRecipients": [{"emailAddress": {"address": to}}],
        }
        if cc:
            message["ccRecipients"] = [{"emailAddress": {"address": addr}} for addr in cc]
        if reply_to:
            message["replyTo"] = [{"emailAddress": {"address": reply_to}}]
        resp = self.request("POST", f"users/{sender}/sendMail", json={"message": message})
        if resp.status_code >= 400:
            raise MailDeliveryError(f"Failed to send email: {resp.status_code} {resp.text[:200]}")

    def list_unread(self, mailbox: str, since: datetime | None) -> list[GraphMessage]:
        """Every unread message since ``since``, oldest first, across all pages."""
        flt = "isRead eq false"
        if since is not None:
            flt += f" and receivedDateTime ge {format_graph_time(since)}"
        path: str | None = f"users/{mailbox}/messages"
        params: dict[str, str] | None = {
            "$filter": flt,
            "$top": str(INBOX_PAGE_SIZE),
            "$orderby": "receivedDateTime asc",
        }
        out: list[GraphMessage] = []
        while path:
            resp = self.request("GET", path, params=params, headers={"Prefer": 'outlook.body-content-type="text"'})
            if resp.status_code >= 400:
                raise MailDeliveryError(f"Failed to fetch emails for {mailbox}: {resp.status_code} {resp.text[:200]}")
            data = resp.json()
            out.extend(_to_message(mailbox, item) for item in data.get("value", []))
            # nextLink is absolute and already carries the query.
            path = data.get("@odata.nextLink")
            params = None
        return out

    def mark_as_read(self, mailbox: str, message_id: str) -> bool:
        resp = self.request("PATCH", f"users/{mailbox}/messages/{message_id}", json={"isRead": True})
        if resp.status_code >= 400:
            logger.error("Failed to mark email as read: mailbox=%s id=%s status=%s", mailbox, message_id, resp.status_code)
            return False
        return True
