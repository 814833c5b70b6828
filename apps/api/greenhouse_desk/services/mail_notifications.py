from __future__ import annotations

import html

from ..core.config import settings
from ..models.outbound_email import OutboundEmail
from .mail_transport import OutboundMessage


TEMPLATE_HEADINGS = {
    "ticket_created": "Created",
    "ticket_updated": "Updated",
    "comment_added": "New Comment",
    "status_changed": "Status Changed",
    "info_requested": "Information Requested",
}

FOOTER_LINES = (
    "This is an automated message from Great Lakes Greenhouses Maintenance System.",
    "To respond to this ticket, simply reply to this email.",
)


def _esc(value: str | None) -> str:
    return html.escape(value or "-")


def _header(template_type: str, ticket_number: int | None) -> str:
    number = f"#{ticket_number}" if ticket_number is not None else "N/A"
    heading = TEMPLATE_HEADINGS.get(template_type)
    if heading:
        return f"Ticket {number} - {heading}"
    return f"Ticket {number}"


def _render_plain(*, header: str, body: str, template_type: str) -> str:
    lines: list[str] = [header, "", body]
    if template_type == "info_requested":
        lines.append("")
        lines.append("Please reply to this email with the requested information.")
    lines.append("")
    lines.append("---")
    lines.extend(FOOTER_LINES)
    return "\n".join(lines)


def _render_html(*, header: str, body: str, template_type: str) -> str:
    paragraphs = "".join(
        f'<p style="margin:0 0 12px;color:#111827;font-size:14px;line-height:1.6;">{_esc(p)}</p>'
        for p in body.split("\n\n")
        if p.strip()
    )
    ask = ""
    if template_type == "info_requested":
        ask = (
            '<p style="margin:0 0 12px;color:#92400e;font-size:14px;font-weight:600;">'
            "Please reply to this email with the requested information.</p>"
        )
    footer = "".join(f"<div>{_esc(line)}</div>" for line in FOOTER_LINES)
    return f"""
<!DOCTYPE html>
<html lang="en">
  <body style="margin:0;padding:24px;background:#ffffff;">
    <table role="presentation" width="680" cellspacing="0" cellpadding="0" style="width:680px;border:1px solid #e5e7eb;border-radius:14px;">
      <tr>
        <td style="padding:20px 24px;border-bottom:1px solid #e5e7eb;font-size:18px;font-weight:700;color:#166534;">{_esc(header)}</td>
      </tr>
      <tr>
        <td style="padding:20px 24px;">{paragraphs}{ask}</td>
      </tr>
      <tr>
        <td style="padding:16px 24px;border-top:1px solid #e5e7eb;font-size:12px;color:#6b7280;line-height:1.6;">{footer}</td>
      </tr>
    </table>
  </body>
</html>
    """.strip()


def render_message(entry: OutboundEmail, ticket_number: int | None) -> OutboundMessage:
    header = _header(entry.template_type, ticket_number)
    text = _render_plain(header=header, body=entry.body, template_type=entry.template_type)
    body_html = _render_html(header=header, body=entry.body, template_type=entry.template_type)
    reply_to = None
    if entry.template_type == "info_requested":
        reply_to = settings.mail_reply_to or settings.mail_from or None
    headers = {}
    if entry.ticket_id is not None:
        headers["X-Ticket-ID"] = str(entry.ticket_id)
    return OutboundMessage(
        to=entry.to_email,
        cc=list(entry.cc_emails or []),
        subject=entry.subject,
        text=text,
        html=body_html,
        reply_to=reply_to,
        headers=headers,
    )
