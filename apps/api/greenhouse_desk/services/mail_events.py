from __future__ import annotations

from sqlalchemy.orm import Session

from ..core.ticket_rules import STATUS_LABELS
from ..models.department import Department
from ..models.outbound_email import OutboundEmail
from ..models.ticket import Ticket
from .mail_service import enqueue_mail


def notify_requester_ticket_created(
    session: Session,
    ticket: Ticket,
    department: Department | None,
    *,
    via_email: bool = False,
) -> OutboundEmail:
    dept_name = department.name if department else "appropriate"
    lines = [
        f"Hello {ticket.requester_name or ticket.requester_email},",
        "",
        f"Your ticket has been successfully created and assigned to the {dept_name} department. "
        "We will review your request and update you on its progress.",
        "",
        f"Ticket Number: #{ticket.ticket_number}",
        f"Title: {ticket.title}",
        f"Priority: {ticket.priority}",
        f"Status: {STATUS_LABELS.get(ticket.status, ticket.status)}",
    ]
    if via_email:
        lines += ["", "You can reply to this email to add additional information."]
    return enqueue_mail(
        session,
        ticket_id=ticket.id,
        to_email=ticket.requester_email,
        subject=f"Ticket #{ticket.ticket_number} Created - {ticket.title}",
        body="\n".join(lines),
        template_type="ticket_created",
    )


def notify_requester_commented(session: Session, ticket: Ticket, body: str) -> OutboundEmail:
    return enqueue_mail(
        session,
        ticket_id=ticket.id,
        to_email=ticket.requester_email,
        subject=f"New Comment on Ticket #{ticket.ticket_number}",
        body=body,
        template_type="comment_added",
    )


def notify_requester_info_requested(session: Session, ticket: Ticket, request: str) -> OutboundEmail:
    return enqueue_mail(
        session,
        ticket_id=ticket.id,
        to_email=ticket.requester_email,
        subject=f"Information Needed for Ticket #{ticket.ticket_number}",
        body=f"We need additional information to proceed with your ticket:\n\n{request}",
        template_type="info_requested",
    )


def notify_assignee_replied(session: Session, ticket: Ticket, assignee_email: str, text: str) -> OutboundEmail:
    return enqueue_mail(
        session,
        ticket_id=ticket.id,
        to_email=assignee_email,
        subject=f"Reply to Ticket #{ticket.ticket_number} - {ticket.title}",
        body=f"The requester has replied to the ticket:\n\n{text or 'No content'}",
        template_type="comment_added",
    )
