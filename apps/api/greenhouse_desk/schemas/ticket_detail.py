from pydantic import BaseModel

from .ticket import TicketOut
from .comment import CommentOut
from .history import HistoryOut
from .user import UserSummaryOut


class TicketDetailOut(BaseModel):
    ticket: TicketOut
    comments: list[CommentOut]
    # Most recent first, capped at 10.
    history: list[HistoryOut]
    assignee: UserSummaryOut | None = None
