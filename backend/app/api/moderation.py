"""Moderator endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from app.api.deps import require_moderator
from app.database import get_db
from app.models import Ticket
from app.schemas import TicketRead

router = APIRouter(prefix="/moderation", tags=["moderation"])

MAX_TICKETS_PER_PAGE = 30


@router.get(
    "/tickets",
    response_model=list[TicketRead],
    dependencies=[Depends(require_moderator)],
)
def list_tickets(
    after: int | None = Query(default=None, description="Id of the last ticket of the previous page"),
    limit: int = Query(default=MAX_TICKETS_PER_PAGE, ge=1),
    db: Session = Depends(get_db),
) -> list[Ticket]:
    """Tickets ordered by most recent activity, paginated by cursor."""

    stmt = select(Ticket).order_by(Ticket.last_updated_at.desc(), Ticket.id.desc())
    if after is not None:
        cursor = db.get(Ticket, after)
        if cursor is None:
            return []
        stmt = stmt.where(
            or_(
                Ticket.last_updated_at < cursor.last_updated_at,
                and_(Ticket.last_updated_at == cursor.last_updated_at, Ticket.id < cursor.id),
            )
        )
    return list(db.execute(stmt.limit(min(limit, MAX_TICKETS_PER_PAGE))).scalars())
