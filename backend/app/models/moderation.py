from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import TicketCategory, TicketStatus


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Ticket(Base):
    """Support ticket handled by moderators in its own ticket channel."""

    __tablename__ = "tickets"
    __table_args__ = (Index("ix_tickets_last_updated_at", "last_updated_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    status: Mapped[TicketStatus] = mapped_column(
        SAEnum(TicketStatus, name="ticket_status", values_callable=_values),
        default=TicketStatus.WAITING_FOR_MODERATOR_RESPONSE,
        nullable=False,
    )
    category: Mapped[TicketCategory] = mapped_column(
        SAEnum(TicketCategory, name="ticket_category", values_callable=_values), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    opened_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    channel_id: Mapped[int] = mapped_column(
        ForeignKey("channels.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
