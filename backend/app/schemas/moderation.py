"""Schemas for moderation endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.models.enums import TicketCategory, TicketStatus


class TicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: TicketStatus
    category: TicketCategory
    title: str
    channel_id: int
    opened_at: datetime
    last_updated_at: datetime
