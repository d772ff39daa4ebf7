from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.models import ChannelType, Ticket, TicketCategory, UserBadge

BASE = datetime(2026, 3, 1, tzinfo=timezone.utc)


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def moderator_headers(factory):
    moderator = factory.user("moderator", badges=UserBadge.MOD)
    return auth_headers(factory.token(moderator))


def make_tickets(factory, session_factory, offsets_minutes: list[int]) -> list[int]:
    opener = factory.user("opener")
    channels = [
        factory.channel(None, type=ChannelType.TICKET, permissions=0, name=None) for _ in offsets_minutes
    ]
    ids: list[int] = []
    with session_factory() as session:
        for index, (offset, channel) in enumerate(zip(offsets_minutes, channels)):
            ticket = Ticket(
                title=f"Ticket {index}",
                category=TicketCategory.QUESTION,
                opened_by_id=opener,
                channel_id=channel,
                last_updated_at=BASE + timedelta(minutes=offset),
            )
            session.add(ticket)
            session.flush()
            ids.append(ticket.id)
        session.commit()
    return ids


def test_non_moderators_are_forbidden(client, factory):
    user = factory.user("regular")

    response = client.get("/api/moderation/tickets", headers=auth_headers(factory.token(user)))

    assert response.status_code == 403
    assert response.json() == {"error": "Admin access only!"}


def test_tickets_are_ordered_by_last_update(client, factory, session_factory, moderator_headers):
    first, second, third = make_tickets(factory, session_factory, [5, 20, 20])

    response = client.get("/api/moderation/tickets", headers=moderator_headers)

    assert response.status_code == 200, response.text
    assert [ticket["id"] for ticket in response.json()] == [third, second, first]
    assert response.json()[0]["status"] == "waiting_for_moderator_response"


def test_page_size_is_capped_and_cursor_continues(client, factory, session_factory, moderator_headers):
    ids = make_tickets(factory, session_factory, list(range(35)))
    newest_first = list(reversed(ids))

    first_page = client.get("/api/moderation/tickets", params={"limit": 100}, headers=moderator_headers).json()
    assert [ticket["id"] for ticket in first_page] == newest_first[:30]

    second_page = client.get(
        "/api/moderation/tickets", params={"after": first_page[-1]["id"]}, headers=moderator_headers
    ).json()
    assert [ticket["id"] for ticket in second_page] == newest_first[30:]


def test_cursor_with_explicit_limit(client, factory, session_factory, moderator_headers):
    ids = make_tickets(factory, session_factory, [1, 2, 3, 4])

    response = client.get(
        "/api/moderation/tickets", params={"after": ids[3], "limit": 2}, headers=moderator_headers
    )

    assert [ticket["id"] for ticket in response.json()] == [ids[2], ids[1]]


def test_unknown_cursor_returns_empty_page(client, factory, session_factory, moderator_headers):
    make_tickets(factory, session_factory, [1])

    response = client.get("/api/moderation/tickets", params={"after": 999}, headers=moderator_headers)

    assert response.status_code == 200
    assert response.json() == []


def test_limit_must_be_positive(client, moderator_headers):
    response = client.get("/api/moderation/tickets", params={"limit": 0}, headers=moderator_headers)

    assert response.status_code == 400
    assert response.json()["path"] == "limit"
