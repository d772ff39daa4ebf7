"""Unit tests for the send-message permission evaluator."""

from __future__ import annotations

import itertools
from types import SimpleNamespace

import pytest

from app.models import ChannelPermission, ChannelType, DmStatus, FriendStatus, RolePermission
from app.services.channel_cache import InboxCache, can_message
from app.services.permissions import (
    can_send_message,
    effective_role_permissions,
    evaluate_send_permission,
)

OWNER_ID = 1
MEMBER_ID = 2


def make_member(*role_bits: int, owner: bool = False, default_bits: int = 0) -> SimpleNamespace:
    server = SimpleNamespace(
        owner_id=MEMBER_ID if owner else OWNER_ID,
        default_role=SimpleNamespace(permissions=default_bits),
    )
    return SimpleNamespace(
        user_id=MEMBER_ID,
        server=server,
        roles=[SimpleNamespace(permissions=bits) for bits in role_bits],
    )


def make_channel(permissions: int, type: ChannelType = ChannelType.SERVER_TEXT) -> SimpleNamespace:
    return SimpleNamespace(
        type=type,
        server_id=None if type == ChannelType.DM_TEXT else 10,
        permissions=permissions,
    )


def test_effective_permissions_combine_default_and_member_roles():
    member = make_member(RolePermission.KICK, RolePermission.BAN, default_bits=RolePermission.SEND_MESSAGE)

    bits = effective_role_permissions(member)

    assert bits == RolePermission.KICK | RolePermission.BAN | RolePermission.SEND_MESSAGE


@pytest.mark.parametrize(
    "owner,role_bit,channel_bit",
    list(itertools.product([False, True], repeat=3)),
)
def test_grant_requires_owner_or_role_bit_and_channel_bit(owner, role_bit, channel_bit):
    member = make_member(RolePermission.SEND_MESSAGE if role_bit else RolePermission.KICK, owner=owner)
    channel = make_channel(ChannelPermission.SEND_MESSAGE if channel_bit else ChannelPermission.JOIN_VOICE)

    assert can_send_message(member, channel) is ((owner or role_bit) and channel_bit)


def test_channel_failure_reason_is_reported_before_role_failure():
    member = make_member()
    channel = make_channel(0)

    error = evaluate_send_permission(member, channel)

    assert error is not None
    assert error.message == "You are not allowed to send messages in this channel."


def test_role_failure_names_the_missing_permission():
    member = make_member(RolePermission.MENTION_EVERYONE)
    channel = make_channel(ChannelPermission.SEND_MESSAGE)

    error = evaluate_send_permission(member, channel)

    assert error is not None
    assert error.message == "You don't have permission to perform this action (SEND_MESSAGE)."


def test_owner_without_roles_may_send_when_channel_allows():
    member = make_member(owner=True)

    assert can_send_message(member, make_channel(ChannelPermission.SEND_MESSAGE))
    assert not can_send_message(member, make_channel(0))


@pytest.mark.parametrize("allowed", [True, False])
def test_inbox_channels_only_follow_can_message(allowed):
    channel = make_channel(0, type=ChannelType.DM_TEXT)
    inbox = InboxCache(id=1, recipient_id=OWNER_ID, closed=False, can_message=allowed)

    error = evaluate_send_permission(None, channel, inbox=inbox)

    if allowed:
        assert error is None
    else:
        assert error is not None and error.message == "You cannot message this user."


def test_can_message_is_false_when_either_side_blocked(factory, db_session):
    alice = factory.user("alice")
    bob = factory.user("bob")
    factory.relation(bob, alice, FriendStatus.BLOCKED)

    assert not can_message(db_session, alice, bob)
    assert not can_message(db_session, bob, alice)


def test_can_message_respects_friends_only(factory, db_session):
    alice = factory.user("alice")
    bob = factory.user("bob", dm_status=DmStatus.FRIENDS_ONLY)

    assert not can_message(db_session, alice, bob)

    factory.relation(alice, bob, FriendStatus.FRIENDS)
    factory.relation(bob, alice, FriendStatus.FRIENDS)

    assert can_message(db_session, alice, bob)


def test_can_message_friends_and_servers_accepts_shared_server(factory, db_session):
    alice = factory.user("alice")
    bob = factory.user("bob", dm_status=DmStatus.FRIENDS_AND_SERVERS)

    assert not can_message(db_session, alice, bob)

    server = factory.server(alice)
    factory.member(server, bob)

    assert can_message(db_session, alice, bob)
