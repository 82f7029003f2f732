"""
Tests for the chat access gate.

Covers ChatAuthorizationService.check_access for both channel kinds and
the require_channel_access / require_message_access decorators.

Group rules under test:
    creator             read + write
    active member       read + write
    pending member      read only when the squad is public
    outsider            read only when the squad is public
"""

from unittest.mock import MagicMock

import pytest
from django.contrib.auth.models import AnonymousUser

from chat.access import (
    ChatAuthorizationService,
    require_channel_access,
    require_message_access,
)
from chat.channel_ref import ChannelRef
from chat.tests.factories import MessageFactory
from core.services import ServiceResult
from squads.models import MemberStatus
from squads.services import GroupInfo, Membership
from squads.tests.factories import SquadMemberFactory


class TestCheckAccessDirect:
    """Direct conversations: participants only."""

    def test_participant_can_read_and_write(self, direct_channel, alice, bob):
        assert ChatAuthorizationService.can_read(alice, direct_channel)
        assert ChatAuthorizationService.can_write(bob, direct_channel)

    def test_non_participant_is_denied(self, direct_channel, outsider):
        """
        Why it matters: A direct conversation is private to its two users.
        """
        result = ChatAuthorizationService.check_access(outsider, direct_channel)

        assert result.success is False
        assert result.error_code == "ACCESS_DENIED"

    def test_unknown_conversation_is_not_found(self, db, alice):
        result = ChatAuthorizationService.check_access(alice, ChannelRef.direct(999999))

        assert result.error_code == "CHANNEL_NOT_FOUND"

    def test_anonymous_user_is_denied(self, direct_channel):
        result = ChatAuthorizationService.check_access(AnonymousUser(), direct_channel)

        assert result.error_code == "ACCESS_DENIED"


class TestCheckAccessGroup:
    """Group channels: access follows squad membership."""

    def test_creator_can_write_without_membership_row(self, private_squad, alice):
        """
        Why it matters: Squad creators do not always have a member row but
        own the channel.
        """
        channel = ChannelRef.group(private_squad.id)

        assert ChatAuthorizationService.can_write(alice, channel)

    def test_active_member_can_read_and_write(self, private_squad, active_member):
        channel = ChannelRef.group(private_squad.id)

        assert ChatAuthorizationService.can_read(active_member, channel)
        assert ChatAuthorizationService.can_write(active_member, channel)

    def test_pending_member_cannot_read_private_group(self, private_squad, pending_member):
        """
        Why it matters: A pending request must not reveal a private squad's chat.
        """
        channel = ChannelRef.group(private_squad.id)

        result = ChatAuthorizationService.check_access(pending_member, channel)

        assert result.error_code == "ACCESS_DENIED"

    def test_outsider_can_read_but_not_write_public_group(self, public_squad, outsider):
        channel = ChannelRef.group(public_squad.id)

        assert ChatAuthorizationService.can_read(outsider, channel)
        write = ChatAuthorizationService.check_access(outsider, channel, write=True)
        assert write.error_code == "ACCESS_DENIED"

    def test_pending_member_cannot_write_public_group(self, public_squad, bob):
        SquadMemberFactory(squad=public_squad, user=bob, status=MemberStatus.PENDING)
        channel = ChannelRef.group(public_squad.id)

        assert ChatAuthorizationService.can_read(bob, channel)
        assert not ChatAuthorizationService.can_write(bob, channel)

    def test_unknown_group_is_not_found(self, db, alice):
        result = ChatAuthorizationService.check_access(alice, ChannelRef.group(424242))

        assert result.error_code == "CHANNEL_NOT_FOUND"

    def test_membership_provider_is_pluggable(self, monkeypatch, alice):
        """
        The gate reads groups and memberships only through its provider.

        Why it matters: The chat core must not depend on how squads store
        membership.
        """
        provider = MagicMock()
        provider.get_group.return_value = GroupInfo(id=7, is_public=False, created_by_id=-1)
        provider.get_membership.return_value = Membership(status="active", role="member")
        monkeypatch.setattr(ChatAuthorizationService, "membership_provider", provider)

        assert ChatAuthorizationService.can_write(alice, ChannelRef.group(7))
        provider.get_membership.assert_called_once_with(7, alice.id)


class TestRequireChannelAccess:
    def test_runs_wrapped_function_when_allowed(self, direct_channel, alice):
        @require_channel_access(write=True)
        def post(channel, user):
            return ServiceResult.success("posted")

        assert post(direct_channel, alice).data == "posted"

    def test_returns_gate_failure_without_calling_function(self, direct_channel, outsider):
        calls = []

        @require_channel_access()
        def read(channel, user):
            calls.append(1)
            return ServiceResult.success(None)

        result = read(channel=direct_channel, user=outsider)

        assert result.error_code == "ACCESS_DENIED"
        assert calls == []

    def test_missing_arguments_are_invalid(self, direct_channel):
        @require_channel_access()
        def read(channel, user=None):
            return ServiceResult.success(None)

        assert read(direct_channel).error_code == "INVALID_REQUEST"


class TestRequireMessageAccess:
    def test_injects_loaded_message(self, direct_conversation, alice):
        message = MessageFactory(conversation=direct_conversation, sender=alice)

        @require_message_access()
        def load(user, message_id, _message=None):
            return ServiceResult.success(_message)

        assert load(alice, message.id).data == message

    def test_deleted_message_is_not_found(self, direct_conversation, alice):
        message = MessageFactory(conversation=direct_conversation, sender=alice)
        message.soft_delete()

        @require_message_access()
        def load(user, message_id, _message=None):
            return ServiceResult.success(_message)

        assert load(alice, message.id).error_code == "MESSAGE_NOT_FOUND"

    def test_non_participant_is_denied(self, direct_conversation, alice, outsider):
        message = MessageFactory(conversation=direct_conversation, sender=alice)

        @require_message_access()
        def load(user, message_id, _message=None):
            pytest.fail("should not be called")

        assert load(outsider, message.id).error_code == "ACCESS_DENIED"
