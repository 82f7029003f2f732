"""
Tests for chat service layer business logic.

This module tests:
- ConversationService: Direct conversation get-or-create, listing, read state
- MessageService: Send, edit and delete across both channel kinds

Test Organization:
    - Each service method has its own test class
    - Each test validates ONE specific behavior
    - Tests use descriptive names following: test_<scenario>_<expected_outcome>

Testing Philosophy:
    Tests focus on observable behavior, not implementation details:
    - ServiceResult success/failure states
    - Database state changes
    - Error codes for specific failure modes
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone
from freezegun import freeze_time

from authentication.tests.factories import UserFactory
from chat.channel_ref import ChannelRef
from chat.constants import MESSAGE_CONFIG
from chat.exceptions import Forbidden, raise_for_result
from chat.models import Conversation, DirectConversationPair, Message, Participant
from chat.services import ConversationService, MessageService
from chat.tests.factories import DirectConversationFactory, MessageFactory


# =============================================================================
# TestConversationServiceGetOrCreateDirect
# =============================================================================


class TestConversationServiceGetOrCreateDirect:
    """
    Tests for ConversationService.get_or_create_direct().

    Verifies:
    - Creating new direct conversations with both participants
    - Returning the existing conversation for the same pair in either order
    - Rejecting self-conversations and unknown users
    - Convergence when two creates race
    """

    def test_creates_conversation_with_both_participants(self, alice, bob):
        """
        Why it matters: This is the primary happy path for starting a DM.
        """
        result = ConversationService.get_or_create_direct(alice, bob)

        assert result.success is True
        conversation = result.data
        assert set(conversation.participants.values_list("user_id", flat=True)) == {
            alice.id,
            bob.id,
        }
        assert DirectConversationPair.objects.filter(conversation=conversation).exists()

    def test_same_pair_in_either_order_returns_same_conversation(self, alice, bob):
        """
        Why it matters: Users must always land in the same conversation
        no matter who starts it.
        """
        first = ConversationService.get_or_create_direct(alice, bob).data
        second = ConversationService.get_or_create_direct(bob, alice).data

        assert first.id == second.id
        assert Conversation.objects.count() == 1

    def test_accepts_user_id(self, alice, bob):
        result = ConversationService.get_or_create_direct(alice, bob.id)

        assert result.success is True
        assert result.data.get_other_user_id(alice.id) == bob.id

    def test_rejects_conversation_with_self(self, alice):
        result = ConversationService.get_or_create_direct(alice, alice)

        assert result.success is False
        assert result.error_code == "SAME_USER"

    def test_unknown_user_id_is_not_found(self, alice):
        result = ConversationService.get_or_create_direct(alice, 987654)

        assert result.error_code == "USER_NOT_FOUND"

    def test_inactive_user_is_not_found(self, alice):
        inactive = UserFactory(is_active=False)

        result = ConversationService.get_or_create_direct(alice, inactive.id)

        assert result.error_code == "USER_NOT_FOUND"

    def test_concurrent_create_converges_on_one_conversation(self, alice, bob):
        """
        A create that loses the unique-pair race returns the winner's row.

        Why it matters: Two users tapping "message" at the same moment must
        not end up with two conversations.

        The race is simulated by creating the winner's conversation and
        hiding it from the first lookup only.
        """
        winner = ConversationService.get_or_create_direct(alice, bob).data
        real_find = ConversationService._find_direct.__func__
        calls = []

        def find_direct(cls, lower_id, higher_id):
            calls.append((lower_id, higher_id))
            if len(calls) == 1:
                return None
            return real_find(cls, lower_id, higher_id)

        with patch.object(ConversationService, "_find_direct", classmethod(find_direct)):
            result = ConversationService.get_or_create_direct(bob, alice)

        assert result.success is True
        assert result.data.id == winner.id
        assert Conversation.objects.count() == 1
        assert Participant.objects.count() == 2
        assert len(calls) == 2


# =============================================================================
# TestConversationServiceGetConversationForUser
# =============================================================================


class TestConversationServiceGetConversationForUser:
    def test_participant_gets_conversation(self, direct_conversation, alice):
        result = ConversationService.get_conversation_for_user(direct_conversation.id, alice)

        assert result.data == direct_conversation

    def test_outsider_is_denied(self, direct_conversation, outsider):
        result = ConversationService.get_conversation_for_user(direct_conversation.id, outsider)

        assert result.error_code == "ACCESS_DENIED"

    def test_unknown_conversation(self, db, alice):
        result = ConversationService.get_conversation_for_user(123456, alice)

        assert result.error_code == "CONVERSATION_NOT_FOUND"


# =============================================================================
# TestConversationServiceReadState
# =============================================================================


class TestConversationServiceReadState:
    """
    Tests for mark_read() and get_unread_count().

    Unread = messages from the other participant after last_read_at.
    """

    def test_all_messages_from_other_user_unread_before_first_read(
        self, direct_conversation, alice, bob
    ):
        MessageFactory(conversation=direct_conversation, sender=bob)
        MessageFactory(conversation=direct_conversation, sender=bob)
        MessageFactory(conversation=direct_conversation, sender=alice)

        assert ConversationService.get_unread_count(direct_conversation, alice) == 2
        assert ConversationService.get_unread_count(direct_conversation, bob) == 1

    def test_mark_read_resets_unread_count(self, direct_conversation, alice, bob):
        """
        Why it matters: Opening a conversation clears its badge.
        """
        MessageFactory(conversation=direct_conversation, sender=bob)

        result = ConversationService.mark_read(direct_conversation, alice)

        assert result.success is True
        assert result.data.last_read_at is not None
        assert ConversationService.get_unread_count(direct_conversation, alice) == 0

    def test_new_message_after_read_increments_unread(self, direct_conversation, alice, bob):
        with freeze_time(timezone.now() - timedelta(minutes=5)):
            MessageFactory(conversation=direct_conversation, sender=bob)
            ConversationService.mark_read(direct_conversation, alice)

        MessageFactory(conversation=direct_conversation, sender=bob)

        assert ConversationService.get_unread_count(direct_conversation, alice) == 1

    def test_deleted_messages_still_count(self, direct_conversation, alice, bob):
        message = MessageFactory(conversation=direct_conversation, sender=bob)
        message.soft_delete()

        assert ConversationService.get_unread_count(direct_conversation, alice) == 1

    def test_mark_read_by_outsider_is_denied(self, direct_conversation, outsider):
        result = ConversationService.mark_read(direct_conversation, outsider)

        assert result.error_code == "ACCESS_DENIED"

    def test_outsider_unread_count_is_zero(self, direct_conversation, outsider, bob):
        MessageFactory(conversation=direct_conversation, sender=bob)

        assert ConversationService.get_unread_count(direct_conversation, outsider) == 0


# =============================================================================
# TestConversationServiceListConversations
# =============================================================================


class TestConversationServiceListConversations:
    def test_orders_by_most_recent_activity(self, alice, bob, outsider):
        """
        Why it matters: The inbox shows the most recently active chat first.
        """
        older = ConversationService.get_or_create_direct(alice, bob).data
        newer = ConversationService.get_or_create_direct(alice, outsider).data
        MessageService.send_message(older.channel, bob, "latest")

        rows = ConversationService.list_conversations(alice)

        assert [row.conversation.id for row in rows] == [older.id, newer.id]

    def test_row_contains_other_user_last_message_and_unread(self, direct_conversation, alice, bob):
        MessageFactory(conversation=direct_conversation, sender=bob, content="first")
        last = MessageFactory(conversation=direct_conversation, sender=bob, content="second")

        (row,) = ConversationService.list_conversations(alice)

        assert row.other_user.id == bob.id
        assert row.other_user.name == "Bob Ruiz"
        assert row.last_message == last
        assert row.unread_count == 2
        assert bob.id in row.profiles

    def test_new_conversation_has_no_last_message(self, direct_conversation, alice):
        (row,) = ConversationService.list_conversations(alice)

        assert row.last_message is None
        assert row.unread_count == 0

    def test_excludes_other_peoples_conversations(self, direct_conversation, outsider):
        assert ConversationService.list_conversations(outsider) == []


# =============================================================================
# TestMessageServiceSendMessage
# =============================================================================


class TestMessageServiceSendMessage:
    """
    Tests for MessageService.send_message().

    Verifies:
    - Direct and group sends store one message each
    - Content validation codes
    - Access gate runs for writes
    """

    def test_direct_send_stores_message_and_updates_activity(
        self, direct_conversation, direct_channel, alice
    ):
        result = MessageService.send_message(direct_channel, alice, "  Court 3 at 6?  ")

        assert result.success is True
        message = result.data
        assert message.content == "Court 3 at 6?"
        assert message.channel == direct_channel
        direct_conversation.refresh_from_db()
        assert direct_conversation.last_message_at == message.created_at

    def test_activity_timestamp_never_moves_backward(self, direct_conversation, direct_channel, alice):
        """
        Why it matters: Two sends committing out of order must not push the
        conversation down the list.
        """
        later = timezone.now() + timedelta(minutes=5)
        Conversation.objects.filter(id=direct_conversation.id).update(last_message_at=later)

        MessageService.send_message(direct_channel, alice, "late commit")

        direct_conversation.refresh_from_db()
        assert direct_conversation.last_message_at == later

    def test_n_sends_store_n_messages(self, direct_channel, alice, bob):
        for n in range(5):
            sender = alice if n % 2 else bob
            assert MessageService.send_message(direct_channel, sender, f"hi {n}")

        assert Message.objects.filter(conversation_id=direct_channel.id).count() == 5

    def test_group_send_by_active_member(self, private_squad, active_member):
        channel = ChannelRef.group(private_squad.id)

        result = MessageService.send_message(channel, active_member, "Drills at 7")

        assert result.success is True
        assert result.data.squad_id == private_squad.id
        assert result.data.conversation_id is None

    def test_public_group_outsider_can_read_but_not_send(self, public_squad, outsider, alice):
        """
        Why it matters: Public squads advertise their chat, but only
        members may speak in it.
        """
        channel = ChannelRef.group(public_squad.id)
        MessageService.send_message(channel, alice, "Welcome!")

        page = MessageService.fetch_page(channel, outsider)
        send = MessageService.send_message(channel, outsider, "Can I join?")

        assert page.success is True
        assert len(page.data.items) == 1
        assert send.error_code == "ACCESS_DENIED"
        assert Message.objects.filter(squad=public_squad).count() == 1

    def test_pending_member_cannot_send(self, private_squad, pending_member):
        channel = ChannelRef.group(private_squad.id)

        result = MessageService.send_message(channel, pending_member, "hello?")

        assert result.error_code == "ACCESS_DENIED"

    def test_blank_content_is_rejected(self, direct_channel, alice):
        result = MessageService.send_message(direct_channel, alice, "   ")

        assert result.error_code == "EMPTY_CONTENT"
        assert not Message.objects.exists()

    def test_too_long_content_is_rejected(self, direct_channel, alice):
        content = "x" * (MESSAGE_CONFIG.MAX_CONTENT_LENGTH + 1)

        result = MessageService.send_message(direct_channel, alice, content)

        assert result.error_code == "CONTENT_TOO_LONG"

    def test_invalid_image_url_is_rejected(self, direct_channel, alice):
        result = MessageService.send_message(direct_channel, alice, "pic", image_url="not a url")

        assert result.error_code == "INVALID_IMAGE_URL"

    def test_image_url_is_stored(self, direct_channel, alice):
        url = "https://cdn.example.com/court.jpg"

        result = MessageService.send_message(direct_channel, alice, "pic", image_url=url)

        assert result.data.image_url == url

    def test_outsider_cannot_send_to_direct(self, direct_channel, outsider):
        result = MessageService.send_message(direct_channel, outsider, "hi")

        assert result.error_code == "ACCESS_DENIED"

    def test_unknown_channel(self, db, alice):
        result = MessageService.send_message(ChannelRef.group(999999), alice, "hi")

        assert result.error_code == "CHANNEL_NOT_FOUND"


# =============================================================================
# TestMessageServiceEditMessage
# =============================================================================


class TestMessageServiceEditMessage:
    def test_author_can_edit(self, direct_conversation, alice):
        message = MessageFactory(conversation=direct_conversation, sender=alice, content="6pm")

        result = MessageService.edit_message(alice, message.id, "7pm")

        assert result.success is True
        message.refresh_from_db()
        assert message.content == "7pm"
        assert message.is_edited is True
        assert message.edited_at is not None

    def test_non_author_is_forbidden_and_content_unchanged(self, direct_conversation, alice, bob):
        """
        Why it matters: Only the author may change what they said.
        """
        message = MessageFactory(conversation=direct_conversation, sender=alice, content="6pm")

        result = MessageService.edit_message(bob, message.id, "never mind")

        assert result.error_code == "NOT_AUTHOR"
        with pytest.raises(Forbidden):
            raise_for_result(result)
        message.refresh_from_db()
        assert message.content == "6pm"
        assert message.is_edited is False

    def test_group_messages_cannot_be_edited(self, private_squad, active_member):
        message = MessageFactory(conversation=None, squad=private_squad, sender=active_member)

        result = MessageService.edit_message(active_member, message.id, "changed")

        assert result.error_code == "EDIT_NOT_SUPPORTED"

    def test_blank_edit_is_rejected(self, direct_conversation, alice):
        message = MessageFactory(conversation=direct_conversation, sender=alice)

        result = MessageService.edit_message(alice, message.id, "")

        assert result.error_code == "EMPTY_CONTENT"

    def test_deleted_message_cannot_be_edited(self, direct_conversation, alice):
        message = MessageFactory(conversation=direct_conversation, sender=alice)
        message.soft_delete()

        result = MessageService.edit_message(alice, message.id, "again")

        assert result.error_code == "MESSAGE_NOT_FOUND"


# =============================================================================
# TestMessageServiceDeleteMessage
# =============================================================================


class TestMessageServiceDeleteMessage:
    def test_author_soft_deletes_message(self, direct_conversation, alice):
        message = MessageFactory(conversation=direct_conversation, sender=alice)

        result = MessageService.delete_message(alice, message.id)

        assert result.success is True
        message.refresh_from_db()
        assert message.is_deleted is True
        assert message.deleted_at is not None

    def test_non_author_cannot_delete(self, direct_conversation, alice, bob):
        message = MessageFactory(conversation=direct_conversation, sender=alice)

        result = MessageService.delete_message(bob, message.id)

        assert result.error_code == "NOT_AUTHOR"
        message.refresh_from_db()
        assert message.is_deleted is False

    def test_group_messages_cannot_be_deleted(self, private_squad, active_member):
        message = MessageFactory(conversation=None, squad=private_squad, sender=active_member)

        result = MessageService.delete_message(active_member, message.id)

        assert result.error_code == "DELETE_NOT_SUPPORTED"

    def test_second_delete_is_not_found(self, direct_conversation, alice):
        message = MessageFactory(conversation=direct_conversation, sender=alice)
        MessageService.delete_message(alice, message.id)

        result = MessageService.delete_message(alice, message.id)

        assert result.error_code == "MESSAGE_NOT_FOUND"

    def test_deleted_message_reaches_conversation_list_placeholder(
        self, direct_conversation, alice
    ):
        message = MessageFactory(conversation=direct_conversation, sender=alice)
        MessageService.delete_message(alice, message.id)

        (row,) = ConversationService.list_conversations(alice)

        assert row.last_message.get_display_content() == MESSAGE_CONFIG.DELETED_PLACEHOLDER


def test_conversation_factory_pair_matches_service(db):
    """Factory-built conversations are found by the service lookup."""
    conversation = DirectConversationFactory()
    pair = conversation.direct_pair

    found = ConversationService._find_direct(pair.user_lower_id, pair.user_higher_id)

    assert found == conversation
