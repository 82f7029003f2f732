"""
Integration tests for ServiceTransport and a full ChannelSession over it.

ServiceTransport calls the service layer from worker threads and reads
events from the in-memory channel layer, so these tests run with
transaction=True.
"""

import asyncio
from unittest.mock import patch

import pytest
from channels.db import database_sync_to_async
from django.db import OperationalError

from chat.channel_ref import ChannelRef
from chat.client.session import ChatClient
from chat.client.transport import ChatTransport, ServiceTransport
from chat.exceptions import AccessDenied, NotFound, TransportError, ValidationError
from chat.models import Participant
from chat.realtime import MESSAGE_NEW
from chat.services import MessageService
from chat.tests.factories import MessageFactory

pytestmark = pytest.mark.django_db(transaction=True)


class BrokenLayer:
    """Channel layer whose connection is lost on the first receive."""

    def __init__(self):
        self.discarded = []

    async def new_channel(self):
        return "broken!1"

    async def group_add(self, group, channel):
        pass

    async def group_discard(self, group, channel):
        self.discarded.append((group, channel))

    async def receive(self, channel):
        await asyncio.sleep(0)
        raise ConnectionError("redis went away")


class TestServiceTransport:
    def test_satisfies_protocol(self, alice):
        assert isinstance(ServiceTransport(alice), ChatTransport)

    async def test_fetch_page_returns_records(self, direct_conversation, direct_channel, alice, bob):
        await database_sync_to_async(MessageFactory)(conversation=direct_conversation, sender=bob)

        page = await ServiceTransport(alice).fetch_page(direct_channel)

        (record,) = page.items
        assert record.sender_id == bob.id
        assert record.channel_id == str(direct_channel)
        assert record.sender["name"] == "Bob Ruiz"
        assert page.has_more is False

    async def test_fetch_page_refused_for_outsider(self, direct_channel, outsider):
        with pytest.raises(AccessDenied):
            await ServiceTransport(outsider).fetch_page(direct_channel)

    async def test_send_returns_stored_record(self, direct_channel, alice):
        record = await ServiceTransport(alice).send(direct_channel, "  On my way ")

        assert record.id is not None
        assert record.content == "On my way"
        assert record.pending is False

    async def test_send_validation_error(self, direct_channel, alice):
        with pytest.raises(ValidationError) as exc_info:
            await ServiceTransport(alice).send(direct_channel, "")

        assert exc_info.value.error_code == "EMPTY_CONTENT"

    async def test_database_error_on_send_becomes_transport_error(self, direct_channel, alice):
        with patch.object(MessageService, "send_message", side_effect=OperationalError("db gone")):
            with pytest.raises(TransportError):
                await ServiceTransport(alice).send(direct_channel, "hi")

    async def test_database_error_on_fetch_becomes_transport_error(self, direct_channel, alice):
        with patch.object(MessageService, "fetch_page", side_effect=OperationalError("db gone")):
            with pytest.raises(TransportError):
                await ServiceTransport(alice).fetch_page(direct_channel)

    async def test_echo_carries_client_id_of_the_send(self, direct_channel, alice):
        received = asyncio.Queue()
        transport = ServiceTransport(alice)
        subscription = await transport.subscribe(
            direct_channel,
            lambda event_type, event: received.put_nowait(event),
            lambda exc: None,
        )

        record = await transport.send(direct_channel, "hi", client_id="c-42")

        event = await asyncio.wait_for(received.get(), timeout=2)
        assert event["client_id"] == "c-42"
        assert event["message"]["id"] == record.id
        await subscription.close()

    async def test_get_or_create_conversation(self, alice, bob):
        channel = await ServiceTransport(alice).get_or_create_conversation(bob.id)

        assert channel.is_direct
        assert channel == await ServiceTransport(bob).get_or_create_conversation(alice.id)

    async def test_get_or_create_unknown_user(self, alice):
        with pytest.raises(NotFound):
            await ServiceTransport(alice).get_or_create_conversation(999999)

    async def test_mark_read(self, direct_conversation, direct_channel, alice):
        await ServiceTransport(alice).mark_read(direct_channel)

        participant = await database_sync_to_async(Participant.objects.get)(
            conversation=direct_conversation, user=alice
        )
        assert participant.last_read_at is not None

    async def test_subscribe_receives_message_events(self, direct_channel, alice, bob):
        received = asyncio.Queue()
        subscription = await ServiceTransport(alice).subscribe(
            direct_channel,
            lambda event_type, event: received.put_nowait((event_type, event)),
            lambda exc: None,
        )

        await database_sync_to_async(MessageService.send_message)(direct_channel, bob, "hi")

        event_type, event = await asyncio.wait_for(received.get(), timeout=2)
        assert event_type == MESSAGE_NEW
        assert event["message"]["content"] == "hi"
        await subscription.close()

    async def test_subscribe_refused_for_outsider(self, direct_channel, outsider):
        with pytest.raises(AccessDenied):
            await ServiceTransport(outsider).subscribe(direct_channel, None, None)

    async def test_lost_layer_connection_reports_drop(self, direct_channel, alice):
        drops = asyncio.Queue()
        layer = BrokenLayer()

        subscription = await ServiceTransport(alice, channel_layer=layer).subscribe(
            direct_channel, lambda *_: None, drops.put_nowait
        )

        exc = await asyncio.wait_for(drops.get(), timeout=2)
        assert isinstance(exc, TransportError)
        await subscription.close()
        assert layer.discarded == []


class TestSessionOverServiceTransport:
    async def test_two_users_exchange_messages(self, alice, bob):
        """
        Why it matters: This is the whole path a direct chat takes, from
        get-or-create through send, storage, fan-out and the window.
        """
        alice_client = ChatClient(ServiceTransport(alice), alice.id)
        bob_client = ChatClient(ServiceTransport(bob), bob.id)
        alice_session = await alice_client.open_direct(bob.id)
        bob_session = await bob_client.open_direct(alice.id)
        assert alice_session.channel == bob_session.channel

        sent = await alice_session.send("Court 2 at 6?")

        for _ in range(100):
            if bob_session.messages and alice_session.messages:
                break
            await asyncio.sleep(0.01)
        assert [m.id for m in bob_session.messages] == [sent.id]
        assert [m.id for m in alice_session.messages] == [sent.id]

        await alice_session.close()
        await bob_session.close()

    async def test_group_session_for_outsider_of_public_squad(self, public_squad, outsider, alice):
        await database_sync_to_async(MessageService.send_message)(
            ChannelRef.group(public_squad.id), alice, "open play Sunday"
        )
        client = ChatClient(ServiceTransport(outsider), outsider.id)

        session = await client.open_group(public_squad.id)

        assert [m.content for m in session.messages] == ["open play Sunday"]
        with pytest.raises(AccessDenied):
            await session.send("count me in")
        assert [m.content for m in session.messages] == ["open play Sunday"]
        await session.close()
