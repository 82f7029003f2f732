"""
Test configuration and fixtures for chat tests.

This module provides:
- User fixtures for the two sides of a direct conversation and an outsider
- Direct conversation and squad fixtures (public and private)
- API client helpers for authenticated requests

Usage:
    def test_example(direct_conversation, alice_client):
        response = alice_client.get(f"/api/v1/chat/conversations/{direct_conversation.id}/")
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from authentication.tests.factories import UserFactory
from chat.channel_ref import ChannelRef
from chat.tests.factories import DirectConversationFactory
from squads.models import MemberStatus, SquadPrivacy
from squads.tests.factories import SquadFactory, SquadMemberFactory

# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def alice(db):
    return UserFactory(profile__first_name="Alice", profile__last_name="Ng")


@pytest.fixture
def bob(db):
    return UserFactory(profile__first_name="Bob", profile__last_name="Ruiz")


@pytest.fixture
def outsider(db):
    """A user with no conversations and no squad memberships."""
    return UserFactory(profile__username="outsider")


# =============================================================================
# Channel Fixtures
# =============================================================================


@pytest.fixture
def direct_conversation(db, alice, bob):
    return DirectConversationFactory(users=(alice, bob))


@pytest.fixture
def direct_channel(direct_conversation):
    return ChannelRef.direct(direct_conversation.id)


@pytest.fixture
def public_squad(db, alice):
    """Public squad created by alice; nobody else is a member yet."""
    return SquadFactory(privacy=SquadPrivacy.PUBLIC, created_by=alice)


@pytest.fixture
def private_squad(db, alice):
    return SquadFactory(privacy=SquadPrivacy.PRIVATE, created_by=alice)


@pytest.fixture
def active_member(db, private_squad):
    member = SquadMemberFactory(squad=private_squad, status=MemberStatus.ACTIVE)
    return member.user


@pytest.fixture
def pending_member(db, private_squad):
    member = SquadMemberFactory(squad=private_squad, status=MemberStatus.PENDING)
    return member.user


# =============================================================================
# API Client Fixtures
# =============================================================================


def jwt_for(user) -> str:
    return str(AccessToken.for_user(user))


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def client_for():
    """
    Factory fixture returning an APIClient authenticated as the given user.

    Usage:
        def test_x(client_for, alice):
            client = client_for(alice)
    """

    def _client_for(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {jwt_for(user)}")
        return client

    return _client_for


@pytest.fixture
def alice_client(client_for, alice):
    return client_for(alice)


@pytest.fixture
def bob_client(client_for, bob):
    return client_for(bob)


@pytest.fixture
def outsider_client(client_for, outsider):
    return client_for(outsider)
