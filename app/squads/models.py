"""
Squad (community group) models.

Models:
    Squad: A group with a public/private setting and a creator
    SquadMember: A user's membership in a squad, with status and role

Each squad has exactly one group chat channel whose id is the squad id.
The chat app reads membership through squads.services.MembershipService.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel


class SquadPrivacy(models.TextChoices):
    """
    PUBLIC: Anyone can read the group channel; joining is immediate
    PRIVATE: Only members read; join requests wait for approval
    """

    PUBLIC = "public", "Public"
    PRIVATE = "private", "Private"


class MemberStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    PENDING = "pending", "Pending"


class MemberRole(models.TextChoices):
    """
    ADMIN: Manages members and roles
    MODERATOR: Approves and removes members
    MEMBER: Regular participant
    """

    ADMIN = "admin", "Admin"
    MODERATOR = "moderator", "Moderator"
    MEMBER = "member", "Member"


class Squad(BaseModel):
    """
    A community group.

    Fields:
        name: Display name
        description: Optional blurb
        privacy: PUBLIC or PRIVATE
        created_by: Creator; always has full access to the group channel
    """

    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    privacy = models.CharField(
        max_length=10,
        choices=SquadPrivacy.choices,
        default=SquadPrivacy.PUBLIC,
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="created_squads",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.name

    @property
    def is_public(self) -> bool:
        return self.privacy == SquadPrivacy.PUBLIC


class SquadMember(BaseModel):
    """
    Membership of one user in one squad.

    Leaving or being removed deletes the row; a missing row means the
    user has no membership (status "none").
    """

    squad = models.ForeignKey(
        Squad,
        on_delete=models.CASCADE,
        related_name="members",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="squad_memberships",
    )
    status = models.CharField(
        max_length=10,
        choices=MemberStatus.choices,
        default=MemberStatus.PENDING,
    )
    role = models.CharField(
        max_length=10,
        choices=MemberRole.choices,
        default=MemberRole.MEMBER,
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["squad", "user"],
                name="unique_squad_member",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "status"], name="squad_member_user_status_idx"),
        ]

    def __str__(self):
        return f"SquadMember(squad={self.squad_id}, user={self.user_id}, {self.status})"
