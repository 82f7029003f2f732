"""
Squad membership services.

MembershipService is the only entry point other apps use to learn who
belongs to a squad. The chat access gate calls get_group() and
get_membership(); the mutations below are what the community screens
call, and every mutation that changes a membership row is observed by
chat.signals so connected group chat sessions learn about it.

Error codes:
    SQUAD_NOT_FOUND: Unknown squad id
    NOT_A_MEMBER: Target user has no membership row
    ALREADY_MEMBER: Join attempted twice
    NOT_ALLOWED: Caller lacks the role for this action
    INVALID_ROLE: Role value is not one of admin/moderator/member
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult
from squads.models import MemberRole, MemberStatus, Squad, SquadMember

if TYPE_CHECKING:
    from authentication.models import User

STATUS_NONE = "none"
ROLE_NONE = "none"

MANAGER_ROLES = frozenset({MemberRole.ADMIN, MemberRole.MODERATOR})


@dataclass(frozen=True)
class Membership:
    """A user's standing in a squad; "none"/"none" when there is no row."""

    status: str = STATUS_NONE
    role: str = ROLE_NONE

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    @property
    def is_pending(self) -> bool:
        return self.status == MemberStatus.PENDING


NO_MEMBERSHIP = Membership()


@dataclass(frozen=True)
class GroupInfo:
    """The squad attributes the chat access gate needs."""

    id: int
    is_public: bool
    created_by_id: int


class MembershipService(BaseService):
    """Membership reads for the chat core and membership mutations."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @classmethod
    def get_group(cls, group_id: int) -> GroupInfo | None:
        squad = (
            Squad.objects.filter(id=group_id)
            .only("id", "privacy", "created_by_id")
            .first()
        )
        if squad is None:
            return None
        return GroupInfo(
            id=squad.id,
            is_public=squad.is_public,
            created_by_id=squad.created_by_id,
        )

    @classmethod
    def get_membership(cls, group_id: int, user_id: int) -> Membership:
        """
        Look up a user's membership.

        Returns:
            Membership with status active|pending|none and
            role admin|moderator|member|none.
        """
        row = (
            SquadMember.objects.filter(squad_id=group_id, user_id=user_id)
            .values("status", "role")
            .first()
        )
        if row is None:
            return NO_MEMBERSHIP
        return Membership(status=row["status"], role=row["role"])

    @classmethod
    def _can_manage(cls, squad: Squad, user: User) -> bool:
        if squad.created_by_id == user.id:
            return True
        membership = cls.get_membership(squad.id, user.id)
        return membership.is_active and membership.role in MANAGER_ROLES

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @classmethod
    def join(cls, squad: Squad, user: User) -> ServiceResult[SquadMember]:
        """
        Join a squad.

        Public squads activate the membership right away; private squads
        create a pending request.
        """
        if SquadMember.objects.filter(squad=squad, user=user).exists():
            return ServiceResult.failure("Already a member of this squad", "ALREADY_MEMBER")

        status = MemberStatus.ACTIVE if squad.is_public else MemberStatus.PENDING
        member = SquadMember.objects.create(squad=squad, user=user, status=status)

        cls.get_logger().info(f"User {user.id} joined squad {squad.id} as {status}")
        return ServiceResult.success(member)

    @classmethod
    def approve(cls, squad: Squad, user: User, approved_by: User) -> ServiceResult[SquadMember]:
        """Activate a pending member. Caller must be creator, admin or moderator."""
        if not cls._can_manage(squad, approved_by):
            return ServiceResult.failure("Only squad managers can approve members", "NOT_ALLOWED")

        member = SquadMember.objects.filter(squad=squad, user=user).first()
        if member is None:
            return ServiceResult.failure("User has not requested to join", "NOT_A_MEMBER")

        if member.status != MemberStatus.ACTIVE:
            member.status = MemberStatus.ACTIVE
            member.save(update_fields=["status", "updated_at"])
            cls.get_logger().info(
                f"User {user.id} approved in squad {squad.id} by {approved_by.id}"
            )

        return ServiceResult.success(member)

    @classmethod
    def set_role(
        cls, squad: Squad, user: User, role: str, changed_by: User
    ) -> ServiceResult[SquadMember]:
        """Change a member's role. Only the creator or an admin may do this."""
        if role not in MemberRole.values:
            return ServiceResult.failure(f"Unknown role: {role}", "INVALID_ROLE")

        caller = cls.get_membership(squad.id, changed_by.id)
        is_admin = caller.is_active and caller.role == MemberRole.ADMIN
        if squad.created_by_id != changed_by.id and not is_admin:
            return ServiceResult.failure("Only admins can change roles", "NOT_ALLOWED")

        member = SquadMember.objects.filter(squad=squad, user=user).first()
        if member is None:
            return ServiceResult.failure("User is not a member", "NOT_A_MEMBER")

        member.role = role
        member.save(update_fields=["role", "updated_at"])
        return ServiceResult.success(member)

    @classmethod
    def remove_member(cls, squad: Squad, user: User, removed_by: User) -> ServiceResult[None]:
        """
        Remove a member (or reject a pending request).

        Members may always remove themselves; removing someone else needs
        a manager role.
        """
        if removed_by.id != user.id and not cls._can_manage(squad, removed_by):
            return ServiceResult.failure("Only squad managers can remove members", "NOT_ALLOWED")

        deleted, _ = SquadMember.objects.filter(squad=squad, user=user).delete()
        if not deleted:
            return ServiceResult.failure("User is not a member", "NOT_A_MEMBER")

        cls.get_logger().info(
            f"User {user.id} removed from squad {squad.id} by {removed_by.id}"
        )
        return ServiceResult.success(None)

    @classmethod
    def leave(cls, squad: Squad, user: User) -> ServiceResult[None]:
        return cls.remove_member(squad, user, removed_by=user)
