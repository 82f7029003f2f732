"""
Profile lookup for other apps.

The chat core renders sender names and avatars for whole pages of
messages at a time. ProfileService.get_profiles resolves any number of
user ids with a single query so callers never issue one lookup per
message.

Related files:
    - models.py: Profile
    - chat/services.py: page and conversation-list enrichment
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from core.services import BaseService

UNKNOWN_NAME = "Unknown"


@dataclass(frozen=True)
class ProfileSummary:
    """Display data for one user as shown next to a message."""

    id: int
    name: str
    avatar: str | None = None

    @classmethod
    def unknown(cls, user_id: int) -> ProfileSummary:
        return cls(id=user_id, name=UNKNOWN_NAME, avatar=None)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "avatar": self.avatar}


class ProfileService(BaseService):
    """Read-only access to user display data."""

    @classmethod
    def get_profiles(cls, user_ids: Iterable[int]) -> dict[int, ProfileSummary]:
        """
        Resolve display data for a batch of users in one query.

        Args:
            user_ids: Any iterable of user ids; duplicates are fine

        Returns:
            Mapping of every requested id to a ProfileSummary. Ids with no
            profile row map to a placeholder named "Unknown".
        """
        from authentication.models import Profile

        ids = {int(user_id) for user_id in user_ids}
        if not ids:
            return {}

        summaries = {
            profile.user_id: ProfileSummary(
                id=profile.user_id,
                name=profile.display_name,
                avatar=profile.avatar_url or None,
            )
            for profile in Profile.objects.filter(user_id__in=ids)
        }

        missing = ids - summaries.keys()
        if missing:
            cls.get_logger().debug(f"No profile for users {sorted(missing)}")
        for user_id in missing:
            summaries[user_id] = ProfileSummary.unknown(user_id)

        return summaries
