"""
Channel references.

A channel is either a direct conversation or a squad's group channel. The
two kinds share one message table and one wire format; ChannelRef is the
value that names one of them everywhere (services, consumers, client).

String form: "direct:<id>" or "group:<id>", used as channel_id on the wire.
Channel layer group form: "chat.direct.<id>" or "chat.group.<id>".
"""

from __future__ import annotations

from dataclasses import dataclass

from django.db import models

from chat.constants import REALTIME_CONFIG


class ChannelKind(models.TextChoices):
    DIRECT = "direct", "Direct"
    GROUP = "group", "Group"


@dataclass(frozen=True)
class ChannelRef:
    """Identifies a direct conversation or a group channel."""

    kind: ChannelKind
    id: int

    def __post_init__(self):
        # Normalize so ChannelRef("direct", "3") == ChannelRef.direct(3)
        object.__setattr__(self, "kind", ChannelKind(self.kind))
        object.__setattr__(self, "id", int(self.id))

    @classmethod
    def direct(cls, conversation_id: int) -> ChannelRef:
        return cls(ChannelKind.DIRECT, conversation_id)

    @classmethod
    def group(cls, group_id: int) -> ChannelRef:
        return cls(ChannelKind.GROUP, group_id)

    @classmethod
    def parse(cls, value: str) -> ChannelRef:
        """
        Parse the wire form "direct:12" / "group:7".

        Raises:
            ValueError: On an unknown kind or a non-numeric id
        """
        kind, sep, raw_id = value.partition(":")
        if not sep:
            raise ValueError(f"Invalid channel id: {value!r}")
        return cls(ChannelKind(kind), int(raw_id))

    @property
    def is_direct(self) -> bool:
        return self.kind == ChannelKind.DIRECT

    @property
    def is_group(self) -> bool:
        return self.kind == ChannelKind.GROUP

    @property
    def group_name(self) -> str:
        """Channel layer group that carries this channel's events."""
        return f"{REALTIME_CONFIG.GROUP_PREFIX}.{self.kind.value}.{self.id}"

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


def inbox_group_name(user_id: int) -> str:
    """Channel layer group for a user's conversation-list updates."""
    return f"{REALTIME_CONFIG.INBOX_GROUP_PREFIX}.{user_id}"
