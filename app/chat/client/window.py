"""
In-memory message window for one open channel.

The window is a sorted set keyed by (created_at, id). History pages,
live deliveries and send confirmations are all merged into it by key,
never by arrival order, so an older page that lands after a live insert
still ends up in the right place and nothing is listed twice.

Provisional entries (optimistic sends without a server id yet) are kept
apart, keyed by their client id, and always listed after the confirmed
messages.

Usage:
    window = MessageWindow()
    window.merge(page.items)
    window.add_pending(MessageRecord.provisional(channel, user_id, "On my way"))
    window.confirm(client_id, server_record)
"""

from __future__ import annotations

import bisect
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from django.utils import timezone
from django.utils.dateparse import parse_datetime

if TYPE_CHECKING:
    from collections.abc import Iterable

    from chat.channel_ref import ChannelRef


def _as_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"Invalid timestamp: {value!r}")
    return parsed


@dataclass
class MessageRecord:
    """
    Client-side copy of a message.

    Built from the wire record the REST API, WebSocket events and
    ServiceTransport all share. Provisional records have id=None,
    a client_id and pending=True.
    """

    id: int | None
    channel_id: str
    sender_id: int | None
    content: str
    created_at: datetime
    image_url: str | None = None
    is_edited: bool = False
    edited_at: datetime | None = None
    is_deleted: bool = False
    sender: dict | None = None
    client_id: str | None = None
    pending: bool = False

    @classmethod
    def from_wire(cls, data: dict, client_id: str | None = None) -> MessageRecord:
        return cls(
            id=data["id"],
            channel_id=data["channel_id"],
            sender_id=data.get("sender_id"),
            content=data.get("content", ""),
            created_at=_as_datetime(data["created_at"]),
            image_url=data.get("image_url"),
            is_edited=data.get("is_edited", False),
            edited_at=_as_datetime(data.get("edited_at")),
            is_deleted=data.get("is_deleted", False),
            sender=data.get("sender"),
            client_id=client_id,
        )

    @classmethod
    def provisional(
        cls,
        channel: ChannelRef,
        sender_id: int,
        content: str,
        image_url: str | None = None,
    ) -> MessageRecord:
        return cls(
            id=None,
            channel_id=str(channel),
            sender_id=sender_id,
            content=content,
            created_at=timezone.now(),
            image_url=image_url or None,
            client_id=uuid.uuid4().hex,
            pending=True,
        )

    @property
    def key(self) -> tuple[datetime, int]:
        return (self.created_at, self.id)


@dataclass
class MessageWindow:
    """
    Sorted, deduplicated view of a channel's messages.

    Attributes:
        messages: Confirmed messages ascending by (created_at, id),
                  followed by pending entries in the order they were added
    """

    _by_id: dict[int, MessageRecord] = field(default_factory=dict)
    _keys: list[tuple[datetime, int]] = field(default_factory=list)
    _pending: dict[str, MessageRecord] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self._by_id) + len(self._pending)

    def __contains__(self, message_id: int) -> bool:
        return message_id in self._by_id

    @property
    def messages(self) -> list[MessageRecord]:
        return self.confirmed + self.pending

    @property
    def confirmed(self) -> list[MessageRecord]:
        return [self._by_id[message_id] for _, message_id in self._keys]

    @property
    def pending(self) -> list[MessageRecord]:
        return list(self._pending.values())

    @property
    def oldest(self) -> MessageRecord | None:
        """Oldest confirmed message; its key is the cursor for load_earlier."""
        if not self._keys:
            return None
        return self._by_id[self._keys[0][1]]

    @property
    def newest(self) -> MessageRecord | None:
        if not self._keys:
            return None
        return self._by_id[self._keys[-1][1]]

    def merge(self, records: Iterable[MessageRecord]) -> list[MessageRecord]:
        """
        Union records into the window.

        Records whose id is already present replace the stored copy
        (edits and deletions keep their slot) but are not reported as new.
        A record carrying the client_id of a pending entry replaces it.

        Returns:
            The records that were not in the window before, ascending
        """
        added = []
        for record in records:
            if record.id is None:
                raise ValueError("Only server records can be merged; use add_pending()")
            if record.client_id:
                self._pending.pop(record.client_id, None)

            if record.id in self._by_id:
                self._by_id[record.id] = record
                continue

            self._by_id[record.id] = record
            bisect.insort(self._keys, record.key)
            added.append(record)

        added.sort(key=lambda r: r.key)
        return added

    def update(self, record: MessageRecord) -> bool:
        """Replace a stored message in place; unknown ids are ignored."""
        if record.id not in self._by_id:
            return False
        self._by_id[record.id] = record
        return True

    def add_pending(self, record: MessageRecord) -> None:
        if not record.client_id:
            raise ValueError("Provisional records need a client_id")
        self._pending[record.client_id] = record

    def confirm(self, client_id: str, record: MessageRecord) -> bool:
        """
        Swap a provisional entry for the stored record.

        If the live echo already delivered the record, only the provisional
        entry is dropped. Returns True when the record was newly added.
        """
        self._pending.pop(client_id, None)
        return bool(self.merge([record]))

    def discard_pending(self, client_id: str) -> MessageRecord | None:
        return self._pending.pop(client_id, None)

    def clear(self) -> None:
        self._by_id.clear()
        self._keys.clear()
        self._pending.clear()
