"""
Backward keyset pagination for message history.

Chat history is read newest-first in pages and displayed oldest-first.
A page is the newest page_size messages strictly older than a cursor,
returned in ascending (created_at, id) order.

Cursor forms:
    before only:          created_at < before
    before and before_id: (created_at, id) < (before, before_id)

The second form never skips messages that share a timestamp with the
page boundary; the first matches what older clients send.

has_more is True exactly when the page came back full. A full page that
happens to reach the very first message therefore reports has_more=True
and the next request returns an empty page with has_more=False.

Usage:
    page = fetch_backward(Message.objects.filter(conversation=conv))
    older = fetch_backward(qs, before=page.items[0].created_at, before_id=page.items[0].id)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db.models import Q

from chat.constants import MESSAGE_CONFIG

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.services import ProfileSummary

T = TypeVar("T")


@dataclass(frozen=True)
class Cursor:
    """Position of the oldest message a client holds."""

    created_at: datetime
    id: int | None = None

    def to_params(self) -> dict[str, str]:
        params = {"before": self.created_at.isoformat()}
        if self.id is not None:
            params["before_id"] = str(self.id)
        return params


@dataclass
class Page(Generic[T]):
    """
    One page of history.

    Attributes:
        items: Messages in ascending (created_at, id) order
        has_more: Whether older messages may exist
        profiles: Sender display data keyed by user id
    """

    items: list[T]
    has_more: bool
    profiles: dict[int, ProfileSummary] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def next_cursor(self) -> Cursor | None:
        """Cursor for the next older page, None once history is exhausted."""
        if not self.items or not self.has_more:
            return None
        oldest = self.items[0]
        return Cursor(created_at=oldest.created_at, id=oldest.id)


def clamp_page_size(page_size: int | None) -> int:
    if page_size is None:
        return MESSAGE_CONFIG.PAGE_SIZE
    return max(1, min(int(page_size), MESSAGE_CONFIG.MAX_PAGE_SIZE))


def fetch_backward(
    queryset: QuerySet,
    before: datetime | None = None,
    before_id: int | None = None,
    page_size: int | None = None,
) -> Page:
    """
    Return the page of queryset ending just before the cursor.

    Args:
        queryset: Messages of a single channel
        before: Exclusive upper bound on created_at; None for the latest page
        before_id: Tiebreaker id for messages sharing the before timestamp
        page_size: Clamped to [1, MESSAGE_CONFIG.MAX_PAGE_SIZE]
    """
    size = clamp_page_size(page_size)

    if before is not None:
        if before_id is not None:
            queryset = queryset.filter(
                Q(created_at__lt=before) | Q(created_at=before, id__lt=before_id)
            )
        else:
            queryset = queryset.filter(created_at__lt=before)

    newest_first = list(queryset.order_by("-created_at", "-id")[:size])
    newest_first.reverse()

    return Page(items=newest_first, has_more=len(newest_first) == size)
