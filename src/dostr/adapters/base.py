"""
Source adapter contract shared by every upstream variant.

A [SourceAdapter][dostr.adapters.base.SourceAdapter] knows how to talk to one
kind of upstream (chat channel, syndication feed). The bridge chooses the
adapter once per source from its [SourceKind][dostr.models.constants.SourceKind]
and never branches on the id's shape again.

Contract for [fetch_new_items()][dostr.adapters.base.SourceAdapter.fetch_new_items]:

* only items whose timestamp lies in ``[since, until)`` are returned;
* zero new items is an empty list, not an error;
* network and parse failures raise
  [FetchError][dostr.core.exceptions.FetchError], never a partial result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from dostr.models.item import PollWindow


if TYPE_CHECKING:
    from dostr.models.constants import SourceKind
    from dostr.models.item import ContentItem
    from dostr.models.source import FollowedSource


@dataclass(frozen=True, slots=True)
class SourceMetadata:
    """Profile data describing a followed source.

    Attributes:
        display_name: Name shown in the source's profile.
        about: Short description.
        picture: Avatar URL, or an empty string.
        website: Link to the upstream page, or an empty string.
    """

    display_name: str
    about: str = ""
    picture: str = ""
    website: str = ""


def filter_window(items: Iterable[ContentItem], since: int, until: int) -> list[ContentItem]:
    """Keep the items whose timestamp lies in ``[since, until)``, preserving order."""
    window = PollWindow(since, until)
    return [item for item in items if window.contains(item.timestamp)]


class SourceAdapter(ABC):
    """Polymorphic capability that polls one kind of upstream source."""

    kind: ClassVar[SourceKind]

    @abstractmethod
    async def fetch_new_items(
        self,
        source: FollowedSource,
        since: int,
        until: int,
    ) -> list[ContentItem]:
        """Return the items published in ``[since, until)``, in upstream order.

        Raises:
            FetchError: On network or parse failure.
        """

    @abstractmethod
    async def metadata(self, source: FollowedSource) -> SourceMetadata:
        """Return profile data for *source*.

        Raises:
            FetchError: On network or parse failure.
        """

    @abstractmethod
    async def exists(self, source_id: str) -> bool:
        """Whether *source_id* names a reachable upstream source.

        Raises:
            FetchError: If existence cannot be determined (network failure).
        """

    async def resolve_display_name(self, source_id: str) -> str:
        """Display name to store in the registry for a newly added source.

        Defaults to the id; adapters that can look up a better name override it.
        """
        return source_id


AdapterMap = Mapping["SourceKind", SourceAdapter]
