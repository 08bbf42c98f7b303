"""
Content items and the half-open poll window that selects them.

[PollWindow][dostr.models.item.PollWindow] is the only piece of state a
polling worker carries between cycles. Its ``until`` becomes the next
window's ``since``, so consecutive windows tile the timeline without gaps
or overlap as long as adapters honor the ``[since, until)`` boundary via
[PollWindow.contains()][dostr.models.item.PollWindow.contains].
"""

from __future__ import annotations

from dataclasses import dataclass

from ._validation import validate_str_no_null, validate_timestamp


@dataclass(frozen=True, slots=True)
class ContentItem:
    """One unit of content produced by a source adapter.

    Attributes:
        timestamp: Unix timestamp (seconds) when the item was published
            upstream. Used only for window filtering; events are stamped
            with the delivery time instead.
        body: Text of the item.
        link: Optional permalink to the original item.
    """

    timestamp: int
    body: str
    link: str | None = None

    def __post_init__(self) -> None:
        validate_timestamp(self.timestamp, "timestamp")
        validate_str_no_null(self.body, "body")
        if self.link is not None:
            validate_str_no_null(self.link, "link")


@dataclass(frozen=True, slots=True)
class PollWindow:
    """Half-open time interval ``[since, until)`` requested in one poll.

    Attributes:
        since: Inclusive lower bound (Unix seconds).
        until: Exclusive upper bound (Unix seconds).

    Raises:
        ValueError: If ``until`` precedes ``since``.

    Examples:
        ```python
        window = PollWindow(since=100, until=200)
        window.contains(100)  # True
        window.contains(200)  # False -- belongs to the next window
        window.advance(300)   # PollWindow(since=200, until=300)
        ```
    """

    since: int
    until: int

    def __post_init__(self) -> None:
        validate_timestamp(self.since, "since")
        validate_timestamp(self.until, "until")
        if self.until < self.since:
            raise ValueError(f"until ({self.until}) precedes since ({self.since})")

    def contains(self, timestamp: int) -> bool:
        """Whether *timestamp* falls inside ``[since, until)``."""
        return self.since <= timestamp < self.until

    def advance(self, now: int) -> PollWindow:
        """Return the window that immediately follows this one.

        The new window starts at this window's ``until``. A wall clock that
        stepped backwards yields an empty window rather than a regressing
        ``since``.
        """
        return PollWindow(since=self.until, until=max(now, self.until))
