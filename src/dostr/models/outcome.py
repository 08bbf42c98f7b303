"""Per-cycle poll outcome consumed by the health monitor."""

from __future__ import annotations

from dataclasses import dataclass

from ._validation import validate_instance, validate_str_not_empty
from .constants import FetchStatus


@dataclass(frozen=True, slots=True)
class OutcomeRecord:
    """Result of one polling cycle for one source.

    Produced once per cycle by a polling worker, put on the health monitor's
    queue, and discarded after the monitor has processed it.

    Attributes:
        source_id: Id of the source that was polled.
        status: [FetchStatus][dostr.models.constants.FetchStatus] of the fetch.
        observed_at: Wall-clock time (Unix seconds) when the fetch finished.
    """

    source_id: str
    status: FetchStatus
    observed_at: float

    def __post_init__(self) -> None:
        validate_str_not_empty(self.source_id, "source_id")
        validate_instance(self.status, FetchStatus, "status")
        if isinstance(self.observed_at, bool) or not isinstance(self.observed_at, (int, float)):
            raise TypeError(
                f"observed_at must be a number, got {type(self.observed_at).__name__}"
            )

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.SUCCESS
