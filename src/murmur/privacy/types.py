"""Privacy types for the Murmur gate.

Aggregation units are the things whose visibility is gated: a feedback
thread, the comment set under it, or a theme. Their render state is never
stored; it is derived from the participant count and the k-threshold each
time it is read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from ..core.config import DEFAULT_K_THRESHOLD, MIN_K_THRESHOLD
from ..core.exceptions import InvalidThresholdError, ValidationException


class RenderState(StrEnum):
    """Whether an aggregation unit's content may be shown."""

    SUPPRESSED = "suppressed"  # Below k: count-level fact only
    VISIBLE = "visible"  # At or above k: content and quotes may be shown


class UnitKind(StrEnum):
    """Kinds of aggregation unit."""

    THREAD = "thread"
    COMMENT_SET = "comment_set"
    THEME = "theme"


def validate_k_threshold(k_threshold: Any) -> int:
    """Return k_threshold if it is a usable integer, else fail closed."""
    if isinstance(k_threshold, bool) or not isinstance(k_threshold, int):
        raise InvalidThresholdError(k_threshold, MIN_K_THRESHOLD)
    if k_threshold < MIN_K_THRESHOLD:
        raise InvalidThresholdError(k_threshold, MIN_K_THRESHOLD)
    return k_threshold


@dataclass
class ContentItem:
    """A sanitized, pseudonymized contribution to a unit.

    ``text`` has already been through the sanitizer; the raw text is never
    stored. ``handle`` is the rotating pseudonym of the contributor.
    """

    handle: str
    text: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    channel: str | None = None
    department: str | None = None
    topic: str | None = None


@dataclass
class AggregationUnit:
    """A thread, comment set or theme whose visibility is gated.

    ``participant_count`` counts distinct pseudonymous handles and can only
    grow. ``render_state`` is a property so it can never go stale.
    """

    id: str
    org_id: str
    kind: UnitKind = UnitKind.THREAD
    participant_count: int = 0
    k_threshold: int = DEFAULT_K_THRESHOLD
    topic: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        validate_k_threshold(self.k_threshold)
        if self.participant_count < 0:
            raise ValidationException(
                "participant_count cannot be negative",
                field="participant_count",
                value=self.participant_count,
            )

    @property
    def render_state(self) -> RenderState:
        """Derived render state. Recomputed on every access."""
        from .render_state import evaluate_render_state

        return evaluate_render_state(self.participant_count, self.k_threshold)

    def with_participant_count(self, participant_count: int) -> AggregationUnit:
        """Return a copy with a new participant count.

        Raises:
            ValidationException: If the count would decrease.
        """
        if participant_count < self.participant_count:
            raise ValidationException(
                "participant_count is monotonic and cannot decrease",
                field="participant_count",
                value=participant_count,
            )
        return AggregationUnit(
            id=self.id,
            org_id=self.org_id,
            kind=self.kind,
            participant_count=participant_count,
            k_threshold=self.k_threshold,
            topic=self.topic,
            created_at=self.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for internal storage. Not a public view."""
        return {
            "id": self.id,
            "org_id": self.org_id,
            "kind": self.kind.value,
            "participant_count": self.participant_count,
            "k_threshold": self.k_threshold,
            "topic": self.topic,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class RenderDecision:
    """Result of evaluating one aggregation unit."""

    render_state: RenderState
    participant_count: int
    k_threshold: int

    @property
    def is_visible(self) -> bool:
        return self.render_state == RenderState.VISIBLE

    @property
    def participants_needed(self) -> int:
        """Distinct participants still missing before the unit turns visible."""
        return max(0, self.k_threshold - self.participant_count)
