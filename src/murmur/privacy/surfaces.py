# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Read surfaces: admin UI payload, CSV/JSON export and weekly digest.

All three read every unit through ``PrivacyGate.view_unit``; none of them
looks at the store directly. That makes it impossible for one surface to
apply a different threshold (or skip the threshold) for the same counts.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from ..core.exceptions import ValidationException
from .types import RenderState

if TYPE_CHECKING:
    from .gate import PrivacyGate, UnitView

logger = logging.getLogger(__name__)

DIGEST_THREADS_PER_TOPIC = 5
DEFAULT_TOPIC_NAME = "General"


def k_safety_banner(k_threshold: int) -> dict[str, Any]:
    """Banner shown by the admin UI for a suppressed unit or filter."""
    return {
        "variant": "warning",
        "k_threshold": k_threshold,
        "message": (
            "Not enough data to protect anonymity (k-threshold not met). "
            "Try a broader filter or wait for more participants "
            f"(minimum {k_threshold} required)."
        ),
    }


# =============================================================================
# ADMIN UI
# =============================================================================


def build_ui_payload(gate: PrivacyGate, unit_id: str, org_id: str | None = None) -> dict[str, Any]:
    """Build the admin UI payload for one unit.

    Suppressed units get a ``k_safety_banner`` and no content.
    """
    view = gate.view_unit(unit_id, org_id)
    payload = view.to_dict()
    payload["k_safety_banner"] = None if view.is_visible else k_safety_banner(view.k_threshold)
    return payload


# =============================================================================
# EXPORT
# =============================================================================


class ExportFormat(StrEnum):
    """Supported export formats."""

    CSV = "csv"
    JSON = "json"


EXPORT_FIELDS = [
    "unit_id",
    "kind",
    "topic",
    "render_state",
    "participant_count",
    "day",
    "handle",
    "channel",
    "department",
    "text",
    "message",
]


@dataclass
class Export:
    """A privacy-preserving export.

    One row per contribution for visible units; one content-free row per
    suppressed unit. Handles are pseudonyms and days are rounded.
    """

    format: ExportFormat
    rows: list[dict[str, Any]] = field(default_factory=list)
    render_states: dict[str, RenderState] = field(default_factory=dict)

    @property
    def content(self) -> str:
        """Serialized export in its format."""
        if self.format == ExportFormat.JSON:
            return self.to_json()
        return self.to_csv()

    @property
    def media_type(self) -> str:
        return "application/json" if self.format == ExportFormat.JSON else "text/csv"

    def to_json(self, indent: int = 2) -> str:
        return json.dumps({"rows": self.rows}, indent=indent)

    def to_csv(self) -> str:
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=EXPORT_FIELDS)
        writer.writeheader()
        for row in self.rows:
            writer.writerow({key: "" if value is None else value for key, value in row.items()})
        return output.getvalue()


def _export_rows(view: UnitView) -> list[dict[str, Any]]:
    base = {
        "unit_id": view.unit_id,
        "kind": view.kind.value,
        "topic": view.topic,
        "render_state": view.render_state.value,
    }
    if not view.is_visible:
        return [
            {
                **base,
                "participant_count": None,
                "day": view.created_day,
                "handle": None,
                "channel": None,
                "department": None,
                "text": None,
                "message": view.message,
            }
        ]
    return [
        {
            **base,
            "participant_count": view.participant_count,
            "day": item.day,
            "handle": item.handle,
            "channel": item.channel,
            "department": item.department,
            "text": item.text,
            "message": None,
        }
        for item in view.items
    ]


def build_export(
    gate: PrivacyGate,
    org_id: str,
    unit_ids: Iterable[str] | None = None,
    fmt: ExportFormat | str = ExportFormat.CSV,
) -> Export:
    """Export an org's units as CSV or JSON rows.

    Raises:
        ValidationException: If fmt is not a supported format.
    """
    try:
        export_format = ExportFormat(fmt)
    except ValueError:
        raise ValidationException(f"Unsupported export format: {fmt}", field="format", value=fmt) from None

    export = Export(format=export_format)
    for view in gate.view_units(org_id, list(unit_ids) if unit_ids is not None else None):
        export.render_states[view.unit_id] = view.render_state
        export.rows.extend(_export_rows(view))

    logger.info(
        "Built export",
        extra={
            "extra_data": {
                "org_id": org_id,
                "format": export_format.value,
                "units": len(export.render_states),
                "rows": len(export.rows),
            }
        },
    )
    return export


# =============================================================================
# DIGEST
# =============================================================================


@dataclass(frozen=True)
class DigestThread:
    unit_id: str
    participant_count: int
    day: str | None
    exemplar_quotes: tuple[str, ...] = ()


@dataclass
class DigestTopic:
    name: str
    threads: list[DigestThread] = field(default_factory=list)

    @property
    def shown(self) -> list[DigestThread]:
        return self.threads[:DIGEST_THREADS_PER_TOPIC]

    @property
    def hidden(self) -> int:
        return max(0, len(self.threads) - DIGEST_THREADS_PER_TOPIC)


@dataclass
class Digest:
    """Weekly digest of units that met their k-threshold.

    Suppressed units are counted but never described.
    """

    org_id: str
    topics: list[DigestTopic] = field(default_factory=list)
    render_states: dict[str, RenderState] = field(default_factory=dict)

    @property
    def total_threads(self) -> int:
        return sum(len(topic.threads) for topic in self.topics)

    @property
    def suppressed_count(self) -> int:
        return sum(1 for state in self.render_states.values() if state == RenderState.SUPPRESSED)

    @property
    def is_empty(self) -> bool:
        return self.total_threads == 0

    def render_text(self, org_name: str = "your team") -> str:
        """Render the digest as Slack mrkdwn text."""
        lines = [
            f"*Weekly Feedback Digest for {org_name}*",
            "",
            f"{self.total_threads} feedback threads met privacy thresholds this week.",
        ]
        for topic in self.topics:
            lines.append("")
            lines.append(f"*{topic.name}* ({len(topic.threads)} threads)")
            for thread in topic.shown:
                lines.append(
                    f"• Thread #{thread.unit_id[:8]}... "
                    f"_({thread.participant_count} participants, {thread.day})_"
                )
                lines.extend(f"  > {quote}" for quote in thread.exemplar_quotes)
            if topic.hidden:
                lines.append(f"_...and {topic.hidden} more threads_")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """JSON form, capped per topic like the text form."""
        return {
            "org_id": self.org_id,
            "total_threads": self.total_threads,
            "suppressed_count": self.suppressed_count,
            "topics": [
                {
                    "name": topic.name,
                    "thread_count": len(topic.threads),
                    "hidden": topic.hidden,
                    "threads": [
                        {
                            "unit_id": thread.unit_id,
                            "participant_count": thread.participant_count,
                            "day": thread.day,
                            "exemplar_quotes": list(thread.exemplar_quotes),
                        }
                        for thread in topic.shown
                    ],
                }
                for topic in self.topics
            ],
        }


def build_digest(
    gate: PrivacyGate,
    org_id: str,
    unit_ids: Iterable[str] | None = None,
    since: datetime | date | None = None,
) -> Digest:
    """Build the digest for an org, grouping visible threads by topic."""
    digest = Digest(org_id=org_id)
    topics: dict[str, DigestTopic] = {}
    views = gate.view_units(org_id, list(unit_ids) if unit_ids is not None else None, since=since)
    for view in views:
        digest.render_states[view.unit_id] = view.render_state
        if not view.is_visible:
            continue
        name = view.topic or DEFAULT_TOPIC_NAME
        topic = topics.setdefault(name, DigestTopic(name=name))
        topic.threads.append(
            DigestThread(
                unit_id=view.unit_id,
                participant_count=view.participant_count or 0,
                day=view.created_day,
                exemplar_quotes=tuple(view.exemplar_quotes),
            )
        )
    digest.topics = list(topics.values())

    logger.info(
        "Built digest",
        extra={
            "extra_data": {
                "org_id": org_id,
                "threads": digest.total_threads,
                "suppressed": digest.suppressed_count,
            }
        },
    )
    return digest
