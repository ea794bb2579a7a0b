# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""The privacy gate: ingestion and gated reads.

Write path (Slack ingestion hands over raw text and raw identity):
    sanitize -> derive handle -> record contribution -> evaluate
    -> schedule jittered notification

Read path (admin UI, export, digest all call ``view_unit``):
    load unit -> evaluate -> suppressed: count-level fact only
                          -> visible: noised count + re-sanitized content

Raw text and raw identity only exist in memory for the duration of
``ingest``; neither is stored or logged.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from ..core.config import get_config
from ..core.exceptions import NotFoundError, ValidationException
from .coarsen import prep_quote, round_to_day
from .jitter import JitterScheduler, JitterTask, get_scheduler
from .noise import NoisePolicy, RandomSource
from .orgs import OrgRegistry
from .pseudonym import Pseudonymizer
from .render_state import RenderStateEvaluator, get_evaluator
from .sanitizer import ContentSanitizer, check_submission, get_sanitizer
from .store import InMemoryParticipationStore, ParticipationStore
from .theming import ThemePost, ThemeReport, ThemingEngine
from .types import AggregationUnit, ContentItem, RenderDecision, RenderState, UnitKind

logger = logging.getLogger(__name__)


def suppressed_message(participants_needed: int) -> str:
    """User-facing message for a unit below its k-threshold."""
    noun = "participant" if participants_needed == 1 else "participants"
    return f"Not enough data yet, need {participants_needed} more {noun}"


@dataclass(frozen=True)
class Submission:
    """What ingestion hands back to the caller for persistence."""

    unit_id: str
    handle: str
    text: str
    render_state: RenderState
    became_visible: bool = False
    redactions: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "handle": self.handle,
            "text": self.text,
            "render_state": self.render_state.value,
            "redactions": dict(self.redactions),
        }


@dataclass(frozen=True)
class ViewItem:
    """One contribution as shown on a visible unit."""

    handle: str
    text: str
    day: str | None
    channel: str | None = None
    department: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "handle": self.handle,
            "text": self.text,
            "day": self.day,
            "channel": self.channel,
            "department": self.department,
        }


@dataclass
class UnitView:
    """A gated view of one aggregation unit.

    Suppressed views carry no content, no quotes and no participant count;
    only the fact that data exists below the threshold and how many more
    participants are needed (derived from a noised count). Visible views
    carry a noised participant count and re-sanitized content.
    """

    unit_id: str
    org_id: str
    kind: UnitKind
    render_state: RenderState
    k_threshold: int
    topic: str | None = None
    created_day: str | None = None
    participant_count: int | None = None
    participants_needed: int | None = None
    message: str | None = None
    items: list[ViewItem] = field(default_factory=list)
    exemplar_quotes: list[str] = field(default_factory=list)

    @property
    def is_visible(self) -> bool:
        return self.render_state == RenderState.VISIBLE

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "unit_id": self.unit_id,
            "kind": self.kind.value,
            "render_state": self.render_state.value,
            "k_threshold": self.k_threshold,
            "topic": self.topic,
            "created_day": self.created_day,
        }
        if self.is_visible:
            result["participant_count"] = self.participant_count
            result["items"] = [item.to_dict() for item in self.items]
            result["exemplar_quotes"] = list(self.exemplar_quotes)
        else:
            result["participants_needed"] = self.participants_needed
            result["message"] = self.message
        return result


class PrivacyGate:
    """Ingestion and gated reads for one deployment.

    Args:
        org_registry: Per-org salt and k-threshold
        store: Participation store (defaults to in-memory)
        sanitizer: Content sanitizer (defaults to the shared one)
        evaluator: Render-state evaluator (defaults to the shared one)
        scheduler: Jitter scheduler for notifications
        rng: Random source for count noise; defaults to SystemRandom
    """

    def __init__(
        self,
        org_registry: OrgRegistry,
        store: ParticipationStore | None = None,
        sanitizer: ContentSanitizer | None = None,
        evaluator: RenderStateEvaluator | None = None,
        scheduler: JitterScheduler | None = None,
        rng: RandomSource | None = None,
    ):
        self.orgs = org_registry
        self.store: ParticipationStore = store if store is not None else InMemoryParticipationStore()
        self.sanitizer = sanitizer or get_sanitizer()
        self.evaluator = evaluator or get_evaluator()
        self._scheduler = scheduler
        self.rng = rng
        self.pseudonymizer = Pseudonymizer(org_registry)

    @property
    def scheduler(self) -> JitterScheduler:
        if self._scheduler is None:
            self._scheduler = get_scheduler()
        return self._scheduler

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    def ingest(
        self,
        org_id: str,
        identity: str,
        text: str,
        unit_id: str,
        *,
        kind: UnitKind = UnitKind.THREAD,
        topic: str | None = None,
        channel: str | None = None,
        department: str | None = None,
        notify: JitterTask | None = None,
        on_visible: JitterTask | None = None,
        moment: datetime | None = None,
    ) -> Submission:
        """Accept one contribution to a unit.

        Args:
            org_id: Org the submission belongs to
            identity: Raw submitter identity (dropped after handle derivation)
            text: Raw submitted text (dropped after sanitization)
            unit_id: Thread or comment set being contributed to
            notify: Optional per-submission side effect (receipt DM), run
                after a jittered delay and never awaited
            on_visible: Optional side effect (admin alert, channel ping) run
                the same way, only by the one submission that brings the
                unit to its k-threshold
            moment: Submission time, defaults to now

        Returns:
            Submission with the sanitized text, handle and fresh render state

        Raises:
            NotFoundError: If the org is unknown.
            MissingOrgSaltError: If the org has no salt.
            ValidationException: If a strict org rejects the text.
        """
        settings = self.orgs.get(org_id)
        moment = moment or datetime.now(UTC)

        if settings.strict_submissions:
            check = check_submission(text)
            if not check.is_valid:
                logger.info(
                    "Rejected submission in strict mode",
                    extra={"extra_data": {"org_id": org_id, "reason": check.kind}},
                )
                raise ValidationException(check.message or "Submission rejected", field="text")

        scrubbed = self.sanitizer.scrub(text)
        handle = self.pseudonymizer.handle_for(org_id, identity, moment)

        self.store.create_unit(unit_id, org_id, settings.k_threshold, kind=kind, topic=topic)
        contribution = self.store.record_contribution(
            unit_id,
            ContentItem(
                handle=handle,
                text=scrubbed.text,
                created_at=moment,
                channel=channel,
                department=department,
                topic=topic,
            ),
        )
        decision = self.evaluator.evaluate(contribution.unit)
        became_visible = contribution.crossed_threshold

        if became_visible:
            logger.info(
                "Unit reached k-threshold",
                extra={"extra_data": {"org_id": org_id, "unit_id": unit_id}},
            )
            if on_visible is not None:
                self.scheduler.schedule_with_jitter(on_visible)
        logger.info(
            "Accepted submission",
            extra={
                "extra_data": {
                    "org_id": org_id,
                    "unit_id": unit_id,
                    "render_state": decision.render_state.value,
                    "redaction_count": sum(scrubbed.findings.values()),
                }
            },
        )

        if notify is not None:
            self.scheduler.schedule_with_jitter(notify)

        return Submission(
            unit_id=unit_id,
            handle=handle,
            text=scrubbed.text,
            render_state=decision.render_state,
            became_visible=became_visible,
            redactions=scrubbed.findings,
        )

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    def evaluate(self, unit_id: str, org_id: str | None = None) -> RenderDecision:
        """Evaluate a stored unit fresh."""
        return self.evaluator.evaluate(self._load(unit_id, org_id))

    def view_unit(self, unit_id: str, org_id: str | None = None) -> UnitView:
        """Build the gated view of one unit.

        Every surface (UI, export, digest) goes through here so they all
        apply the same threshold to the same counts.

        Raises:
            NotFoundError: If the unit is unknown or belongs to another org.
        """
        unit = self._load(unit_id, org_id)
        decision = self.evaluator.evaluate(unit)
        participants = NoisePolicy.participants().apply(unit.participant_count, self.rng).value

        view = UnitView(
            unit_id=unit.id,
            org_id=unit.org_id,
            kind=unit.kind,
            render_state=decision.render_state,
            k_threshold=decision.k_threshold,
            topic=unit.topic,
            created_day=round_to_day(unit.created_at),
        )

        if not decision.is_visible:
            # Noised so the exact shortfall cannot be read off
            needed = max(1, decision.k_threshold - participants)
            view.participants_needed = needed
            view.message = suppressed_message(needed)
            return view

        items = [
            ViewItem(
                handle=item.handle,
                text=self.sanitizer.sanitize(item.text),
                day=round_to_day(item.created_at),
                channel=item.channel,
                department=item.department,
            )
            for item in self.store.get_items(unit.id)
        ]
        view.participant_count = participants
        view.items = items
        view.exemplar_quotes = self._exemplar_quotes(items)
        return view

    def view_units(
        self,
        org_id: str,
        unit_ids: list[str] | None = None,
        since: datetime | date | None = None,
    ) -> list[UnitView]:
        """View several units of one org (all of them when unit_ids is None)."""
        if unit_ids is None:
            units = self.store.list_units(org_id)
            if since is not None:
                cutoff = round_to_day(since) or ""
                units = [unit for unit in units if (round_to_day(unit.created_at) or "") >= cutoff]
            unit_ids = [unit.id for unit in units]
        return [self.view_unit(unit_id, org_id) for unit_id in unit_ids]

    def theme_posts(self, org_id: str) -> list[ThemePost]:
        """Collect an org's sanitized posts, tagged with their thread's render state."""
        posts: list[ThemePost] = []
        for unit in self.store.list_units(org_id):
            decision = self.evaluator.evaluate(unit)
            posts.extend(
                ThemePost(
                    text=item.text,
                    handle=item.handle,
                    thread_id=unit.id,
                    thread_state=decision.render_state,
                    channel=item.channel,
                    department=item.department,
                )
                for item in self.store.get_items(unit.id)
            )
        return posts

    def build_themes(self, org_id: str, engine: ThemingEngine | None = None) -> ThemeReport:
        """Cluster an org's posts into gated themes."""
        engine = engine or ThemingEngine(rng=self.rng)
        return engine.cluster(self.theme_posts(org_id), self.k_threshold_for(org_id))

    def distinct_participants(self, org_id: str) -> int:
        """Exact distinct handles org-wide. Internal; never exposed as-is."""
        return self.store.distinct_handles(org_id)

    def k_threshold_for(self, org_id: str) -> int:
        return self.orgs.get(org_id).k_threshold

    def _load(self, unit_id: str, org_id: str | None) -> AggregationUnit:
        unit = self.store.get_unit(unit_id)
        if org_id is not None and unit.org_id != org_id:
            raise NotFoundError("AggregationUnit", unit_id)
        return unit

    @staticmethod
    def _exemplar_quotes(
        items: list[ViewItem],
        limit: int | None = None,
        prepare: Callable[[str], str] = prep_quote,
    ) -> list[str]:
        limit = get_config().max_exemplar_quotes if limit is None else limit
        quotes: list[str] = []
        for item in items:
            quote = prepare(item.text)
            if quote and quote not in quotes:
                quotes.append(quote)
            if len(quotes) >= limit:
                break
        return quotes
