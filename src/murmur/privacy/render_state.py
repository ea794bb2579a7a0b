# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Render-state evaluator: the k-anonymity gate.

Every read path (admin UI query, CSV/JSON export, digest build) asks this
module whether a unit's content may be shown. The rule is a single
comparison, evaluated fresh on every call:

    participant_count >= k_threshold  ->  VISIBLE
    otherwise                         ->  SUPPRESSED

Participant counts only grow, so a unit that has turned visible stays
visible. Suppressed is the fail-closed default: anything that cannot be
evaluated is treated as suppressed rather than shown.
"""

from __future__ import annotations

import logging

from .types import AggregationUnit, RenderDecision, RenderState, validate_k_threshold

logger = logging.getLogger(__name__)


def evaluate_render_state(participant_count: int, k_threshold: int) -> RenderState:
    """Decide visibility from a participant count and threshold.

    Args:
        participant_count: Distinct pseudonymous contributors
        k_threshold: Minimum contributors before content may be shown

    Returns:
        RenderState.VISIBLE when participant_count >= k_threshold,
        RenderState.SUPPRESSED otherwise

    Raises:
        InvalidThresholdError: If k_threshold is below the enforced minimum.
    """
    validate_k_threshold(k_threshold)
    if participant_count >= k_threshold:
        return RenderState.VISIBLE
    return RenderState.SUPPRESSED


class RenderStateEvaluator:
    """Evaluates aggregation units against their k-threshold.

    Holds no cache. Callers that read a unit and then evaluate it get the
    state for exactly the count they read.
    """

    def evaluate(self, unit: AggregationUnit) -> RenderDecision:
        """Evaluate one unit.

        Returns:
            RenderDecision with the derived state and the inputs it came from
        """
        state = evaluate_render_state(unit.participant_count, unit.k_threshold)
        logger.debug(
            "Evaluated unit render state",
            extra={
                "extra_data": {
                    "unit_id": unit.id,
                    "kind": unit.kind.value,
                    "render_state": state.value,
                }
            },
        )
        return RenderDecision(
            render_state=state,
            participant_count=unit.participant_count,
            k_threshold=unit.k_threshold,
        )

    def evaluate_many(self, units: list[AggregationUnit]) -> dict[str, RenderDecision]:
        """Evaluate several units, keyed by unit id."""
        return {unit.id: self.evaluate(unit) for unit in units}


# Global evaluator instance
_default_evaluator: RenderStateEvaluator | None = None


def get_evaluator() -> RenderStateEvaluator:
    """Get the default render-state evaluator."""
    global _default_evaluator
    if _default_evaluator is None:
        _default_evaluator = RenderStateEvaluator()
    return _default_evaluator


def evaluate(unit: AggregationUnit) -> RenderDecision:
    """Convenience function to evaluate a unit with the default evaluator."""
    return get_evaluator().evaluate(unit)
