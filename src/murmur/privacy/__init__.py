"""Privacy gate components.

Leaf to root: pseudonymizer, content sanitizer, noise injector, timing
jitter, render-state evaluator, theming engine and the key rotation audit
trail. ``PrivacyGate`` wires them together for ingestion and gated reads.
"""

from .audit import (
    KEY_ROTATION_POLICY,
    AuditLog,
    InMemoryAuditLog,
    KeyRotationAuditTrail,
    KeyRotationEvent,
    KeyRotationEventType,
    KeyRotationPolicy,
    RotationStats,
    get_audit_trail,
    set_audit_trail,
)
from .coarsen import prep_quote, round_to_day, round_to_hour
from .gate import PrivacyGate, Submission, UnitView, ViewItem, suppressed_message
from .jitter import JitterScheduler, await_with_jitter, schedule_with_jitter
from .noise import (
    PARTICIPANT_EPSILON,
    THEME_EPSILON,
    NoisedCount,
    NoisePolicy,
    add_noise,
    add_noise_to_participant_count,
    add_noise_to_theme_count,
    sample_laplace,
)
from .orgs import InMemoryOrgRegistry, OrgPrivacySettings, OrgRegistry, generate_org_salt
from .pseudonym import Pseudonymizer, derive_handle, rotation_window_for
from .render_state import RenderStateEvaluator, evaluate, evaluate_render_state
from .sanitizer import (
    ContentSanitizer,
    RedactionKind,
    ScrubResult,
    SubmissionCheck,
    check_submission,
    sanitize,
    scrub,
)
from .store import InMemoryParticipationStore, ParticipationStore
from .surfaces import (
    Digest,
    Export,
    ExportFormat,
    build_digest,
    build_export,
    build_ui_payload,
    k_safety_banner,
)
from .theming import (
    Embedder,
    HashingEmbedder,
    SentenceTransformerEmbedder,
    Theme,
    ThemePost,
    ThemeReport,
    ThemeStatus,
    ThemingEngine,
)
from .types import (
    AggregationUnit,
    ContentItem,
    RenderDecision,
    RenderState,
    UnitKind,
    validate_k_threshold,
)

__all__ = [
    # Types
    "AggregationUnit",
    "ContentItem",
    "RenderDecision",
    "RenderState",
    "UnitKind",
    "validate_k_threshold",
    # Pseudonymizer
    "Pseudonymizer",
    "derive_handle",
    "rotation_window_for",
    # Orgs
    "InMemoryOrgRegistry",
    "OrgPrivacySettings",
    "OrgRegistry",
    "generate_org_salt",
    # Sanitizer
    "ContentSanitizer",
    "RedactionKind",
    "ScrubResult",
    "SubmissionCheck",
    "check_submission",
    "sanitize",
    "scrub",
    "prep_quote",
    "round_to_day",
    "round_to_hour",
    # Noise
    "PARTICIPANT_EPSILON",
    "THEME_EPSILON",
    "NoisedCount",
    "NoisePolicy",
    "add_noise",
    "add_noise_to_participant_count",
    "add_noise_to_theme_count",
    "sample_laplace",
    # Jitter
    "JitterScheduler",
    "await_with_jitter",
    "schedule_with_jitter",
    # Render state
    "RenderStateEvaluator",
    "evaluate",
    "evaluate_render_state",
    # Storage
    "InMemoryParticipationStore",
    "ParticipationStore",
    # Gate and surfaces
    "PrivacyGate",
    "Submission",
    "UnitView",
    "ViewItem",
    "suppressed_message",
    "Digest",
    "Export",
    "ExportFormat",
    "build_digest",
    "build_export",
    "build_ui_payload",
    "k_safety_banner",
    # Theming
    "Embedder",
    "HashingEmbedder",
    "SentenceTransformerEmbedder",
    "Theme",
    "ThemePost",
    "ThemeReport",
    "ThemeStatus",
    "ThemingEngine",
    # Audit
    "KEY_ROTATION_POLICY",
    "AuditLog",
    "InMemoryAuditLog",
    "KeyRotationAuditTrail",
    "KeyRotationEvent",
    "KeyRotationEventType",
    "KeyRotationPolicy",
    "RotationStats",
    "get_audit_trail",
    "set_audit_trail",
]
