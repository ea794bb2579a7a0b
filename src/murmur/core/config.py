"""Process-wide privacy settings for Murmur.

Every tunable the gate reads from the environment lives on ``CoreSettings``.
Per-org values (salt, k-threshold override, strict mode) live in the org
registry instead; the values here are deployment defaults and policy.

Usage:
    from murmur.core.config import get_config

    k = get_config().default_k_threshold
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Smallest k-threshold an org may configure. Below this the gate offers no
# meaningful anonymity, so lower values are rejected rather than clamped.
MIN_K_THRESHOLD = 3
DEFAULT_K_THRESHOLD = 5


class OrgProvision(BaseModel):
    """One org's privacy setup as read from MURMUR_ORGS.

    Without a salt the org stays unprovisioned and its submissions fail
    closed with a configuration error.
    """

    model_config = ConfigDict(extra="forbid")

    salt: str | None = Field(default=None, repr=False)
    k_threshold: int | None = None
    strict: bool = False

    @field_validator("salt")
    @classmethod
    def _blank_salt_is_missing(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


class CoreSettings(BaseSettings):
    """Deployment defaults and privacy policy for Murmur.

    Settings can be configured via environment variables with the
    MURMUR_ prefix. Epsilon presets are policy, not per-org settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # K-ANONYMITY SETTINGS
    # ==========================================================================

    default_k_threshold: int = Field(
        default=DEFAULT_K_THRESHOLD,
        description="k-threshold used for orgs that do not set their own",
        validation_alias="MURMUR_DEFAULT_K_THRESHOLD",
    )
    max_exemplar_quotes: int = Field(
        default=3,
        description="Maximum exemplar quotes shown per visible unit or theme",
        validation_alias="MURMUR_MAX_EXEMPLAR_QUOTES",
    )

    # ==========================================================================
    # ORG PROVISIONING
    # ==========================================================================

    orgs: dict[str, OrgProvision] = Field(
        default_factory=dict,
        description='Orgs served by this process, as JSON: {"org_id": {"salt": ..., "k_threshold": ..., "strict": ...}}',
        validation_alias="MURMUR_ORGS",
    )

    # ==========================================================================
    # DIFFERENTIAL PRIVACY SETTINGS
    # ==========================================================================

    participant_epsilon: float = Field(
        default=0.5,
        description="Epsilon for participant counts (smaller = more noise)",
        validation_alias="MURMUR_PARTICIPANT_EPSILON",
    )
    theme_epsilon: float = Field(
        default=0.8,
        description="Epsilon for already-aggregated theme counts",
        validation_alias="MURMUR_THEME_EPSILON",
    )

    # ==========================================================================
    # TIMING JITTER SETTINGS
    # ==========================================================================

    jitter_min_ms: int = Field(
        default=5000,
        description="Minimum delay before a notification side effect",
        validation_alias="MURMUR_JITTER_MIN_MS",
    )
    jitter_max_ms: int = Field(
        default=30000,
        description="Maximum delay before a notification side effect",
        validation_alias="MURMUR_JITTER_MAX_MS",
    )

    # ==========================================================================
    # AUDIT SETTINGS
    # ==========================================================================

    audit_capacity: int = Field(
        default=10000,
        description="Ring buffer size of the in-memory key rotation audit trail",
        validation_alias="MURMUR_AUDIT_CAPACITY",
    )

    # ==========================================================================
    # THEMING SETTINGS
    # ==========================================================================

    theme_similarity: float = Field(
        default=0.72,
        description="Cosine similarity needed to link two posts into one theme",
        validation_alias="MURMUR_THEME_SIMILARITY",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="MURMUR_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="MURMUR_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="MURMUR_LOG_FILE",
    )

    @field_validator("default_k_threshold")
    @classmethod
    def _check_k_threshold(cls, value: int) -> int:
        if value < MIN_K_THRESHOLD:
            raise ValueError(f"default_k_threshold must be >= {MIN_K_THRESHOLD}, got {value}")
        return value

    @field_validator("participant_epsilon", "theme_epsilon")
    @classmethod
    def _check_epsilon(cls, value: float) -> float:
        if value <= 0:
            raise ValueError(f"epsilon must be positive, got {value}")
        return value

    @property
    def jitter_bounds(self) -> tuple[int, int]:
        """(min_ms, max_ms) delay window for notification side effects."""
        return self.jitter_min_ms, self.jitter_max_ms


_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Return the shared settings, read from the environment on first use."""
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Drop the shared settings; tests call this after changing MURMUR_* vars."""
    global _config
    _config = None
