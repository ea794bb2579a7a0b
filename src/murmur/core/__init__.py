"""Core infrastructure for Murmur: configuration, exceptions and logging."""

from .config import (
    DEFAULT_K_THRESHOLD,
    MIN_K_THRESHOLD,
    CoreSettings,
    OrgProvision,
    clear_config_cache,
    get_config,
)
from .exceptions import (
    ConfigException,
    InvalidEpsilonError,
    InvalidThresholdError,
    MissingOrgSaltError,
    MurmurException,
    NotFoundError,
    PrivacyConfigError,
    ValidationException,
)
from .logging import (
    RedactionFilter,
    configure_logging,
    correlation_context,
    get_logger,
    scrub_log_context,
)

__all__ = [
    # Config
    "DEFAULT_K_THRESHOLD",
    "MIN_K_THRESHOLD",
    "CoreSettings",
    "OrgProvision",
    "clear_config_cache",
    "get_config",
    # Exceptions
    "ConfigException",
    "InvalidEpsilonError",
    "InvalidThresholdError",
    "MissingOrgSaltError",
    "MurmurException",
    "NotFoundError",
    "PrivacyConfigError",
    "ValidationException",
    # Logging
    "RedactionFilter",
    "configure_logging",
    "correlation_context",
    "get_logger",
    "scrub_log_context",
]
