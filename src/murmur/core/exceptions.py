# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Custom exception hierarchy for Murmur.

Configuration errors are fatal and fail closed: no handle, no noise, no
view is produced when one is raised. Suppression below the k-threshold is
never an exception; it is reported as ``RenderState.SUPPRESSED``.
"""

from __future__ import annotations

from typing import Any


class MurmurException(Exception):  # noqa: N818 - matches the rest of the hierarchy
    """Base exception for all Murmur errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(MurmurException):
    """Exception for validation errors.

    Raised when:
    - Input validation fails
    - A participant count would decrease
    - Jitter bounds are inverted or negative
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigException(MurmurException):
    """Exception for configuration errors.

    Raised when:
    - Required settings are missing
    - An org has not been provisioned
    - Privacy parameters are outside their valid range
    """

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []


class PrivacyConfigError(ConfigException):
    """A privacy parameter would make the gate unsafe. Always fatal."""


class MissingOrgSaltError(PrivacyConfigError):
    """Raised when an org has no salt provisioned.

    There is deliberately no global fallback salt; one would let handles be
    correlated across orgs.
    """

    def __init__(self, org_id: str | None = None):
        message = "Org salt is not provisioned"
        if org_id:
            message = f"Org salt is not provisioned for org {org_id}"
        super().__init__(message, missing_vars=["org_salt"])
        self.org_id = org_id


class InvalidEpsilonError(PrivacyConfigError):
    """Raised for a zero, negative or non-finite epsilon."""

    def __init__(self, epsilon: Any):
        super().__init__(f"epsilon must be a positive finite number, got {epsilon!r}")
        self.epsilon = epsilon


class InvalidThresholdError(PrivacyConfigError):
    """Raised for a k-threshold below the enforced minimum."""

    def __init__(self, k_threshold: Any, minimum: int):
        super().__init__(f"k_threshold must be an integer >= {minimum}, got {k_threshold!r}")
        self.k_threshold = k_threshold
        self.minimum = minimum


class NotFoundError(MurmurException):
    """Exception for resource not found errors.

    Raised when:
    - Requested aggregation unit doesn't exist
    - Requested org doesn't exist
    """

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id
