"""Per-org privacy settings: salt and k-threshold.

The surrounding web backend owns org provisioning. The gate only needs to
read a few values per org, so it depends on the small ``OrgRegistry``
protocol rather than on a database. A standalone server loads its orgs from
the MURMUR_ORGS setting through ``InMemoryOrgRegistry.from_config``.
"""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ..core.config import OrgProvision, get_config
from ..core.exceptions import NotFoundError
from .types import validate_k_threshold

logger = logging.getLogger(__name__)

SALT_BYTES = 32


@dataclass(frozen=True)
class OrgPrivacySettings:
    """Privacy settings for one org."""

    org_id: str
    salt: str | None
    k_threshold: int
    strict_submissions: bool = False  # Reject PII instead of redacting it

    def __post_init__(self) -> None:
        validate_k_threshold(self.k_threshold)


def generate_org_salt() -> str:
    """Generate a fresh random org salt."""
    return secrets.token_hex(SALT_BYTES)


@runtime_checkable
class OrgRegistry(Protocol):
    """Protocol for reading per-org privacy settings."""

    def get(self, org_id: str) -> OrgPrivacySettings:
        """Get settings for an org.

        Raises:
            NotFoundError: If the org is unknown.
        """
        ...


class InMemoryOrgRegistry:
    """In-memory org registry for tests and single-process deployments."""

    def __init__(self) -> None:
        self._orgs: dict[str, OrgPrivacySettings] = {}
        self._lock = threading.Lock()

    def register(
        self,
        org_id: str,
        salt: str | None = "",
        k_threshold: int | None = None,
        strict_submissions: bool = False,
    ) -> OrgPrivacySettings:
        """Provision an org.

        Args:
            org_id: Org identifier
            salt: Org salt. An empty string generates one; ``None`` leaves
                the org unprovisioned so handle derivation fails closed.
            k_threshold: Org k-threshold (defaults to the configured default)
            strict_submissions: Reject submissions containing PII
        """
        if salt == "":
            salt = generate_org_salt()
        if k_threshold is None:
            k_threshold = get_config().default_k_threshold
        settings = OrgPrivacySettings(
            org_id=org_id,
            salt=salt,
            k_threshold=k_threshold,
            strict_submissions=strict_submissions,
        )
        with self._lock:
            self._orgs[org_id] = settings
        return settings

    def get(self, org_id: str) -> OrgPrivacySettings:
        with self._lock:
            settings = self._orgs.get(org_id)
        if settings is None:
            raise NotFoundError("Org", org_id)
        return settings

    def list_orgs(self) -> list[str]:
        with self._lock:
            return list(self._orgs)

    @classmethod
    def from_config(cls, orgs: Mapping[str, OrgProvision] | None = None) -> InMemoryOrgRegistry:
        """Build a registry from MURMUR_ORGS (or the given mapping).

        Orgs without a salt are registered unprovisioned so their requests
        fail closed instead of coming back as unknown orgs.

        Raises:
            InvalidThresholdError: If an org sets k below the minimum.
        """
        if orgs is None:
            orgs = get_config().orgs
        registry = cls()
        for org_id, provision in orgs.items():
            registry.register(
                org_id,
                salt=provision.salt,
                k_threshold=provision.k_threshold,
                strict_submissions=provision.strict,
            )
            if provision.salt is None:
                logger.warning("Org has no salt configured", extra={"extra_data": {"org_id": org_id}})
        logger.info("Loaded org registry", extra={"extra_data": {"org_count": len(orgs)}})
        return registry
