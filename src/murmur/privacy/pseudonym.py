# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Rotating pseudonymous handles for feedback submitters.

A handle is HMAC-SHA256 keyed by the org salt over the raw identity and the
rotation window. The same person gets the same handle within a window and
an unlinkable one in the next window. The mapping is never persisted; the
raw identity only exists for the duration of ``derive_handle``.

Handles are rotated daily (UTC calendar day). Old handles becoming
unlinkable to new ones is the point of rotation, so nothing here caches a
handle across windows.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

from ..core.exceptions import MissingOrgSaltError, ValidationException

if TYPE_CHECKING:
    from .orgs import OrgRegistry

logger = logging.getLogger(__name__)

HANDLE_PREFIX = "anon-"
HANDLE_HEX_LENGTH = 32

# Unit separator keeps ("ab", "c") and ("a", "bc") from colliding
_FIELD_SEPARATOR = b"\x1f"


def rotation_window_for(moment: datetime | date | None = None) -> str:
    """Get the daily rotation window label for a moment.

    Args:
        moment: A datetime (naive values are treated as UTC) or date.
            Defaults to now.

    Returns:
        The window label, e.g. ``"2026-10-19"``
    """
    if moment is None:
        moment = datetime.now(UTC)
    if isinstance(moment, datetime):
        if moment.tzinfo is not None:
            moment = moment.astimezone(UTC)
        return moment.date().isoformat()
    return moment.isoformat()


def derive_handle(identity: str, org_salt: str | bytes | None, rotation_window: str) -> str:
    """Derive the pseudonymous handle for an identity.

    Args:
        identity: Raw submitter identity (e.g. Slack user id). Not retained.
        org_salt: Org-scoped secret salt. Required.
        rotation_window: Window label from ``rotation_window_for``.

    Returns:
        Handle of the form ``anon-<32 hex chars>``

    Raises:
        MissingOrgSaltError: If org_salt is missing or empty. There is no
            global fallback salt.
        ValidationException: If identity or rotation_window is empty.
    """
    if not org_salt:
        raise MissingOrgSaltError()
    if not identity:
        raise ValidationException("identity is required", field="identity")
    if not rotation_window:
        raise ValidationException("rotation_window is required", field="rotation_window")

    key = org_salt if isinstance(org_salt, bytes) else org_salt.encode("utf-8")
    message = identity.encode("utf-8") + _FIELD_SEPARATOR + rotation_window.encode("utf-8")
    digest = hmac.new(key, message, hashlib.sha256).hexdigest()
    return f"{HANDLE_PREFIX}{digest[:HANDLE_HEX_LENGTH]}"


class Pseudonymizer:
    """Derives handles using per-org salts from an org registry.

    Usage:
        pseudonymizer = Pseudonymizer(registry)
        handle = pseudonymizer.handle_for(org_id, slack_user_id)
    """

    def __init__(self, org_registry: OrgRegistry):
        self._orgs = org_registry

    def handle_for(
        self,
        org_id: str,
        identity: str,
        moment: datetime | date | None = None,
    ) -> str:
        """Derive the handle for identity in org_id's current window.

        Raises:
            MissingOrgSaltError: If the org has no salt provisioned.
        """
        settings = self._orgs.get(org_id)
        if not settings.salt:
            logger.error(
                "Refusing to derive handle: org salt missing",
                extra={"extra_data": {"org_id": org_id}},
            )
            raise MissingOrgSaltError(org_id)
        return derive_handle(identity, settings.salt, rotation_window_for(moment))
