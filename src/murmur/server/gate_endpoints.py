# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Privacy gate API endpoints.

Implements:
- POST /api/v1/submissions - Ingest one contribution (Slack ingestion layer)
- GET /api/v1/units/{id} - Gated admin UI payload for one unit
- GET /api/v1/export - Gated CSV/JSON export
- GET /api/v1/digest - Gated weekly digest
- POST /api/v1/themes - Gated theme clustering
- GET /api/v1/admin/key-rotations - Key rotation audit trail

Authentication is handled by the surrounding web backend.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..core.exceptions import MurmurException
from ..privacy.audit import KeyRotationAuditTrail
from ..privacy.gate import PrivacyGate
from ..privacy.surfaces import ExportFormat, build_digest, build_export, build_ui_payload
from ..privacy.types import UnitKind
from .endpoint_utils import parse_int, parse_list
from .errors import (
    exception_response,
    internal_error,
    invalid_json_error,
    missing_field_error,
    validation_error,
)

logger = logging.getLogger(__name__)

SUBMISSION_FIELDS = ("org_id", "identity", "text", "unit_id")


def _gate(request: Request) -> PrivacyGate:
    return request.app.state.gate


def _audit_trail(request: Request) -> KeyRotationAuditTrail:
    return request.app.state.audit_trail


async def _json_body(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError):
        return None
    return body if isinstance(body, dict) else None


async def submit_feedback_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/submissions - Sanitize, pseudonymize and record a contribution.

    Body:
        org_id: Org identifier (required)
        identity: Raw submitter identity, e.g. Slack user id (required)
        text: Raw submitted text (required)
        unit_id: Thread or comment set id (required)
        kind, topic, channel, department: Optional unit metadata

    Returns:
        201: Sanitized text, handle and render state
        400: Invalid request or text rejected in strict mode
        404: Unknown org
        500: Privacy configuration incomplete (e.g. missing org salt)
    """
    body = await _json_body(request)
    if body is None:
        return invalid_json_error()

    for name in SUBMISSION_FIELDS:
        if not body.get(name):
            return missing_field_error(name)

    try:
        kind = UnitKind(body.get("kind", UnitKind.THREAD.value))
    except ValueError:
        valid = ", ".join(k.value for k in UnitKind)
        return validation_error(f"Invalid kind: {body.get('kind')}. Valid: {valid}")

    try:
        submission = _gate(request).ingest(
            body["org_id"],
            str(body["identity"]),
            str(body["text"]),
            str(body["unit_id"]),
            kind=kind,
            topic=body.get("topic"),
            channel=body.get("channel"),
            department=body.get("department"),
        )
    except MurmurException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error ingesting submission")
        return internal_error()

    return JSONResponse({"success": True, "submission": submission.to_dict()}, status_code=201)


async def get_unit_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/units/{id} - Gated view of one unit for the admin UI.

    Query Parameters:
        org_id: Org identifier (required)

    Returns:
        200: Unit payload; suppressed units carry a k_safety_banner
        404: Unknown unit
    """
    unit_id = request.path_params.get("id")
    org_id = request.query_params.get("org_id")
    if not org_id:
        return missing_field_error("org_id")

    try:
        payload = build_ui_payload(_gate(request), unit_id, org_id)
    except MurmurException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error building unit payload")
        return internal_error()

    return JSONResponse({"success": True, "unit": payload})


async def export_endpoint(request: Request) -> Response:
    """GET /api/v1/export - Privacy-preserving CSV or JSON export.

    Query Parameters:
        org_id: Org identifier (required)
        format: csv (default) or json
        unit_ids: Comma-separated unit ids (optional, default all)

    Returns:
        200: Export body with a download filename
        400: Unsupported format
    """
    org_id = request.query_params.get("org_id")
    if not org_id:
        return missing_field_error("org_id")

    fmt = request.query_params.get("format", ExportFormat.CSV.value)
    unit_ids = parse_list(request.query_params.get("unit_ids"))

    try:
        export = build_export(_gate(request), org_id, unit_ids, fmt)
    except MurmurException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error building export")
        return internal_error()

    filename = f"murmur-export.{export.format.value}"
    return Response(
        export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def digest_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/digest - Weekly digest of threads that met their threshold.

    Query Parameters:
        org_id: Org identifier (required)
        days: Look-back window in days (default 7)
        org_name: Display name used in the rendered text (optional)

    Returns:
        200: Digest structure and rendered Slack text
    """
    org_id = request.query_params.get("org_id")
    if not org_id:
        return missing_field_error("org_id")

    days = parse_int(request.query_params.get("days"), default=7, maximum=366)
    since = datetime.now(UTC) - timedelta(days=days)
    org_name = request.query_params.get("org_name", "your team")

    try:
        digest = build_digest(_gate(request), org_id, since=since)
    except MurmurException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error building digest")
        return internal_error()

    return JSONResponse(
        {
            "success": True,
            "digest": digest.to_dict(),
            "text": None if digest.is_empty else digest.render_text(org_name),
        }
    )


async def themes_endpoint(request: Request) -> JSONResponse:
    """POST /api/v1/themes - Cluster an org's posts into gated themes.

    Body:
        org_id: Org identifier (required)

    Returns:
        200: Theme report; status is insufficient_data when the org has
             fewer distinct participants than its k-threshold
    """
    body = await _json_body(request)
    if body is None:
        return invalid_json_error()
    org_id = body.get("org_id")
    if not org_id:
        return missing_field_error("org_id")

    try:
        report = _gate(request).build_themes(org_id)
    except MurmurException as e:
        return exception_response(e)
    except Exception:
        logger.exception("Error building themes")
        return internal_error()

    return JSONResponse({"success": True, **report.to_dict()})


async def key_rotations_endpoint(request: Request) -> JSONResponse:
    """GET /api/v1/admin/key-rotations - Key rotation audit trail.

    Query Parameters:
        org_id: Restrict to one org (optional)

    Returns:
        200: Events (oldest first), stats, policy and, for one org,
             whether a rotation is due
    """
    trail = _audit_trail(request)
    org_id = request.query_params.get("org_id")

    events = trail.org_history(org_id) if org_id else trail.all_events()
    data: dict[str, Any] = {
        "success": True,
        "events": [event.to_dict() for event in events],
        "stats": trail.stats(org_id).to_dict(),
        "policy": trail.policy.to_dict(),
    }
    if org_id:
        data["rotation_due"] = trail.rotation_due(org_id)
    return JSONResponse(data)
