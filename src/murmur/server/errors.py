# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Error envelopes returned by the Murmur REST API.

Every failure has the same body::

    {"success": false, "error": {"code": "...", "message": "..."}}

Suppression below the k-threshold is not a failure and never comes through
here. It is a 200 with ``render_state: "suppressed"``.
"""

from __future__ import annotations

import logging
import uuid

from starlette.responses import JSONResponse

from ..core.exceptions import ConfigException, MurmurException, NotFoundError, ValidationException
from ..core.logging import get_correlation_id

logger = logging.getLogger(__name__)

# 400
VALIDATION_MISSING_FIELD = "VALIDATION_MISSING_FIELD"
VALIDATION_INVALID_VALUE = "VALIDATION_INVALID_VALUE"
VALIDATION_INVALID_JSON = "VALIDATION_INVALID_JSON"

# 404
NOT_FOUND_RESOURCE = "NOT_FOUND_RESOURCE"

# 500
CONFIG_ERROR = "CONFIG_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"

CONFIG_ERROR_MESSAGE = "Privacy setup is incomplete for this workspace. An admin needs to finish org configuration."


def error_response(code: str, message: str, status_code: int = 400, **fields: str) -> JSONResponse:
    """Build the error envelope. Extra keyword fields land inside ``error``."""
    error = {"code": code, "message": message, **fields}
    return JSONResponse({"success": False, "error": error}, status_code=status_code)


def validation_error(message: str, code: str = VALIDATION_INVALID_VALUE) -> JSONResponse:
    return error_response(code, message)


def missing_field_error(field_name: str) -> JSONResponse:
    return error_response(VALIDATION_MISSING_FIELD, f"{field_name} is required")


def invalid_json_error() -> JSONResponse:
    return error_response(VALIDATION_INVALID_JSON, "Invalid JSON body")


def not_found_error(resource: str, code: str = NOT_FOUND_RESOURCE) -> JSONResponse:
    """404 naming only the resource type, never the identifier that was asked for."""
    return error_response(code, f"{resource} not found", status_code=404)


def config_error(exc: ConfigException) -> JSONResponse:
    """500 for an org whose privacy setup is incomplete.

    Callers get admin-facing setup guidance. Which setting is missing goes to
    the log only.
    """
    logger.error(
        "Privacy configuration error: %s",
        type(exc).__name__,
        extra={"extra_data": {"missing_vars": exc.missing_vars}},
    )
    return error_response(CONFIG_ERROR, CONFIG_ERROR_MESSAGE, status_code=500)


def internal_error(message: str = "Internal server error") -> JSONResponse:
    """500 carrying a short request_id that also appears in the server log."""
    request_id = (get_correlation_id() or uuid.uuid4().hex)[:12]
    logger.error("request_id=%s %s", request_id, message)
    return error_response(INTERNAL_ERROR, message, status_code=500, request_id=request_id)


def exception_response(exc: MurmurException) -> JSONResponse:
    """Translate a Murmur exception into its envelope."""
    if isinstance(exc, ConfigException):
        return config_error(exc)
    if isinstance(exc, NotFoundError):
        return not_found_error(exc.resource_type)
    if isinstance(exc, ValidationException):
        return validation_error(exc.message)
    return internal_error()
