# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Starlette application for the Murmur privacy gate."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Any

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ..core.logging import configure_logging, correlation_context
from ..privacy.audit import KeyRotationAuditTrail, get_audit_trail
from ..privacy.gate import PrivacyGate
from ..privacy.orgs import InMemoryOrgRegistry
from .config import get_settings
from .gate_endpoints import (
    digest_endpoint,
    export_endpoint,
    get_unit_endpoint,
    key_rotations_endpoint,
    submit_feedback_endpoint,
    themes_endpoint,
)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Runs each request under a correlation ID and echoes it back.

    An inbound X-Request-ID is reused so log lines line up with the calling
    backend's own.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        with correlation_context(request.headers.get(REQUEST_ID_HEADER)) as cid:
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = cid
        return response


async def health_endpoint(request: Request) -> JSONResponse:
    """Health check endpoint."""
    settings = get_settings()
    health_data: dict[str, Any] = {
        "status": "healthy",
        "server": settings.server_name,
        "version": settings.server_version,
        "default_k_threshold": settings.default_k_threshold,
    }
    return JSONResponse(health_data)


@asynccontextmanager
async def lifespan(app: Starlette):
    """Application lifespan handler."""
    settings = get_settings()
    logger.info(f"Starting Murmur privacy gate on {settings.host}:{settings.port}")
    yield
    pending = app.state.gate.scheduler.pending
    if pending:
        # Jittered notifications are best-effort and are not replayed
        logger.warning(f"Shutting down with {pending} jittered notifications pending")
    logger.info("Murmur privacy gate shutting down")


def create_app(
    gate: PrivacyGate | None = None,
    audit_trail: KeyRotationAuditTrail | None = None,
) -> Starlette:
    """Create the Starlette ASGI application.

    Args:
        gate: Privacy gate to serve (defaults to one over the orgs
            provisioned through MURMUR_ORGS)
        audit_trail: Key rotation audit trail (defaults to the shared one)
    """
    settings = get_settings()

    # API version prefix for all REST endpoints
    API_V1 = "/api/v1"

    routes = [
        Route(f"{API_V1}/health", health_endpoint, methods=["GET"]),
        # Ingestion
        Route(f"{API_V1}/submissions", submit_feedback_endpoint, methods=["POST"]),
        # Gated read surfaces
        Route(f"{API_V1}/units/{{id}}", get_unit_endpoint, methods=["GET"]),
        Route(f"{API_V1}/export", export_endpoint, methods=["GET"]),
        Route(f"{API_V1}/digest", digest_endpoint, methods=["GET"]),
        Route(f"{API_V1}/themes", themes_endpoint, methods=["POST"]),
        # Admin
        Route(f"{API_V1}/admin/key-rotations", key_rotations_endpoint, methods=["GET"]),
    ]

    middleware = [
        Middleware(CorrelationMiddleware),
        Middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        ),
    ]

    app = Starlette(
        routes=routes,
        middleware=middleware,
        lifespan=lifespan,
    )
    app.state.gate = gate if gate is not None else PrivacyGate(InMemoryOrgRegistry.from_config(settings.orgs))
    app.state.audit_trail = audit_trail if audit_trail is not None else get_audit_trail()
    return app


def run() -> None:
    """Run the server using uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level, log_file=settings.log_file)

    logger.info(f"Starting Murmur HTTP server on {settings.host}:{settings.port}")

    uvicorn.run(
        create_app(),
        host=settings.host,
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    run()
