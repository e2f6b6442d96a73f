"""CORS, request-id, identity and logging middleware."""

import uuid
import time
import logging

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from authcore.core.config import settings

logger = logging.getLogger("authcore")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Add a unique request ID to every request/response."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        response: Response = await call_next(request)

        duration = round((time.time() - start_time) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration)

        logger.info(
            "%s %s %s %sms user=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration,
            getattr(request.state, "user_id", None),
        )
        return response


class IdentityMiddleware(BaseHTTPMiddleware):
    """Copy the upstream-resolved user id header onto ``request.state``.

    The header is trusted as-is; the gateway in front of this service must
    strip it from client requests.
    """

    async def dispatch(self, request: Request, call_next):
        raw = request.headers.get(settings.IDENTITY_HEADER)
        if raw is not None and raw.strip().isdigit():
            request.state.user_id = int(raw.strip())
        elif raw is not None:
            logger.warning("Ignoring malformed %s header: %r", settings.IDENTITY_HEADER, raw)
        return await call_next(request)


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application."""
    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Identity, then request ID + timing (outermost)
    app.add_middleware(IdentityMiddleware)
    app.add_middleware(RequestIdMiddleware)
