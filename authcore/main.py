"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from authcore.core.config import settings
from authcore.core.middleware import setup_middleware
from authcore.core.exceptions import AuthCoreError, PermissionDeniedError

from authcore.api.roles import router as roles_router
from authcore.api.audit import router as audit_router
from authcore.api.admin import router as admin_router, health_router
from authcore.services.credential_service import credential_service
from authcore.services.permission_cache import permission_cache

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("authcore")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting %s", settings.APP_NAME)
    permission_cache.start()

    if settings.CACHE_BACKEND == "redis":
        if permission_cache.backend.health_check():
            logger.info("Redis permission cache connected")
        else:
            logger.warning("Redis not available; permission checks will miss the cache")

    yield

    permission_cache.stop()
    credential_service.shutdown()
    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description="Role-based permissions, credential hashing and audit trail",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)


@app.exception_handler(AuthCoreError)
async def authcore_exception_handler(request: Request, exc: AuthCoreError):
    content = {"detail": exc.message}
    if isinstance(exc, PermissionDeniedError):
        content["missing"] = exc.missing
    return JSONResponse(status_code=exc.status_code, content=content)


# Register routers
app.include_router(roles_router, prefix="/api")
app.include_router(audit_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(health_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }
