"""Sidan API Server - FastAPI application for member authentication.

Running the Server
------------------

Development (with auto-reload):
    sidan serve --reload

Production:
    sidan serve --host 0.0.0.0 --port 8000

Testing the Server
------------------

Health check:
    curl http://localhost:8000/health

Device authorization:
    curl -X POST "http://localhost:8000/auth/device?provider=google"

Endpoints
---------
- /health                    : Health check with version
- /auth/{provider}/login     : Start browser login (google, github)
- /auth/{provider}/callback  : Provider callback
- /auth/session              : Current session
- /auth/logout               : End session
- /auth/device               : Device authorization (RFC 8628)
- /auth/device/verify        : Verification page and approval
- /auth/device/token         : Token polling
- /docs                      : OpenAPI documentation
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger

from sidan.api.errors import register_error_handlers
from sidan.api.routers.device import router as device_router
from sidan.api.routers.health import router as health_router
from sidan.api.routers.oauth import router as oauth_router
from sidan.auth.janitor import Janitor
from sidan.auth.state_store_factory import get_state_store
from sidan.settings import settings
from sidan.version import __version__


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Starts the janitor that removes expired auth records.
    """
    logger.info(f"Starting Sidan API {__version__}")
    if settings.auth.uses_dev_secrets():
        logger.warning(
            "Using development auth secrets; set SIDAN_AUTH__JWT_SECRET and "
            "SIDAN_AUTH__TOKEN_ENCRYPTION_KEY in production"
        )

    janitor = Janitor(get_state_store(), interval=settings.auth.cleanup_interval_seconds)
    janitor.start()
    app.state.janitor = janitor

    yield

    await janitor.stop()
    logger.info("Shutting down Sidan API")


async def request_id_middleware(request: Request, call_next):
    """Tag every log line of a request with its id and echo it back."""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    with logger.contextualize(request_id=request_id):
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Sidan API",
        description="Member authentication - browser login, device grant and sessions",
        version=__version__,
        lifespan=lifespan,
    )

    app.middleware("http")(request_id_middleware)
    register_error_handlers(app)

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Sidan API",
            "version": __version__,
            "docs": "/docs",
        }

    app.include_router(health_router)  # /health - public
    app.include_router(oauth_router)  # /auth/{provider}/*, /auth/session, /auth/logout
    app.include_router(device_router)  # /auth/device/*

    return app


# Create application instance
app = create_app()


# Main entry point for uvicorn
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sidan.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )
