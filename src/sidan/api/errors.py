"""Translation of auth errors into HTTP responses.

Handlers are registered once on the application; routers and the auth core
raise typed errors and never build error responses themselves.

Envelopes:
- /auth/device/token: RFC 8628 `{error, error_description}`
- everything else: `{error, detail}`
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from sidan.auth.errors import AuthCoreError, AuthError

DEVICE_TOKEN_PATH = "/auth/device/token"


async def auth_error_handler(request: Request, exc: AuthCoreError) -> JSONResponse:
    """Map an AuthCoreError to its status code and envelope."""
    path = request.url.path

    error, description = exc.error, exc.description

    if exc.status_code >= 500:
        logger.error(f"{exc.kind} error on {path}: {exc.description}")
        if exc.status_code == 500:
            # crypto and storage details stay in the log
            error, description = "server_error", "internal error"
    else:
        logger.warning(f"{exc.kind} error on {path}: {exc.description}")

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None

    if path == DEVICE_TOKEN_PATH:
        content = {"error": error, "error_description": description}
    else:
        content = {"error": error, "detail": description}

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthCoreError, auth_error_handler)
