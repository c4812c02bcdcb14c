import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.auth.config import AuthConfig
from app.auth.errors import AuthError, error_payload, status_for
from app.auth.google_keys import GoogleKeySet
from app.core.config import require_jwt_secrets, settings
from app.routes.admin_auth import router as admin_auth_router
from app.routes.auth import router as auth_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

require_jwt_secrets()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.http_client.close()


app = FastAPI(title="Intellectify API", lifespan=lifespan)

# One outbound client and one key cache per process; services receive them explicitly.
app.state.auth_config = AuthConfig.from_settings(settings)
app.state.http_client = httpx.Client(timeout=settings.OAUTH_HTTP_TIMEOUT_SECONDS)
app.state.google_keys = GoogleKeySet(
    app.state.http_client,
    ttl_seconds=settings.GOOGLE_CERTS_CACHE_SECONDS,
    refetch_cooldown_seconds=settings.GOOGLE_CERTS_REFETCH_COOLDOWN_SECONDS,
)

logger.info(
    "Startup config: ENV=%s google_oauth=%s github_oauth=%s secure_cookies=%s",
    settings.ENV,
    app.state.auth_config.oauth.google.configured,
    app.state.auth_config.oauth.github.configured,
    app.state.auth_config.tokens.cookie_secure,
)

_ERROR_CODE_BY_STATUS: dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}


def _error_code(status_code: int) -> str:
    return _ERROR_CODE_BY_STATUS.get(int(status_code), "HTTP_ERROR")


@app.exception_handler(AuthError)
def auth_error_handler(request: Request, exc: AuthError):  # noqa: ARG001
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Unmapped auth error: %s", type(exc).__name__)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=error_payload(exc), headers=headers)


@app.exception_handler(StarletteHTTPException)
def http_exception_handler(request: Request, exc: StarletteHTTPException):  # noqa: ARG001
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": _error_code(exc.status_code), "message": message},
    )


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError):  # noqa: ARG001
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Invalid request payload",
            "details": {"errors": exc.errors()},
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(admin_auth_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}
