"""FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

from texsync.api.routes import artifacts, builds, progress  # noqa: E402
from texsync.clients import get_latex_service_client
from texsync.config import get_settings
from texsync.exceptions import AppError

settings = get_settings()
logger.info("CORS origins: %s", settings.cors_origins)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.latex_service_url:
        logger.warning("LATEX_SERVICE_URL is not set; compile requests will fail until it is configured")
    if not settings.compile_secret:
        logger.warning("LATEX_COMPILE_SECRET is not set; worker progress callbacks are disabled")
    yield
    # only close the worker client if a request ever created it
    if get_latex_service_client.cache_info().currsize:
        await get_latex_service_client().aclose()
        get_latex_service_client.cache_clear()


app = FastAPI(title="texsync API", version="0.1.0", lifespan=lifespan)

# Per-route limits live on the routers; the app-level limiter serves the exception handler.
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded ({exc.detail}). Please try again later."},
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": type(exc).__name__},
    )


class SecurityHeadersMiddleware:
    """Add security headers to all responses (pure ASGI — compatible with CORSMiddleware)."""

    _HEADERS = [
        (b"x-content-type-options", b"nosniff"),
        (b"x-frame-options", b"DENY"),
        (b"referrer-policy", b"strict-origin-when-cross-origin"),
    ]

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", [])) + self._HEADERS
                message = {**message, "headers": headers}
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization", "X-Compile-Secret"],
    expose_headers=["Content-Disposition"],
)

app.include_router(builds.router)
app.include_router(progress.router)
app.include_router(artifacts.router)


@app.get("/")
async def root():
    return {"name": "texsync API", "version": "0.1.0", "docs": "/docs"}


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "latex_service_configured": bool(settings.latex_service_url),
        "progress_callbacks_enabled": bool(settings.compile_secret and settings.resolved_site_url()),
    }
