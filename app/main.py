"""
FastAPI Application - Storefront API
Session and access-control backend for the storefront

Run with:
    uvicorn app.main:create_app --factory
"""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from app.api.v1 import router as api_v1_router
from app.config import SecurityPolicy, Settings, get_settings
from app.core.csrf import CsrfGuard
from app.core.database import create_engine_from_settings, create_session_factory, init_models
from app.core.errors import register_exception_handlers
from app.core.logging import clear_request_context, configure_logging, get_logger, set_request_context
from app.core.redis import create_redis_client
from app.core.security import TokenIssuer
from app.services.session import AccountLocks

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup and shutdown events"""
    settings: Settings = app.state.settings
    # Startup
    logger.info(
        "app_starting",
        environment=settings.ENVIRONMENT,
        enforce_csrf=app.state.policy.enforce_csrf,
        rate_limit_auth=app.state.policy.rate_limit_auth,
    )
    await init_models(app.state.engine)
    yield
    # Shutdown
    await app.state.redis.aclose()
    await app.state.engine.dispose()
    logger.info("app_stopped")


def create_app(
    settings: Settings | None = None,
    policy: SecurityPolicy | None = None,
    engine: AsyncEngine | None = None,
) -> FastAPI:
    """
    Assemble the application.

    The entrypoint picks the settings and the SecurityPolicy; nothing below
    this function reads the environment. ``engine`` lets callers supply a
    pre-built database engine (tests use an in-memory one).
    """
    settings = settings or get_settings()
    policy = policy or SecurityPolicy.strict()

    configure_logging(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Session and access-control API for the storefront",
        version=settings.VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    engine = engine or create_engine_from_settings(settings)
    app.state.settings = settings
    app.state.policy = policy
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.redis = create_redis_client(settings)
    app.state.token_issuer = TokenIssuer.from_settings(settings)
    app.state.csrf_guard = CsrfGuard(settings)
    app.state.account_locks = AccountLocks()

    @app.middleware("http")
    async def request_context(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        set_request_context(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response

    # Configure CORS
    # Origins are an explicit list (wildcard rejected by Settings) because
    # credentials are allowed.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            settings.CSRF_HEADER_NAME,
            "X-Request-ID",
        ],
        expose_headers=["X-Request-ID"],
    )

    register_exception_handlers(app)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint"""
        return {"status": "healthy"}

    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    return app
