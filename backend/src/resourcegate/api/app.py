"""FastAPI application."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from resourcegate.api.errors import register_exception_handlers
from resourcegate.api.gateway import Gateway, build_gateway
from resourcegate.api.routes import create_resource_router
from resourcegate.api.schemas import HealthResponse
from resourcegate.auth import AuthMiddleware, JWTService
from resourcegate.config import GatewayConfig

logger = logging.getLogger(__name__)


def _base_path() -> Path:
    # Relative to cwd, which may be /backend
    cwd = Path.cwd()
    return cwd.parent if cwd.name == "backend" else cwd


def create_app(config: GatewayConfig | None = None) -> FastAPI:
    """Build the application.

    Metadata is loaded and the store connected in the lifespan, so creating
    the app does no I/O.
    """
    config = config or GatewayConfig.from_env(_base_path())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize on startup, cleanup on shutdown."""
        app.state.gateway = build_gateway(config)
        yield
        app.state.gateway.close()

    app = FastAPI(title="resourcegate API", lifespan=lifespan)
    app.state.config = config

    def get_gateway() -> Gateway:
        return app.state.gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if config.auth_disabled:
        logger.warning("Authentication is disabled; every request acts with full permissions")
    else:
        app.add_middleware(
            AuthMiddleware,
            jwt_service=JWTService(config.secret_key),
            assignments=lambda user_id: get_gateway().assignments.for_user(user_id),
        )

    register_exception_handlers(app)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    prefix = "/api/{tenant}" if config.tenancy.enabled else "/api"
    app.include_router(create_resource_router(get_gateway, config.nested.path), prefix=prefix)
    return app


app = create_app()
