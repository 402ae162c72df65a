"""FastAPI application for the ACGE dossier workflow."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from sqlalchemy.orm import Session, sessionmaker

import acge_kernel
from acge_api.errors import register_error_handlers
from acge_api.identity import HeaderIdentityOracle, IdentityOracle
from acge_api.routers import dossier_router, quitus_router
from acge_api.unit_of_work import UnitOfWorkFactory
from acge_config import AcgeConfig, get_active_config
from acge_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from acge_kernel.domain.clock import Clock
from acge_kernel.logging_config import LogContext, configure_logging, get_logger
from acge_services.effects import EffectDispatcher

logger = get_logger("api")

CORRELATION_HEADER = "X-Request-Id"


def create_app(
    config: AcgeConfig | None = None,
    session_factory: sessionmaker[Session] | None = None,
    dispatcher: EffectDispatcher | None = None,
    identity_oracle: IdentityOracle | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """Build the application.

    With no ``session_factory`` the lifespan initializes the engine from
    the configured database URL and creates missing tables.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application startup and shutdown."""
        active = config or get_active_config()
        configure_logging(level=active.log_level)
        app.state.config = active

        owns_engine = session_factory is None
        if owns_engine:
            init_engine_from_url(
                active.database.url,
                echo=active.database.echo,
                pool_size=active.database.pool_size,
                max_overflow=active.database.max_overflow,
            )
            create_tables()
            factory = get_session_factory()
        else:
            factory = session_factory

        app.state.unit_of_work = UnitOfWorkFactory(
            factory,
            public_base_url=active.public_base_url,
            numbering=active.dossier_numbering,
            clock=clock,
        )
        app.state.dispatcher = dispatcher or EffectDispatcher()
        app.state.identity_oracle = identity_oracle or HeaderIdentityOracle()

        logger.info(
            "api_ready",
            extra={
                "public_base_url": active.public_base_url,
                "dossier_numbering": active.dossier_numbering,
            },
        )
        yield

        if owns_engine:
            reset_engine()
        logger.info("api_shutdown")

    app = FastAPI(
        title="ACGE",
        description="Dossier validation workflow and quitus verification.",
        version=acge_kernel.__version__,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid4())
        LogContext.clear()
        LogContext.set(correlation_id=correlation_id)
        try:
            response = await call_next(request)
        finally:
            LogContext.clear()
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    register_error_handlers(app)
    app.include_router(dossier_router)
    app.include_router(quitus_router)
    return app


# Server Start
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
