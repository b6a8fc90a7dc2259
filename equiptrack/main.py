"""Application factory and top-level wiring.

``create_app`` assembles configuration, logging, middleware, error handlers
and routers. Tables are created (and legacy SQLite schemas upgraded) on
startup so an empty data directory boots straight into a working service.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from .core.config import settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .db.migrate import run_migrations
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware

# Importing the models registers them with ``Base.metadata``.
from .models import changelog as _changelog  # noqa: F401
from .models import company as _company  # noqa: F401
from .models import inventory as _inventory  # noqa: F401
from .routers import api_inventory as api_inventory_router


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
    run_migrations(engine)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)

    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_methods=["GET", "PATCH"],
            allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        )
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)
    app.include_router(api_inventory_router.router)

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.on_event("startup")
    async def _init_db() -> None:
        init_db()

    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app)

    return app


app = create_app()

__all__ = ["app", "create_app", "init_db"]
