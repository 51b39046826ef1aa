"""Application factory and top-level wiring.

Brings together configuration, the database, middleware, routers and error
handling. ``create_app`` takes an optional engine; when given, tables are created
on it and request sessions (``get_db``) are bound to it as well.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from . import __version__
from .core.config import settings
from .core.errors import register_exception_handlers
from .db import session as db_session
from .db.migrate import run_migrations
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware

# Importing the models registers them with the metadata before create_all.
from .models import bill as _bill  # noqa: F401
from .models import client as _client  # noqa: F401
from .models import proposal as _proposal  # noqa: F401
from .models import sequence as _sequence  # noqa: F401
from .routers import api_auth, bills, clients, proposals, sequences


def init_db(engine: Engine) -> None:
    """Create missing tables, then patch databases made by older builds."""

    db_session.Base.metadata.create_all(bind=engine)
    run_migrations(engine)


def create_app(engine: Engine | None = None, *, metrics: bool = True) -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, version=__version__)

    init_db(engine if engine is not None else db_session.engine)
    if engine is not None:
        session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        def get_bound_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[db_session.get_db] = get_bound_db

    app.add_middleware(SecurityHeadersMiddleware)
    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    # Added last so it wraps everything and sees the final status code.
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_auth.router)
    app.include_router(clients.router)
    app.include_router(proposals.router)
    app.include_router(bills.router)
    app.include_router(sequences.router)

    register_exception_handlers(app)

    @app.get("/health", tags=["meta"])
    def health() -> dict[str, bool]:
        return {"ok": True}

    if metrics:
        Instrumentator().instrument(app).expose(app, include_in_schema=False)

    return app


__all__ = ["create_app", "init_db"]
