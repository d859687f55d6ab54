"""
FastAPI application factory.

``create_app(config)`` builds an app bound to one ``AppConfig``:
  - the lifespan hook applies the schema and pending migrations, so a fresh
    database file is usable without running ``init-db`` first;
  - engine errors map to HTTP statuses (``NotFound`` → 404,
    ``InvalidTransition`` → 409); request validation stays FastAPI's 422.

Run with ``selfcare-recommender serve`` or any ASGI server::

    uvicorn --factory selfcare_recommender.api.app:create_app
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from selfcare_recommender.api.routes import router
from selfcare_recommender.config import AppConfig, load_config
from selfcare_recommender.db.connection import initialize_database, open_database
from selfcare_recommender.errors import InvalidTransition, NotFound

logger = logging.getLogger(__name__)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the HTTP app; loads the default config when none is given."""
    config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        with open_database(config.database) as conn:
            applied = initialize_database(conn)
        logger.info(
            "API ready | db=%s | migrations applied=%d", config.database.db_path, applied
        )
        yield

    app = FastAPI(
        title="Self-care Recommender",
        description="Lab analyses to ranked, lifecycle-tracked recommendations.",
        debug=config.debug,
        lifespan=lifespan,
    )
    app.state.config = config

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidTransition)
    async def invalid_transition_handler(request: Request, exc: InvalidTransition) -> JSONResponse:
        logger.info("Rejected %s on recommendation %s (%s)", exc.action, exc.recommendation_id, exc.status)
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "status": exc.status, "action": exc.action},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(router)
    return app
