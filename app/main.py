from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import get_settings
from app.logging_config import REQUEST_ID_HEADER, configure_logging, new_request_id, reset_request_id, set_request_id
from app.routes.api import api_router
from app.services.seeding import seed_defaults_if_ready

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting HomeTrack application")
    if get_settings().run_startup_jobs:
        seed_defaults_if_ready()
    else:
        logger.info("Startup jobs disabled for this container role")
    yield
    logger.info("Shutting down HomeTrack application")


def create_app() -> FastAPI:
    app = FastAPI(title="HomeTrack", version="0.1.0", lifespan=lifespan)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        token = set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.app_host, port=settings.app_port)
