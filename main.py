"""
FastAPI application factory for services using DynamoDB sessions.

create_app() wires configuration, JSON logging, exception handlers and the
session store into an application. The store is connected once in the
lifespan handler, so a table that cannot be provisioned stops startup, and
it is shared by every request through app.state.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config.settings import Settings, get_settings, validate_startup
from errors.handlers import register_exception_handlers
from middleware.request_id import RequestIDMiddleware
from session.dynamodb_store import DynamoDBSessionStore
from telemetry.json_logging import configure_logging

logger = logging.getLogger(__name__)


def get_session_store(request: Request) -> DynamoDBSessionStore:
    """FastAPI dependency returning the application's shared session store."""
    return request.app.state.session_store


def create_app(settings: Optional[Settings] = None, client: Optional[Any] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use. Defaults to get_settings().
        client: Optional DynamoDB client handed to the session store instead
            of opening one from the settings.

    Returns:
        The configured application.

    Raises:
        ConfigurationError: If the settings fail startup validation.
    """
    settings = settings or get_settings()
    validate_startup(settings)
    configure_logging(settings)

    store = DynamoDBSessionStore.from_settings(settings, client=client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Connecting session store", extra={"table": store.table_name})
        await store.connect()
        app.state.session_store = store

        yield

        logger.info("Closing session store", extra={"table": store.table_name})
        await store.close()

    app = FastAPI(title="Session Store", version="1.0.0", lifespan=lifespan)
    register_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health/ready")
    async def readiness(request: Request):
        """Report whether the session table is reachable and ACTIVE."""
        healthy = await get_session_store(request).health_check()
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "unhealthy",
                "dependencies": {"session_store": healthy},
            },
        )

    return app


if __name__ == "__main__":
    import uvicorn
    import os
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(create_app(), host="0.0.0.0", port=port, log_level="info")
