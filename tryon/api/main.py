"""FastAPI application for the try-on service.

Serves the tracking state (overlay, 3D pose, lighting, metrics), product and
override commands, settings, and a websocket that pushes each new snapshot.
The engine itself is created lazily by the first request that needs it.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tryon.api.routes import config, health, stream, tracking
from tryon.api.services.state import stop_engine

ROUTERS = (health.router, config.router, tracking.router, stream.router)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    # Camera, detector and lighting timer are released on shutdown.
    yield
    stop_engine()


def create_app() -> FastAPI:
    """Build the API with every router mounted.

    CORS is open: the overlay is drawn by browser clients on other origins.
    """

    application = FastAPI(title="TryOn Vision API", lifespan=lifespan)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for router in ROUTERS:
        application.include_router(router)
    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run("tryon.api.main:app", host="0.0.0.0", port=8000, reload=True)
