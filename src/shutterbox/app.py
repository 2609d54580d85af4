"""FastAPI application exposing the shutter command mailbox."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .config import settings
from .router import router as api_router
from .service import get_controller
from .utils import configure_logging, logger

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    controller = app.dependency_overrides.get(get_controller, get_controller)()
    await controller.start()
    try:
        yield
    finally:
        await controller.stop()


app = FastAPI(
    title="Shutter Command Mailbox",
    version="1.0.0",
    description=(
        "Store-and-forward command mailbox and schedule engine for a polling "
        "roller-shutter controller."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    """Simple readiness probe."""
    return {"status": "ok"}


def _mount_static_assets() -> None:
    """Serve the static dashboard if the directory is available."""
    static_dir = Path(settings.static_dir)
    if not static_dir.is_dir():
        logger.bind(static_dir=str(static_dir)).debug(
            "Static directory not found; skipping static mount"
        )
        return

    logger.bind(static_dir=str(static_dir)).info("Mounting static assets")
    app.mount(
        "/",
        StaticFiles(directory=str(static_dir), html=True),
        name="static",
    )


_mount_static_assets()
