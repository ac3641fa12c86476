from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from authordeploy import db
from authordeploy.db import init_db
from authordeploy.api import operators, provisioning
from authordeploy.api.utils import register_exception_handlers
from authordeploy.logging_config import configure_logging
from authordeploy.services.tracker import ReconciliationLoop
from authordeploy.settings import load_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    init_db(db.engine)
    loop: ReconciliationLoop | None = None
    if settings.run_tracker:
        loop = ReconciliationLoop(engine=db.engine, interval=settings.tracker_interval_sec)
        loop.start()
    try:
        yield
    finally:
        if loop is not None:
            # Joining the loop thread blocks; keep it off the event loop.
            await asyncio.to_thread(loop.stop, settings.tracker_interval_sec)


app = FastAPI(
    title="Author Platform Deploy",
    description="Orchestrates deployments of the author platform onto remote compute instances",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", include_in_schema=False)
def root() -> RedirectResponse:
    """Redirect root URL to Swagger UI docs."""
    return RedirectResponse(url="/docs")


app.include_router(operators.router)
app.include_router(provisioning.router)

register_exception_handlers(app)

if __name__ == "__main__":
    configure_logging()
    uvicorn.run("authordeploy.main:app", host="0.0.0.0", port=8001, log_level="info", reload=True)
