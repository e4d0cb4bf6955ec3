"""
Pipewatch API - Main entry point.
"""

import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from pipewatch.src.config import get_settings
from pipewatch.src.db.database import get_session_factory, init_db
from pipewatch.src.routes import (
    health_router,
    live_router,
    pipelines_router,
    subscriptions_router,
    webhooks_router,
)
from pipewatch.src.services.engine import ReconciliationEngine
from pipewatch.src.services.pipeline_parser import load_pipelines_file

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Pipewatch API")
    await init_db()

    engine = ReconciliationEngine(settings, get_session_factory())
    if settings.pipelines_file:
        configs = load_pipelines_file(settings.pipelines_file)
        await engine.pipelines.import_pipelines(configs)

    app.state.engine = engine
    await engine.start()
    yield
    # Shutdown
    logger.info("Shutting down Pipewatch API")
    await engine.stop()

app = FastAPI(
    title="Pipewatch",
    description="CI pipeline execution tracking and notifications",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health_router)
app.include_router(live_router)
app.include_router(pipelines_router, prefix="/api")
app.include_router(subscriptions_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")

@app.get("/")
async def root():
    return {
        "name": "Pipewatch",
        "version": "0.1.0",
        "docs": "/docs"
    }

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
