"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crete.config import get_settings
from crete.api import api_router

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Starting {settings.app_name}")
    yield
    logger.info(f"Shutting down {settings.app_name}")


app = FastAPI(
    title=settings.app_name,
    description="""
    Crete Trick Analysis API

    Upload a skateboarding clip, trim it to the trick, and get back a pose-based
    motion trace plus an AI coach verdict.

    ## Pipeline

    - **Frame sampling**: evenly spaced seeks over the trim window (30 FPS by default)
    - **Pose estimation**: MediaPipe Pose landmarks, one frame at a time
    - **Board kinematics**: board center, board angle/height, shoulder rotation
    - **Motion trace**: per-frame records plus a CSV export of the numeric channels
    - **Narration**: trick name, score, and coaching tips from the clip and the trace

    ## Run generations

    Re-trimming or deleting an analysis bumps its run generation. Work still in
    flight for an older generation is abandoned and never written back.
    """,
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": "1.0.0"
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "health": "/health"
    }
