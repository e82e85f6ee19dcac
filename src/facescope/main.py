"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from facescope.api.handlers import register_exception_handlers
from facescope.api.routes import router
from facescope.config import Settings, get_settings
from facescope.ml.analyzer import OnnxFaceAnalyzer
from facescope.ml.inference import InferencePool
from facescope.ml.model_manager import OnnxModelManager

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Provision every model before the server accepts connections.

    Any failure propagates out of startup, so uvicorn exits without binding.
    """
    settings = get_settings()
    app.state.settings = settings
    configure_logging(settings)

    logger.info(
        "Starting FaceScope (device=%s, max_concurrent=%s, models_dir=%s)",
        settings.device,
        settings.max_concurrent,
        settings.models_dir,
    )

    model_manager = OnnxModelManager(settings)
    try:
        model_manager.load_all()
    except Exception:
        logger.exception("Failed to start server due to model loading error")
        raise
    app.state.model_manager = model_manager
    app.state.analyzer = OnnxFaceAnalyzer(model_manager, settings)
    logger.info("Face analysis models loaded: %s", ", ".join(model_manager.get_loaded_models()))

    inference_pool = InferencePool(settings)
    app.state.inference_pool = inference_pool

    logger.info("FaceScope ready")
    yield

    logger.info("Shutting down FaceScope")
    inference_pool.shutdown()
    model_manager.shutdown()
    logger.info("FaceScope shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    application = FastAPI(
        title="FaceScope",
        description="Face analysis API: bounding box, landmarks, age, gender and expressions",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(application)
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app once startup has provisioned the models."""
    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        lifespan="on",
        log_level=settings.log_level.lower(),
    )
