"""API route definitions."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, File, Request, UploadFile, status

from facescope.api.schemas import (
    AnalysisResponse,
    BoundingBox,
    ErrorResponse,
    HealthResponse,
    ImageDimensions,
    LandmarkPoint,
    ModelInfo,
    ModelsResponse,
)
from facescope.errors import (
    AnalysisError,
    FaceScopeError,
    ImageTooLargeError,
    MissingImageError,
    NoFaceDetectedError,
)
from facescope.ml.model_manager import MODEL_REGISTRY
from facescope.ml.preprocessing import decode_image

if TYPE_CHECKING:
    from facescope.config import Settings
    from facescope.ml.analyzer import FaceAnalysis, FaceAnalyzer
    from facescope.ml.inference import InferencePool
    from facescope.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)

router = APIRouter()

LANDMARK_LOG_SAMPLE = 5


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_analyzer(request: Request) -> FaceAnalyzer:
    analyzer: FaceAnalyzer = request.app.state.analyzer
    return analyzer


def _get_model_manager(request: Request) -> ModelManager | None:
    return getattr(request.app.state, "model_manager", None)


def build_analysis_response(face: FaceAnalysis, width: int, height: int) -> AnalysisResponse:
    """Serialize one face against the dimensions of the image it was found in.

    Age is rounded half-up. Non-finite or out-of-range values fail schema validation.
    """
    return AnalysisResponse(
        bounding_box=BoundingBox(x=face.box.x, y=face.box.y, width=face.box.width, height=face.box.height),
        landmarks=[LandmarkPoint(x=p.x, y=p.y) for p in face.landmarks],
        age=max(0, math.floor(face.age + 0.5)),
        gender=face.gender,
        gender_probability=face.gender_probability,
        expressions=dict(face.expressions),
        image_dimensions=ImageDimensions(width=width, height=height),
    )


@router.post(
    "/predict_face",
    response_model=AnalysisResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Analyze the first face in an uploaded image",
)
async def predict_face(
    request: Request,
    image: Annotated[UploadFile | None, File(description="Image file (JPEG, PNG, ...)")] = None,
) -> AnalysisResponse:
    """Detect faces and return box, landmarks, age, gender and expressions of the first one."""
    if image is None:
        raise MissingImageError

    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    analyzer = _get_analyzer(request)

    if image.size is not None and image.size > settings.max_file_size:
        raise ImageTooLargeError(details=f"Upload exceeds {settings.max_file_size} bytes")
    data = await image.read()
    if len(data) > settings.max_file_size:
        raise ImageTooLargeError(details=f"Upload exceeds {settings.max_file_size} bytes")

    try:
        decoded = await pool.run(decode_image, data, settings.max_image_pixels)
        faces = await pool.run(analyzer.detect_all, decoded.pixels)
        if not faces:
            raise NoFaceDetectedError
        response = build_analysis_response(faces[0], decoded.width, decoded.height)
    except FaceScopeError as exc:
        logger.warning("Face analysis rejected %s: %s", image.filename, exc.details or exc)
        raise
    except Exception as exc:
        logger.exception("Face analysis error for %s", image.filename)
        raise AnalysisError(details=str(exc) or type(exc).__name__) from exc

    logger.info("Image dimensions: %dx%d", decoded.width, decoded.height)
    logger.info("Detection box: %s", response.bounding_box.model_dump())
    logger.info(
        "Landmarks sample: %s",
        [p.model_dump() for p in response.landmarks[:LANDMARK_LOG_SAMPLE]],
    )
    return response


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    manager = _get_model_manager(request)
    return HealthResponse(
        status="ok",
        device=settings.device,
        models_loaded=manager.get_loaded_models() if manager is not None else [],
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List model artifacts",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return each model role with its file and load status."""
    settings = _get_settings(request)
    manager = _get_model_manager(request)
    loaded = set(manager.get_loaded_models()) if manager is not None else set()

    models: list[ModelInfo] = []
    for role, spec in MODEL_REGISTRY.items():
        if role in loaded:
            model_status = "loaded"
        elif (settings.models_dir / spec.filename).is_file():
            model_status = "available"
        else:
            model_status = "missing"

        models.append(
            ModelInfo(
                role=role,
                filename=spec.filename,
                description=spec.description,
                status=model_status,
            )
        )

    return ModelsResponse(models=models)
