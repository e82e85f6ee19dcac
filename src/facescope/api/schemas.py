"""Pydantic request/response schemas for the FaceScope API."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)


class BoundingBox(_CamelModel):
    """Axis-aligned face box in source-image pixels, top-left origin."""

    x: float
    y: float
    width: float
    height: float


class LandmarkPoint(_CamelModel):
    x: float
    y: float


class ImageDimensions(_CamelModel):
    """Size of the decoded source image that all coordinates refer to."""

    width: int = Field(gt=0)
    height: int = Field(gt=0)


class AnalysisResponse(_CamelModel):
    """Analysis of the first detected face."""

    bounding_box: BoundingBox
    landmarks: list[LandmarkPoint] = Field(description="Ordered landmark points (68-point scheme)")
    age: int = Field(ge=0, description="Estimated age in years, rounded")
    gender: str = Field(description="'male' or 'female'")
    gender_probability: float = Field(ge=0.0, le=1.0)
    expressions: dict[str, Annotated[float, Field(ge=0.0, le=1.0)]] = Field(
        description="Expression name -> probability (0.0-1.0)"
    )
    image_dimensions: ImageDimensions


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    device: str
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about one model artifact."""

    role: str = Field(
        description="Model role: 'detector', 'landmarks', 'recognition', 'expression', or 'age_gender'"
    )
    filename: str
    description: str
    status: str = Field(description="Model status: 'loaded', 'available', or 'missing'")


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    details: str | None = None
