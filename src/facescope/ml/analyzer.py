"""Face analysis capability: detection, landmarks, expressions, age and gender in one pass."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from facescope.ml.face_attributes import AgeGenderEstimator, ExpressionClassifier
from facescope.ml.face_detector import UltraFaceDetector
from facescope.ml.face_landmarks import LandmarkEstimator
from facescope.ml.face_recognizer import ArcFaceEmbedder
from facescope.ml.model_manager import ModelRole

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from facescope.config import Settings
    from facescope.ml.face_detector import Box
    from facescope.ml.face_landmarks import Point
    from facescope.ml.model_manager import ModelManager


@dataclass(frozen=True)
class FaceAnalysis:
    """Everything the capability reports about one detected face.

    Coordinates are in the pixel space of the image passed to ``detect_all``.
    """

    box: Box
    score: float
    landmarks: list[Point]
    expressions: dict[str, float]
    age: float
    gender: str
    gender_probability: float


class FaceAnalyzer(Protocol):
    """Protocol for the face analysis capability."""

    def detect_all(self, image: NDArray[np.uint8]) -> list[FaceAnalysis]:
        """Analyze every face in an image.

        Args:
            image: HxWx3 RGB uint8 array.

        Returns:
            One analysis per face in the detector's native order; empty if none.
        """
        ...


class OnnxFaceAnalyzer:
    """FaceAnalyzer backed by the five ONNX models of the model manager.

    Holds no per-call state, so one instance is shared by all requests.
    """

    def __init__(self, manager: ModelManager, settings: Settings) -> None:
        self.detector = UltraFaceDetector(
            manager.get_session(ModelRole.DETECTOR),
            min_confidence=settings.min_confidence,
            iou_threshold=settings.iou_threshold,
            max_faces=settings.max_faces,
        )
        self.landmarks = LandmarkEstimator(manager.get_session(ModelRole.LANDMARKS))
        self.expressions = ExpressionClassifier(manager.get_session(ModelRole.EXPRESSION))
        self.age_gender = AgeGenderEstimator(manager.get_session(ModelRole.AGE_GENDER))
        self.embedder = ArcFaceEmbedder(manager.get_session(ModelRole.RECOGNITION))

    def detect_all(self, image: NDArray[np.uint8]) -> list[FaceAnalysis]:
        results: list[FaceAnalysis] = []
        for detection in self.detector.detect(image):
            age, gender, gender_probability = self.age_gender.estimate(image, detection.box)
            results.append(
                FaceAnalysis(
                    box=detection.box,
                    score=detection.score,
                    landmarks=self.landmarks.estimate(image, detection.box),
                    expressions=self.expressions.classify(image, detection.box),
                    age=age,
                    gender=gender,
                    gender_probability=gender_probability,
                )
            )
        return results
