"""Per-face attribute models: expression classification and age/gender estimation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from facescope.ml.preprocessing import crop_square, softmax, to_nchw

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from facescope.ml.face_detector import Box

# FER+ output order -> reported expression name. Contempt has no counterpart.
FERPLUS_EXPRESSIONS: dict[int, str] = {
    0: "neutral",
    1: "happy",
    2: "surprised",
    3: "sad",
    4: "angry",
    5: "disgusted",
    6: "fearful",
}
EXPRESSION_INPUT_SIZE = 64

AGE_GENDER_INPUT_SIZE = 96
AGE_GENDER_CROP_SCALE = 1.5
GENDER_LABELS = ("female", "male")


class ExpressionClassifier:
    """FER+ emotion classifier over a grayscale face crop."""

    def __init__(self, session: InferenceSession) -> None:
        self._session = session
        self._input_name = session.get_inputs()[0].name

    def classify(self, image: NDArray[np.uint8], box: Box) -> dict[str, float]:
        """Return expression probabilities, each in [0, 1], summing to 1."""
        crop = crop_square(image, box, scale=1.0, size=EXPRESSION_INPUT_SIZE)
        gray = np.asarray(Image.fromarray(crop.pixels).convert("L"), dtype=np.float32)
        tensor = gray[np.newaxis, np.newaxis, :, :]

        (output,) = self._session.run(None, {self._input_name: tensor})[:1]
        logits = np.asarray(output, dtype=np.float32).reshape(-1)
        kept = softmax(logits[list(FERPLUS_EXPRESSIONS)])
        return {name: float(prob) for name, prob in zip(FERPLUS_EXPRESSIONS.values(), kept, strict=True)}


class AgeGenderEstimator:
    """InsightFace-style attribute head: two gender scores followed by age / 100."""

    def __init__(self, session: InferenceSession) -> None:
        self._session = session
        self._input_name = session.get_inputs()[0].name

    def estimate(self, image: NDArray[np.uint8], box: Box) -> tuple[float, str, float]:
        """Return ``(age, gender, gender_probability)`` for the face in ``box``."""
        crop = crop_square(image, box, scale=AGE_GENDER_CROP_SCALE, size=AGE_GENDER_INPUT_SIZE)
        tensor = to_nchw(crop.pixels, mean=0.0, std=1.0)

        (output,) = self._session.run(None, {self._input_name: tensor})[:1]
        pred = np.asarray(output, dtype=np.float32).reshape(-1)
        if pred.size < 3:
            raise ValueError(f"Age/gender model returned {pred.size} values, expected 3")

        gender_probs = softmax(pred[:2])
        label = int(np.argmax(gender_probs))
        age = max(0.0, float(pred[2]) * 100.0)
        return age, GENDER_LABELS[label], float(gender_probs[label])
