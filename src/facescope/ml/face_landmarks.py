"""68-point facial landmark regression on a square face crop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from facescope.ml.preprocessing import crop_square, to_nchw

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from facescope.ml.face_detector import Box

NUM_LANDMARKS = 68
INPUT_SIZE = 112
CROP_SCALE = 1.2


@dataclass(frozen=True)
class Point:
    x: float
    y: float


class LandmarkEstimator:
    def __init__(self, session: InferenceSession) -> None:
        self._session = session
        self._input_name = session.get_inputs()[0].name

    def estimate(self, image: NDArray[np.uint8], box: Box) -> list[Point]:
        """Return the 68 landmarks of the face in ``box``, in source pixels.

        Point order is the model's (jaw line first, then brows, nose, eyes, mouth).

        Raises:
            ValueError: If the model does not produce exactly 68 points.
        """
        crop = crop_square(image, box, scale=CROP_SCALE, size=INPUT_SIZE)
        tensor = to_nchw(crop.pixels, mean=0.0, std=255.0)
        (output,) = self._session.run(None, {self._input_name: tensor})[:1]

        coords = np.asarray(output, dtype=np.float32).reshape(-1)
        if coords.size != NUM_LANDMARKS * 2:
            raise ValueError(f"Landmark model returned {coords.size // 2} points, expected {NUM_LANDMARKS}")

        points = []
        for nx, ny in coords.reshape(NUM_LANDMARKS, 2):
            x, y = crop.to_source(float(nx), float(ny))
            points.append(Point(x=x, y=y))
        return points
