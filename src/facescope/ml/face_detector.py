"""UltraFace (RFB-640) face detector.

The model is a single-shot detector that scores a fixed set of anchors on a 640x480
input and returns normalized corner boxes. Results are filtered, suppressed and
scaled back to the source image here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from facescope.ml.preprocessing import to_nchw

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

INPUT_WIDTH = 640
INPUT_HEIGHT = 480
OUTPUT_NAMES = ["scores", "boxes"]


@dataclass(frozen=True)
class Box:
    """Axis-aligned rectangle in source-pixel coordinates, top-left origin."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> Box:
        return cls(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


@dataclass(frozen=True)
class RawDetection:
    """A face box and its detector score, before landmarks and attributes."""

    box: Box
    score: float


def non_max_suppression(
    corners: NDArray[np.float32], scores: NDArray[np.float32], iou_threshold: float, limit: int
) -> list[int]:
    """Greedy NMS. Returns kept indices ordered by descending score."""
    x1, y1, x2, y2 = corners[:, 0], corners[:, 1], corners[:, 2], corners[:, 3]
    areas = np.clip(x2 - x1, 0, None) * np.clip(y2 - y1, 0, None)
    order = np.argsort(-scores, kind="stable")

    keep: list[int] = []
    while order.size > 0 and len(keep) < limit:
        best = int(order[0])
        keep.append(best)
        rest = order[1:]

        inter_w = np.clip(np.minimum(x2[best], x2[rest]) - np.maximum(x1[best], x1[rest]), 0, None)
        inter_h = np.clip(np.minimum(y2[best], y2[rest]) - np.maximum(y1[best], y1[rest]), 0, None)
        inter = inter_w * inter_h
        union = areas[best] + areas[rest] - inter
        iou = np.divide(inter, union, out=np.zeros_like(inter), where=union > 0)
        order = rest[iou <= iou_threshold]
    return keep


class UltraFaceDetector:
    """Runs the detector session and post-processes its anchors."""

    def __init__(
        self,
        session: InferenceSession,
        *,
        min_confidence: float,
        iou_threshold: float,
        max_faces: int,
    ) -> None:
        self._session = session
        self._input_name = session.get_inputs()[0].name
        self._min_confidence = min_confidence
        self._iou_threshold = iou_threshold
        self._max_faces = max_faces

    def detect(self, image: NDArray[np.uint8]) -> list[RawDetection]:
        """Detect faces in an image.

        Args:
            image: HxWx3 RGB uint8 array.

        Returns:
            Detections in source-pixel coordinates, highest score first.
        """
        height, width = image.shape[:2]
        resized = Image.fromarray(image).resize((INPUT_WIDTH, INPUT_HEIGHT), Image.Resampling.BILINEAR)
        tensor = to_nchw(np.asarray(resized), mean=127.0, std=128.0)

        scores, boxes = self._session.run(OUTPUT_NAMES, {self._input_name: tensor})
        probs = np.asarray(scores, dtype=np.float32).reshape(-1, 2)[:, 1]
        corners = np.asarray(boxes, dtype=np.float32).reshape(-1, 4)

        mask = probs >= self._min_confidence
        if not mask.any():
            return []
        probs = probs[mask]
        corners = corners[mask]

        keep = non_max_suppression(corners, probs, self._iou_threshold, self._max_faces)

        detections: list[RawDetection] = []
        for idx in keep:
            x1, y1, x2, y2 = corners[idx]
            x1 = float(np.clip(x1 * width, 0, width))
            y1 = float(np.clip(y1 * height, 0, height))
            x2 = float(np.clip(x2 * width, 0, width))
            y2 = float(np.clip(y2 * height, 0, height))
            if x2 <= x1 or y2 <= y1:
                continue
            detections.append(RawDetection(box=Box.from_corners(x1, y1, x2, y2), score=float(probs[idx])))
        return detections
