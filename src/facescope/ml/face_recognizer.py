"""ArcFace-style face embedding model.

The recognition model is provisioned with the rest of the capability but no endpoint
exposes embeddings yet.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from facescope.ml.preprocessing import crop_square, to_nchw

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from facescope.ml.face_detector import Box

INPUT_SIZE = 112


class ArcFaceEmbedder:
    def __init__(self, session: InferenceSession) -> None:
        self._session = session
        self._input_name = session.get_inputs()[0].name

    def embed(self, image: NDArray[np.uint8], box: Box) -> NDArray[np.float32]:
        """Return the L2-normalized embedding of the face in ``box``.

        Args:
            image: HxWx3 RGB uint8 array.
            box: Face box in source pixels.

        Returns:
            1-D float32 embedding (512 values for the bundled model).
        """
        crop = crop_square(image, box, scale=1.0, size=INPUT_SIZE)
        tensor = to_nchw(crop.pixels, mean=127.5, std=127.5)
        (output,) = self._session.run(None, {self._input_name: tensor})[:1]

        vector = np.asarray(output, dtype=np.float32).reshape(-1)
        norm = float(np.linalg.norm(vector))
        if norm == 0.0:
            return vector
        return vector / norm
