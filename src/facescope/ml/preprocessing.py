"""Image decoding and face-crop helpers shared by the ONNX model wrappers.

Decoded images are HxWx3 RGB uint8 arrays in source-pixel coordinates. All crops are
taken from the full, undownscaled image; each model resizes its own crop.
"""

from __future__ import annotations

import io
import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, UnidentifiedImageError

from facescope.errors import ImageDecodeError, ImageTooLargeError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from facescope.ml.face_detector import Box


@dataclass(frozen=True)
class DecodedImage:
    """Pixel buffer plus its source dimensions."""

    pixels: NDArray[np.uint8]
    width: int
    height: int


@dataclass(frozen=True)
class SquareCrop:
    """A resized square crop and the source-pixel square it was cut from."""

    pixels: NDArray[np.uint8]
    left: float
    top: float
    side: float

    def to_source(self, nx: float, ny: float) -> tuple[float, float]:
        """Map a point given as a fraction of the crop back to source pixels."""
        return self.left + nx * self.side, self.top + ny * self.side


def decode_image(data: bytes, max_pixels: int) -> DecodedImage:
    """Decode raw image bytes into an RGB uint8 numpy array.

    Args:
        data: Raw file bytes (any format Pillow supports).
        max_pixels: Upper bound on width * height.

    Raises:
        ImageTooLargeError: If the decoded image exceeds ``max_pixels``.
        ImageDecodeError: If the bytes are not a readable image.
    """
    try:
        with warnings.catch_warnings():
            # Pillow warns before its own bomb check; our limit is enforced below.
            warnings.simplefilter("ignore", Image.DecompressionBombWarning)
            image = Image.open(io.BytesIO(data))
            width, height = image.size
            if width * height > max_pixels:
                raise ImageTooLargeError(
                    f"Image has {width * height} pixels, limit is {max_pixels}",
                    details=f"{width}x{height} exceeds {max_pixels} pixels",
                )
            rgb = image.convert("RGB")
    except Image.DecompressionBombError as exc:
        raise ImageTooLargeError(str(exc), details=str(exc)) from exc
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageDecodeError(details=str(exc) or type(exc).__name__) from exc

    if width <= 0 or height <= 0:
        raise ImageDecodeError(details=f"Invalid image dimensions {width}x{height}")

    return DecodedImage(pixels=np.asarray(rgb, dtype=np.uint8), width=width, height=height)


def crop_square(pixels: NDArray[np.uint8], box: Box, scale: float, size: int) -> SquareCrop:
    """Cut a square around ``box`` enlarged by ``scale`` and resize it to ``size``.

    Regions outside the image are zero-filled.
    """
    side = max(box.width, box.height) * scale
    side = max(side, 1.0)
    cx = box.x + box.width / 2.0
    cy = box.y + box.height / 2.0
    left = cx - side / 2.0
    top = cy - side / 2.0

    image = Image.fromarray(pixels)
    region = (round(left), round(top), round(left + side), round(top + side))
    crop = image.crop(region).resize((size, size), Image.Resampling.BILINEAR)
    return SquareCrop(pixels=np.asarray(crop, dtype=np.uint8), left=left, top=top, side=side)


def to_nchw(pixels: NDArray[np.uint8], mean: float, std: float) -> NDArray[np.float32]:
    """Convert HxWxC uint8 to a normalized 1xCxHxW float32 tensor."""
    tensor = (pixels.astype(np.float32) - mean) / std
    return np.ascontiguousarray(tensor.transpose(2, 0, 1)[np.newaxis, ...])


def softmax(values: NDArray[np.float32]) -> NDArray[np.float32]:
    shifted = np.exp(values - np.max(values))
    return shifted / shifted.sum()
