import io
import logging
import math

import numpy as np
from PIL import Image, UnidentifiedImageError

from app.errors import DecodeError

logger = logging.getLogger(__name__)

IMAGE_SIZE = 600
CHANNELS = 3


def _round_half_away(value: float) -> int:
    # Inputs are non-negative; Python's round() is banker's rounding.
    return int(math.floor(value + 0.5))


def _to_8bit(image: Image.Image) -> Image.Image:
    """Scale 16-bit integer samples down to 0-255 instead of clipping them."""
    arr = np.clip(np.asarray(image, dtype=np.int64), 0, 65535)
    return Image.fromarray(((arr + 128) // 257).astype(np.uint8))


def _fit_within(width: int, height: int, bound_w: int, bound_h: int) -> tuple[int, int]:
    """Largest size with the image's aspect ratio that fits inside the bounds."""
    ratio = min(bound_w / width, bound_h / height)
    return (
        max(_round_half_away(width * ratio), 1),
        max(_round_half_away(height * ratio), 1),
    )


class ImagePreprocessor:
    """Turns uploaded image bytes into the (1, S, S, 3) float32 tensor the graph expects.

    Pixel values stay in the raw 0-255 range; the frozen graph does its own
    scaling.
    """

    def __init__(self, target_size: int = IMAGE_SIZE):
        self.target_size = target_size

    def prepare(self, data: bytes) -> np.ndarray:
        image = self.decode(data)
        width, height = image.size
        if height > 2 * width:
            image = self.center_crop_tall(image)
        image = self.resize_aspect_ratio(image)
        padded = self.pad_to_square(image)
        return self.to_tensor(padded)

    def decode(self, data: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            SyntaxError,
            EOFError,
            ValueError,
        ) as e:
            raise DecodeError(f"Invalid image: {e}") from e

        if image.mode == "I" or image.mode.startswith("I;16"):
            image = _to_8bit(image)
        # Grayscale is replicated to three channels; alpha is dropped, not composited.
        if image.mode != "RGB":
            image = image.convert("RGB")
        return image

    def center_crop_tall(self, image: Image.Image) -> Image.Image:
        """Keep the middle 80% of the rows."""
        width, height = image.size
        crop_height = _round_half_away(float(np.float32(0.8) * np.float32(height)))
        top = (height - crop_height) // 2
        return image.crop((0, top, width, top + crop_height))

    def resize_aspect_ratio(self, image: Image.Image) -> Image.Image:
        width, height = image.size
        size = self.target_size
        aspect_ratio = np.float32(width) / np.float32(height)

        if aspect_ratio >= 1.0:
            bounds = (size, int(math.floor(np.float32(size) * aspect_ratio)))
        else:
            bounds = (int(math.floor(np.float32(size) / aspect_ratio)), size)

        if bounds == (width, height):
            return image

        new_size = _fit_within(width, height, *bounds)
        return image.resize(new_size, resample=Image.Resampling.LANCZOS)

    def pad_to_square(self, image: Image.Image) -> Image.Image:
        size = self.target_size
        width, height = image.size
        canvas = Image.new("RGB", (size, size), (0, 0, 0))
        x_offset = max(0, (size - width) // 2)
        y_offset = max(0, (size - height) // 2)
        canvas.paste(image.convert("RGB"), (x_offset, y_offset))
        return canvas

    def to_tensor(self, image: Image.Image) -> np.ndarray:
        arr = np.asarray(image, dtype=np.float32)
        return arr.reshape(1, self.target_size, self.target_size, CHANNELS)
