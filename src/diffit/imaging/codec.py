"""PNG/JPEG decoding into RGBA pixel buffers and PNG encoding of diff masks."""

import io
from dataclasses import dataclass

import numpy as np
from PIL import Image, UnidentifiedImageError

from diffit.errors.exceptions import DecodeError

# zlib level 1: diff masks are written once per snapshot and read rarely.
PNG_COMPRESS_LEVEL = 1


@dataclass(frozen=True)
class PixelBuffer:
    """RGBA image as a ``(height, width, 4)`` uint8 array."""

    width: int
    height: int
    pixels: np.ndarray

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "PixelBuffer":
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"expected an (h, w, 4) array, got shape {pixels.shape}")
        pixels = np.ascontiguousarray(pixels, dtype=np.uint8)
        return cls(width=pixels.shape[1], height=pixels.shape[0], pixels=pixels)

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def total_pixels(self) -> int:
        return self.width * self.height


def decode(data: bytes) -> PixelBuffer:
    """Decode PNG (or any Pillow-readable raster) bytes into an RGBA buffer."""
    if not data:
        raise DecodeError("Image payload is empty")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            rgba = img.convert("RGBA")
    except Image.DecompressionBombError as exc:
        raise DecodeError("Image exceeds the maximum decodable size", {"reason": str(exc)}) from exc
    except UnidentifiedImageError as exc:
        raise DecodeError("Unsupported or unrecognised image format") from exc
    except (OSError, EOFError, SyntaxError, ValueError) as exc:
        raise DecodeError("Image data is corrupt or truncated", {"reason": str(exc)}) from exc

    if rgba.width == 0 or rgba.height == 0:
        raise DecodeError("Image has no pixels")
    return PixelBuffer.from_array(np.asarray(rgba, dtype=np.uint8))


def encode(buffer: PixelBuffer) -> bytes:
    """Encode an RGBA buffer as PNG. Output is byte-identical for identical input."""
    img = Image.fromarray(buffer.pixels)
    out = io.BytesIO()
    img.save(out, format="PNG", compress_level=PNG_COMPRESS_LEVEL)
    return out.getvalue()
