"""Image codec tests."""

import io

import numpy as np
import pytest
from PIL import Image

from diffit.errors.exceptions import DecodeError
from diffit.imaging.codec import PixelBuffer, decode, encode

from helpers import RED, png_bytes, solid


def test_decode_png_to_rgba():
    buf = decode(png_bytes(solid(4, 3, RED)))
    assert buf.size == (4, 3)
    assert buf.pixels.shape == (3, 4, 4)
    assert buf.pixels.dtype == np.uint8
    assert tuple(buf.pixels[0, 0]) == RED


def test_decode_rgb_jpeg_gets_opaque_alpha():
    out = io.BytesIO()
    Image.new("RGB", (8, 8), (10, 20, 30)).save(out, format="JPEG")
    buf = decode(out.getvalue())
    assert buf.size == (8, 8)
    assert (buf.pixels[..., 3] == 255).all()


@pytest.mark.parametrize("payload", [b"", b"not an image", png_bytes(solid(4, 4))[:20]])
def test_decode_rejects_malformed_input(payload):
    with pytest.raises(DecodeError) as exc_info:
        decode(payload)
    assert exc_info.value.status_code == 422
    assert exc_info.value.code == "DECODE_ERROR"


def test_encode_round_trips_pixels():
    pixels = solid(5, 5)
    pixels[2, 2] = (255, 0, 0, 204)
    original = PixelBuffer.from_array(pixels)
    assert np.array_equal(decode(encode(original)).pixels, pixels)


def test_encode_is_deterministic():
    buf = PixelBuffer.from_array(solid(32, 32, RED))
    assert encode(buf) == encode(buf)


def test_from_array_rejects_wrong_shape():
    with pytest.raises(ValueError):
        PixelBuffer.from_array(np.zeros((4, 4, 3), dtype=np.uint8))
