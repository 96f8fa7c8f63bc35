"""API tests for the ad-hoc compare endpoint."""

import pytest

from diffit.imaging.codec import decode

from helpers import RED


def files(base: bytes, other: bytes) -> dict:
    return {
        "file-base": ("base.png", base, "image/png"),
        "file-other": ("other.png", other, "image/png"),
    }


@pytest.mark.asyncio
async def test_identical_images(client, make_png):
    response = await client.post("/api/compare", files=files(make_png(20, 20), make_png(20, 20)))
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert float(response.headers["X-Diff-Percentage"]) == 0.0
    assert response.headers["X-Diff-Pixels"] == "0"
    assert decode(response.content).size == (20, 20)


@pytest.mark.asyncio
async def test_changed_images(client, make_png):
    response = await client.post(
        "/api/compare", files=files(make_png(20, 20), make_png(20, 20, block=(5, 5, 10, RED)))
    )
    assert response.headers["X-Diff-Pixels"] == "100"
    assert float(response.headers["X-Diff-Percentage"]) == 25.0
    assert response.headers["X-Total-Pixels"] == "400"


@pytest.mark.asyncio
async def test_dimension_mismatch(client, make_png):
    response = await client.post("/api/compare", files=files(make_png(20, 20), make_png(21, 20)))
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "DIMENSION_MISMATCH"


@pytest.mark.asyncio
async def test_threshold_form_field(client, make_png):
    response = await client.post(
        "/api/compare",
        data={"threshold": "2.0"},
        files=files(make_png(4, 4), make_png(4, 4)),
    )
    assert response.status_code == 400
