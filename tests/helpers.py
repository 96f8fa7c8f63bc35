"""Image and row builders shared by the test modules."""

import io

import numpy as np
from PIL import Image

from diffit.repositories.build_repo import BuildRepository
from diffit.services.id_generator import BUILD_PREFIX, generate_id

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)
RED = (255, 0, 0, 255)


def solid(width: int, height: int, color=WHITE) -> np.ndarray:
    """An (h, w, 4) uint8 array filled with one RGBA colour."""
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[...] = color
    return pixels


def png_bytes(pixels: np.ndarray) -> bytes:
    out = io.BytesIO()
    Image.fromarray(pixels).save(out, format="PNG")
    return out.getvalue()


async def new_build(session, project_id: str, branch: str = "main", **kwargs):
    repo = BuildRepository(session)
    row = await repo.create(
        build_id=generate_id(BUILD_PREFIX),
        project_id=project_id,
        build_number=await repo.next_build_number(project_id),
        branch=branch,
        status="pending",
        **kwargs,
    )
    await session.commit()
    return row
