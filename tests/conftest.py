import io
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from PIL import Image

from vip.core.storage import LocalImageStore, StorageFactory


def make_image(
    width: int,
    height: int,
    fmt: str = "JPEG",
    color=(200, 40, 40),
    orientation: Optional[int] = None,
) -> bytes:
    """Encode a solid-color test image, optionally tagged with an EXIF orientation."""
    mode = "P" if fmt == "GIF" else "RGB"
    image = Image.new("RGB", (width, height), color)
    if mode == "P":
        image = image.convert("P")

    buffer = io.BytesIO()
    if orientation is not None:
        exif = Image.Exif()
        exif[0x0112] = orientation
        image.save(buffer, format=fmt, exif=exif)
    else:
        image.save(buffer, format=fmt)
    return buffer.getvalue()


def image_size(data: bytes):
    with Image.open(io.BytesIO(data)) as image:
        return image.size, image.format


@pytest.fixture
def jpeg_800x600() -> bytes:
    return make_image(800, 600, "JPEG")


@pytest.fixture
def store(tmp_path) -> LocalImageStore:
    return LocalImageStore(base_path=str(tmp_path / "storage"))


@pytest_asyncio.fixture
async def client(store) -> AsyncGenerator[AsyncClient, None]:
    from vip.main import app

    StorageFactory._instance = store
    try:
        # Trigger lifespan events (startup/shutdown)
        async with app.router.lifespan_context(app):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                yield ac
    finally:
        StorageFactory.reset()


@pytest.fixture
def image_factory():
    return make_image


@pytest.fixture
def inspect_image():
    return image_size
