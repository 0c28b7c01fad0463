import io

import pytest
from unittest.mock import MagicMock
from botocore.exceptions import ClientError, EndpointConnectionError

from vip.core.exceptions import ObjectNotFoundError, StorageError
from vip.core.storage import LocalImageStore, S3ImageStore, StorageFactory
from vip.modules.imagery.models import CacheKey


KEY = CacheKey(bucket="photos", image_id="cat.jpg", width=200, crop=True)


def client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


# =============================================================================
# LocalImageStore
# =============================================================================

@pytest.mark.asyncio
async def test_local_head_sniffs_content_type(store, image_factory):
    gif = image_factory(10, 10, "GIF")
    (store.base_path / "photos").mkdir(parents=True)
    (store.base_path / "photos" / "anim.bin").write_bytes(gif)

    metadata = await store.head("photos", "anim.bin")

    assert metadata.content_type == "image/gif"
    assert metadata.content_length == len(gif)


@pytest.mark.asyncio
async def test_local_missing_original(store):
    with pytest.raises(ObjectNotFoundError):
        await store.head("photos", "missing.jpg")
    with pytest.raises(ObjectNotFoundError):
        await store.read_original("photos", "missing.jpg")


@pytest.mark.asyncio
async def test_local_modified_round_trip(store):
    with pytest.raises(ObjectNotFoundError):
        await store.read_modified("photos", "cat.jpg", KEY)

    await store.write_modified(b"variant", "photos", "cat.jpg", KEY)

    assert await store.read_modified("photos", "cat.jpg", KEY) == b"variant"
    assert (store.base_path / "photos" / "modified" / "cat.jpg" / "s200_crop").is_file()
    assert await store.ping() is True


@pytest.mark.asyncio
async def test_local_paths_cannot_leave_storage_root(store, tmp_path):
    (tmp_path / "secret.txt").write_bytes(b"TOPSECRET")

    with pytest.raises(ObjectNotFoundError):
        await store.read_original("photos", "../../secret.txt")
    with pytest.raises(ObjectNotFoundError):
        await store.head("photos", "../../secret.txt")
    with pytest.raises(ObjectNotFoundError):
        await store.read_original("..", "secret.txt")
    with pytest.raises(ObjectNotFoundError):
        await store.read_original("photos", str(tmp_path / "secret.txt"))


@pytest.mark.asyncio
async def test_local_write_modified_stays_inside_storage_root(store, tmp_path):
    escaping = CacheKey(bucket="photos", image_id="../../../escaped", width=100)

    with pytest.raises(StorageError):
        await store.write_modified(b"variant", "photos", escaping.image_id, escaping)
    with pytest.raises(ObjectNotFoundError):
        await store.read_modified("photos", escaping.image_id, escaping)

    assert not (tmp_path / "escaped").exists()


@pytest.mark.asyncio
async def test_local_write_modified_uses_private_temp_file(store):
    variant_dir = store.base_path / "photos" / "modified" / "cat.jpg"
    variant_dir.mkdir(parents=True)
    # Another writer's temp file for the same variant
    (variant_dir / "s200_crop.tmp").write_bytes(b"half written")

    await store.write_modified(b"variant", "photos", "cat.jpg", KEY)

    assert (variant_dir / "s200_crop").read_bytes() == b"variant"
    assert (variant_dir / "s200_crop.tmp").read_bytes() == b"half written"
    assert sorted(p.name for p in variant_dir.iterdir()) == ["s200_crop", "s200_crop.tmp"]


# =============================================================================
# S3ImageStore
# =============================================================================

@pytest.mark.asyncio
async def test_s3_head_returns_content_type():
    client = MagicMock()
    client.head_object.return_value = {"ContentType": "image/gif", "ContentLength": 42}
    store = S3ImageStore(client=client)

    metadata = await store.head("photos", "cat.gif")

    assert metadata.content_type == "image/gif"
    assert metadata.content_length == 42
    client.head_object.assert_called_once_with(Bucket="photos", Key="cat.gif")


@pytest.mark.asyncio
async def test_s3_read_original_reads_body():
    client = MagicMock()
    client.get_object.return_value = {"Body": io.BytesIO(b"original bytes")}
    store = S3ImageStore(client=client)

    assert await store.read_original("photos", "cat.jpg") == b"original bytes"
    client.get_object.assert_called_once_with(Bucket="photos", Key="cat.jpg")


@pytest.mark.asyncio
async def test_s3_read_modified_uses_derived_key():
    client = MagicMock()
    client.get_object.side_effect = client_error("NoSuchKey")
    store = S3ImageStore(client=client, modified_prefix="variants")

    with pytest.raises(ObjectNotFoundError):
        await store.read_modified("photos", "cat.jpg", KEY)

    client.get_object.assert_called_once_with(Bucket="photos", Key="variants/cat.jpg/s200_crop")


@pytest.mark.asyncio
async def test_s3_errors_map_to_storage_error():
    client = MagicMock()
    client.get_object.side_effect = client_error("AccessDenied")
    client.head_object.side_effect = EndpointConnectionError(endpoint_url="http://s3")
    store = S3ImageStore(client=client)

    with pytest.raises(StorageError) as exc_info:
        await store.read_original("photos", "cat.jpg")
    assert not isinstance(exc_info.value, ObjectNotFoundError)
    assert exc_info.value.details["s3_code"] == "AccessDenied"

    with pytest.raises(StorageError):
        await store.head("photos", "cat.jpg")


@pytest.mark.asyncio
async def test_s3_write_modified_sets_content_type():
    client = MagicMock()
    store = S3ImageStore(client=client)

    await store.write_modified(b"\x89PNG\r\n\x1a\ndata", "photos", "cat.jpg", KEY)

    client.put_object.assert_called_once_with(
        Bucket="photos",
        Key="modified/cat.jpg/s200_crop",
        Body=b"\x89PNG\r\n\x1a\ndata",
        ContentType="image/png",
    )


def test_factory_returns_singleton(monkeypatch, tmp_path):
    from vip.core import storage as storage_module

    monkeypatch.setattr(storage_module.settings, "STORAGE_BACKEND", "local")
    monkeypatch.setattr(storage_module.settings, "LOCAL_STORAGE_PATH", str(tmp_path))
    StorageFactory.reset()
    try:
        first = StorageFactory.get_storage()
        assert isinstance(first, LocalImageStore)
        assert StorageFactory.get_storage() is first
    finally:
        StorageFactory.reset()


def test_factory_rejects_unknown_backend(monkeypatch):
    from vip.core import storage as storage_module

    monkeypatch.setattr(storage_module.settings, "STORAGE_BACKEND", "ftp")
    StorageFactory.reset()
    try:
        with pytest.raises(ValueError):
            StorageFactory.get_storage()
    finally:
        StorageFactory.reset()
