"""Filesystem blob store tests."""

import pytest

from diffit.errors.exceptions import StorageError
from diffit.models.enums import ImageKind
from diffit.storage.blob_store import baseline_key, snapshot_key, snapshot_prefix


def test_key_layout():
    assert snapshot_key("snap_1", ImageKind.DIFF) == "snapshots/snap_1/diff.png"
    assert snapshot_key("snap_1", "comparison") == "snapshots/snap_1/comparison.png"
    assert baseline_key("bsl_1") == "baselines/bsl_1/image.png"


@pytest.mark.asyncio
async def test_put_get_delete(blob_store):
    key = snapshot_key("snap_a", ImageKind.COMPARISON)
    await blob_store.put(key, b"payload")
    assert await blob_store.exists(key)
    assert await blob_store.get(key) == b"payload"
    assert await blob_store.delete(key) is True
    assert await blob_store.delete(key) is False


@pytest.mark.asyncio
async def test_get_missing_raises_storage_error(blob_store):
    with pytest.raises(StorageError) as exc_info:
        await blob_store.get("snapshots/nope/base.png")
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_copy_and_delete_prefix(blob_store):
    src = snapshot_key("snap_b", ImageKind.COMPARISON)
    await blob_store.put(src, b"img")
    await blob_store.copy(src, baseline_key("bsl_b"))
    assert await blob_store.get(baseline_key("bsl_b")) == b"img"

    await blob_store.delete_prefix(snapshot_prefix("snap_b"))
    assert not await blob_store.exists(src)
    assert await blob_store.exists(baseline_key("bsl_b"))


@pytest.mark.asyncio
async def test_copy_missing_source(blob_store):
    with pytest.raises(StorageError):
        await blob_store.copy("snapshots/missing/comparison.png", baseline_key("bsl_x"))


@pytest.mark.asyncio
async def test_rejects_keys_outside_root(blob_store):
    with pytest.raises(StorageError):
        await blob_store.put("../escape.png", b"x")


@pytest.mark.asyncio
async def test_put_leaves_no_temp_files(blob_store):
    key = snapshot_key("snap_c", ImageKind.BASE)
    await blob_store.put(key, b"first")
    await blob_store.put(key, b"second")
    assert await blob_store.get(key) == b"second"
    assert sorted(p.name for p in (blob_store.root / "snapshots" / "snap_c").iterdir()) == ["base.png"]


@pytest.mark.asyncio
async def test_list_keys(blob_store):
    await blob_store.put(snapshot_key("snap_d", ImageKind.COMPARISON), b"c")
    await blob_store.put(snapshot_key("snap_d", ImageKind.DIFF), b"d")
    await blob_store.put(baseline_key("bsl_d"), b"b")

    assert await blob_store.list_keys() == [
        "baselines/bsl_d/image.png",
        "snapshots/snap_d/comparison.png",
        "snapshots/snap_d/diff.png",
    ]
    assert await blob_store.list_keys(snapshot_prefix("snap_d")) == [
        "snapshots/snap_d/comparison.png",
        "snapshots/snap_d/diff.png",
    ]
    assert await blob_store.list_keys(snapshot_prefix("snap_missing")) == []


@pytest.mark.asyncio
async def test_delete_prefix_removes_nested_blobs_and_ignores_missing(blob_store):
    await blob_store.put("snapshots/snap_e/extra/nested.png", b"n")
    await blob_store.put(snapshot_key("snap_e", ImageKind.BASE), b"b")

    await blob_store.delete_prefix(snapshot_prefix("snap_e"))
    await blob_store.delete_prefix(snapshot_prefix("snap_e"))

    assert await blob_store.list_keys() == []
    assert not (blob_store.root / "snapshots" / "snap_e").exists()
