"""Filesystem blob store for snapshot and baseline images.

Keys are relative POSIX paths (``snapshots/{snapshot_id}/{kind}.png``,
``baselines/{baseline_id}/image.png``). File I/O goes through ``aiofiles``
so request handlers never block the event loop.
"""

import errno
import logging
import os
import uuid
from pathlib import Path

import aiofiles
import aiofiles.os

from diffit.errors.exceptions import StorageError
from diffit.models.enums import ImageKind

logger = logging.getLogger(__name__)


def snapshot_key(snapshot_id: str, kind: ImageKind | str) -> str:
    return f"snapshots/{snapshot_id}/{ImageKind(kind).value}.png"


def snapshot_prefix(snapshot_id: str) -> str:
    return f"snapshots/{snapshot_id}"


def baseline_key(baseline_id: str) -> str:
    return f"baselines/{baseline_id}/image.png"


def baseline_prefix(baseline_id: str) -> str:
    return f"baselines/{baseline_id}"


class BlobStore:
    """Stores opaque byte blobs under a root directory."""

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path == self.root or self.root not in path.parents:
            raise StorageError(f"Invalid blob key '{key}'")
        return path

    async def _write(self, path: Path, data: bytes) -> None:
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            async with aiofiles.open(tmp, "wb") as f:
                await f.write(data)
            await aiofiles.os.replace(tmp, path)
        except OSError:
            if await aiofiles.os.path.exists(tmp):
                await aiofiles.os.remove(tmp)
            raise

    async def _read(self, path: Path) -> bytes:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def _remove_tree(self, path: Path) -> None:
        for entry in await aiofiles.os.listdir(path):
            child = path / entry
            try:
                if await aiofiles.os.path.isdir(child):
                    await self._remove_tree(child)
                else:
                    await aiofiles.os.remove(child)
            except FileNotFoundError:
                continue
        try:
            await aiofiles.os.rmdir(path)
        except OSError as exc:
            if exc.errno != errno.ENOTEMPTY:
                raise
            # A concurrent writer landed a file; whoever wrote it removes it.
            logger.debug("blob_prefix_busy", extra={"path": str(path)})

    async def put(self, key: str, data: bytes) -> str:
        path = self._path(key)
        try:
            await self._write(path, data)
        except OSError as exc:
            raise StorageError(f"Failed to write blob '{key}'", {"reason": str(exc)}) from exc
        return key

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await self._read(path)
        except FileNotFoundError as exc:
            raise StorageError(f"Blob '{key}' does not exist", {"key": key}) from exc
        except OSError as exc:
            raise StorageError(f"Failed to read blob '{key}'", {"reason": str(exc)}) from exc

    async def exists(self, key: str) -> bool:
        return await aiofiles.os.path.isfile(self._path(key))

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            await aiofiles.os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete blob '{key}'", {"reason": str(exc)}) from exc

    async def delete_prefix(self, prefix: str) -> None:
        """Remove every blob under ``prefix``. Missing prefixes are ignored."""
        path = self._path(prefix)
        try:
            await self._remove_tree(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"Failed to delete blobs under '{prefix}'", {"reason": str(exc)}) from exc

    async def list_keys(self, prefix: str = "") -> list[str]:
        """Every stored key under ``prefix``, sorted. Temp files are skipped."""
        base = self._path(prefix) if prefix else self.root
        keys: list[str] = []
        pending = [base]
        while pending:
            current = pending.pop()
            try:
                entries = await aiofiles.os.listdir(current)
            except FileNotFoundError:
                continue
            for entry in entries:
                child = current / entry
                if await aiofiles.os.path.isdir(child):
                    pending.append(child)
                elif not entry.endswith(".tmp"):
                    keys.append(child.relative_to(self.root).as_posix())
        return sorted(keys)

    async def copy(self, src_key: str, dst_key: str) -> str:
        src, dst = self._path(src_key), self._path(dst_key)
        try:
            await self._write(dst, await self._read(src))
        except FileNotFoundError as exc:
            raise StorageError(f"Blob '{src_key}' does not exist", {"key": src_key}) from exc
        except OSError as exc:
            raise StorageError(
                f"Failed to copy blob '{src_key}' to '{dst_key}'", {"reason": str(exc)}
            ) from exc
        logger.debug("blob_copied", extra={"src": src_key, "dst": dst_key})
        return dst_key
