from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

from ..core.errors import DataNotFound, DeleteFailed, InvalidAssetIdentifier, ReadFailed, WriteFailed
from .directory import Directory
from .paths import derive_path

logger = logging.getLogger(__name__)

DEFAULT_SUBFOLDER = "nest-local-storage"

T = TypeVar("T")


@runtime_checkable
class NestStorage(Protocol):
    """Blob storage keyed by asset identifier."""

    async def write(self, data: bytes, asset_identifier: str) -> None:
        """Store *data*, replacing any existing blob for the identifier."""
        ...

    async def read(self, asset_identifier: str) -> bytes:
        """Return the stored bytes; raises ``DataNotFound`` when absent."""
        ...

    async def delete(self, asset_identifier: str) -> None:
        """Remove the blob; raises ``DataNotFound`` when absent."""
        ...

    async def exists(self, asset_identifier: str) -> bool:
        ...

    async def delete_all(self) -> None:
        ...


class LocalStorage:
    """Blobs on the local filesystem under two levels of hashed shard directories.

    Writes and deletes are serialized through a single lock per instance, held
    on the worker thread so one instance can be shared between event loops.
    Every write lands through a rename, so a concurrent reader sees either the
    previous or the new content of a blob.
    """

    def __init__(self, base_directory: Path):
        self.base_directory = Path(base_directory)
        self._write_lock = threading.Lock()

    @classmethod
    def for_directory(cls, directory: Directory, subfolder: str = DEFAULT_SUBFOLDER) -> "LocalStorage":
        return cls(directory.path / subfolder)

    def file_path(self, asset_identifier: str) -> Path:
        return self.base_directory.joinpath(*derive_path(asset_identifier).parts)

    async def write(self, data: bytes, asset_identifier: str) -> None:
        path = self.file_path(asset_identifier)
        try:
            await asyncio.to_thread(self._locked, self._write_file, path, data)
        except OSError as exc:
            logger.error("Failed to write blob %s: %s", asset_identifier, exc)
            raise WriteFailed(exc) from exc
        logger.debug("Wrote %d bytes for %s", len(data), asset_identifier)

    async def read(self, asset_identifier: str) -> bytes:
        path = self.file_path(asset_identifier)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise DataNotFound(f"No data stored for asset {asset_identifier}") from exc
        except OSError as exc:
            raise ReadFailed(exc) from exc

    async def delete(self, asset_identifier: str) -> None:
        path = self.file_path(asset_identifier)
        try:
            await asyncio.to_thread(self._locked, path.unlink)
        except FileNotFoundError as exc:
            raise DataNotFound(f"No data stored for asset {asset_identifier}") from exc
        except OSError as exc:
            raise DeleteFailed(exc) from exc
        logger.debug("Deleted blob for %s", asset_identifier)

    async def exists(self, asset_identifier: str) -> bool:
        try:
            path = self.file_path(asset_identifier)
            return await asyncio.to_thread(path.is_file)
        except (OSError, ValueError, InvalidAssetIdentifier):
            return False

    async def delete_all(self) -> None:
        try:
            await asyncio.to_thread(self._locked, self._remove_tree, self.base_directory)
        except OSError as exc:
            raise DeleteFailed(exc) from exc
        logger.info("Removed storage root %s", self.base_directory)

    def _locked(self, operation: Callable[..., T], *args: Any) -> T:
        with self._write_lock:
            return operation(*args)

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @staticmethod
    def _remove_tree(path: Path) -> None:
        if path.exists():
            shutil.rmtree(path)
