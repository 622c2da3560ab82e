"""The asset coordinator.

``AssetsNest`` keeps a blob store and a metadata database in step without a
shared transaction, so every mutation follows a fixed order:

* create/update: write the blob, then add/update the metadata record. A failed
  blob write leaves the metadata untouched. A failed metadata write after a
  successful blob write leaves an orphan blob, invisible to every query.
* delete: delete the blob (an already-missing blob is tolerated), then always
  delete the metadata record.

The metadata database decides whether an asset exists. An asset whose record
exists but whose blob does not surfaces as ``DataNotFound`` on reads.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Iterable, Sequence, Union

from ..core.config import Settings, get_settings
from ..core.errors import AssetNotFound, DataNotFound
from ..schemas.asset import AssetIdentifier, AssetType, NestAsset, validate_metadata
from ..schemas.query import QueryFilter, type_filters
from .asset_database import NestDatabase, SqlAssetDatabase
from .notifications import ChangeCallback
from .storage import LocalStorage, NestStorage

logger = logging.getLogger(__name__)

IdentifierLike = Union[AssetIdentifier, str]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AssetsNest:
    def __init__(self, storage: NestStorage, database: NestDatabase):
        self.storage = storage
        self.database = database

    async def create_asset(
        self,
        data: bytes,
        type: AssetType,
        metadata: dict[str, Any] | None = None,
    ) -> NestAsset:
        """Store *data* as a new asset and return its record."""

        asset = NestAsset(
            id=str(uuid.uuid4()),
            type=type,
            created_at=_now(),
            modified_at=None,
            file_size=len(data),
            metadata=validate_metadata(metadata),
        )
        await self._save_asset(asset, data, is_new=True)
        logger.debug("Created asset %s (%s, %d bytes)", asset.id, asset.type, asset.file_size)
        return asset

    async def update_asset(
        self,
        identifier: IdentifierLike,
        data: bytes,
        type: AssetType | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Replace the data of an existing asset.

        ``type`` and ``metadata`` keep their current values when omitted; the id
        and creation time never change.
        """

        existing = await self.fetch_asset(identifier)
        updated = NestAsset(
            id=existing.id,
            type=type or existing.type,
            created_at=existing.created_at,
            modified_at=_now(),
            file_size=len(data),
            metadata=validate_metadata(metadata) if metadata is not None else existing.metadata,
        )
        await self.save_asset(updated, data)

    async def save_asset(self, asset: NestAsset, data: bytes) -> None:
        """Write *data* for an existing asset record built by the caller.

        ``file_size`` and ``modified_at`` are always recomputed.
        """

        asset = replace(asset, file_size=len(data), modified_at=_now())
        await self._save_asset(asset, data, is_new=False)
        logger.debug("Updated asset %s (%d bytes)", asset.id, asset.file_size)

    async def _save_asset(self, asset: NestAsset, data: bytes, is_new: bool) -> None:
        await self.storage.write(data, asset.id)
        try:
            if is_new:
                await self.database.add(asset)
            else:
                await self.database.update(asset)
        except Exception:
            logger.error("Metadata write failed after blob write for asset %s", asset.id)
            raise

    async def delete_asset(self, identifier: IdentifierLike) -> None:
        asset = await self.fetch_asset(identifier)
        await self.delete_asset_record(asset)

    async def delete_asset_record(self, asset: NestAsset) -> None:
        try:
            await self.storage.delete(asset.id)
        except DataNotFound:
            logger.warning("Blob for asset %s was already missing; removing metadata only", asset.id)
        await self.database.delete_by_id(asset.id)
        logger.debug("Deleted asset %s", asset.id)

    async def delete_all_assets(self) -> None:
        await self.database.delete_all()
        await self.storage.delete_all()

    async def fetch_asset(self, identifier: IdentifierLike) -> NestAsset:
        asset_id = AssetIdentifier.coerce(identifier).resolve()
        asset = await self.database.fetch_by_id(asset_id)
        if asset is None:
            raise AssetNotFound(f"Asset {asset_id} not found")
        return asset

    async def fetch_asset_data(self, identifier: IdentifierLike) -> bytes:
        asset = await self.fetch_asset(identifier)
        return await self.fetch_asset_record_data(asset)

    async def fetch_asset_record_data(self, asset: NestAsset) -> bytes:
        try:
            return await self.storage.read(asset.id)
        except DataNotFound:
            logger.warning("Asset %s has metadata but no stored data", asset.id)
            raise

    async def has_asset_data(self, identifier: IdentifierLike) -> bool:
        asset_id = AssetIdentifier.coerce(identifier).resolve()
        return await self.storage.exists(asset_id)

    async def fetch_all_assets(
        self,
        filters: Sequence[QueryFilter] | None = None,
        *,
        type: AssetType | None = None,
        ascending: bool = True,
    ) -> list[NestAsset]:
        return await self.database.fetch_all(filters=self._filters(filters, type), ascending=ascending)

    async def fetch_assets(
        self,
        limit: int,
        offset: int,
        filters: Sequence[QueryFilter] | None = None,
        *,
        type: AssetType | None = None,
        ascending: bool = True,
    ) -> list[NestAsset]:
        return await self.database.fetch(
            limit=limit,
            offset=offset,
            filters=self._filters(filters, type),
            ascending=ascending,
        )

    async def fetch_count(self, types: Iterable[AssetType] | None = None) -> int:
        return await self.database.fetch_count(types)

    async def fetch_count_of_type(self, type: AssetType) -> int:
        return await self.database.fetch_count_of_type(type)

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        return self.database.subscribe(callback)

    def close(self) -> None:
        self.database.close()

    @staticmethod
    def _filters(filters: Sequence[QueryFilter] | None, type: AssetType | None) -> list[QueryFilter]:
        if filters is not None:
            return list(filters)
        if type is not None:
            return type_filters([type]) or []
        return []


def build_nest(settings: Settings | None = None) -> AssetsNest:
    """Build an ``AssetsNest`` over local storage and SQL metadata from *settings*."""

    settings = settings or get_settings()
    storage = LocalStorage(settings.resolved_storage_root)
    database = SqlAssetDatabase.from_url(
        settings.resolved_database_url,
        create_schema=settings.auto_create_schema,
        notification_interval=settings.change_notification_interval,
    )
    return AssetsNest(storage, database)


@lru_cache
def get_nest() -> AssetsNest:
    return build_nest()


def close_nest() -> None:
    if get_nest.cache_info().currsize:
        get_nest().close()
    get_nest.cache_clear()
