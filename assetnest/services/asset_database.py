from __future__ import annotations

import abc
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence, TypeVar

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.database import build_engine, build_session_factory
from ..core.errors import AssetAlreadyExists, AssetNotFound, InvalidQueryFilter, NestError, UnknownNestError
from ..models.asset import AssetRecord
from ..schemas.asset import AssetType, NestAsset, decode_metadata, encode_metadata
from ..schemas.query import Comparison, QueryFilter, type_filters
from .notifications import ChangeCallback, ChangeNotifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NestDatabase(abc.ABC):
    """Metadata records for stored assets.

    Listing is always ordered by creation time. Filters passed to ``fetch``,
    ``fetch_all`` and ``fetch_count`` are OR-ed together; an empty list matches
    every record. ``limit=0`` means no cap.
    """

    @abc.abstractmethod
    async def add(self, asset: NestAsset) -> None:
        ...

    @abc.abstractmethod
    async def update(self, asset: NestAsset) -> None:
        ...

    @abc.abstractmethod
    async def fetch_by_id(self, asset_id: str) -> NestAsset | None:
        ...

    @abc.abstractmethod
    async def delete_by_id(self, asset_id: str) -> None:
        ...

    @abc.abstractmethod
    async def fetch(
        self,
        limit: int,
        offset: int,
        filters: Sequence[QueryFilter] | None = None,
        ascending: bool = True,
    ) -> list[NestAsset]:
        ...

    @abc.abstractmethod
    async def fetch_count(self, types: Iterable[AssetType] | None = None) -> int:
        ...

    @abc.abstractmethod
    async def delete_all(self) -> None:
        ...

    @abc.abstractmethod
    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register *callback* for throttled change signals; returns an unsubscribe function."""

    async def fetch_all(self, filters: Sequence[QueryFilter] | None = None, ascending: bool = True) -> list[NestAsset]:
        return await self.fetch(limit=0, offset=0, filters=filters, ascending=ascending)

    async def fetch_all_of_type(self, asset_type: AssetType | None = None, ascending: bool = True) -> list[NestAsset]:
        return await self.fetch_all(filters=_filters_for(asset_type), ascending=ascending)

    async def fetch_page_of_type(
        self,
        limit: int,
        offset: int,
        asset_type: AssetType | None = None,
        ascending: bool = True,
    ) -> list[NestAsset]:
        return await self.fetch(limit=limit, offset=offset, filters=_filters_for(asset_type), ascending=ascending)

    async def fetch_count_of_type(self, asset_type: AssetType) -> int:
        return await self.fetch_count([asset_type])

    def close(self) -> None:
        pass


def _filters_for(asset_type: AssetType | None) -> list[QueryFilter]:
    return type_filters([asset_type]) if asset_type is not None else []


_FIELD_ALIASES = {
    "createdAt": "created_at",
    "modifiedAt": "modified_at",
    "fileSize": "file_size",
}
_COLUMNS = {
    "id": AssetRecord.id,
    "type": AssetRecord.type,
    "created_at": AssetRecord.created_at,
    "modified_at": AssetRecord.modified_at,
    "file_size": AssetRecord.file_size,
    "metadata": AssetRecord.metadata_json,
}
_STRING_FIELDS = {"id", "type", "metadata"}
_TIME_FIELDS = {"created_at", "modified_at"}


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def filter_clause(query_filter: QueryFilter):
    """Translate one ``QueryFilter`` into a SQLAlchemy boolean expression."""

    name = _FIELD_ALIASES.get(query_filter.field, query_filter.field)
    column = _COLUMNS.get(name)
    if column is None:
        raise InvalidQueryFilter(f"Unknown field {query_filter.field!r}")
    value = query_filter.value
    comparison = query_filter.comparison

    if name in _STRING_FIELDS and not isinstance(value, str):
        raise InvalidQueryFilter(f"Field {name!r} compares against strings only")
    if name in _TIME_FIELDS:
        if not isinstance(value, datetime):
            raise InvalidQueryFilter(f"Field {name!r} compares against datetimes only")
        value = _as_utc(value)
    if name == "file_size" and (isinstance(value, (bool, str, datetime))):
        raise InvalidQueryFilter("Field 'file_size' compares against numbers only")
    if name == "metadata" and comparison is not Comparison.CONTAINS:
        raise InvalidQueryFilter("Field 'metadata' supports the contains comparison only")

    if comparison is Comparison.EQUAL:
        return column == value
    if comparison is Comparison.LESS_THAN:
        return column < value
    if comparison is Comparison.GREATER_THAN:
        return column > value
    if not isinstance(value, str):
        raise InvalidQueryFilter("The contains comparison needs a string value")
    return column.contains(value, autoescape=True)


def combined_clause(filters: Sequence[QueryFilter] | None):
    if not filters:
        return None
    clauses = [filter_clause(query_filter) for query_filter in filters]
    return clauses[0] if len(clauses) == 1 else or_(*clauses)


def record_to_asset(record: AssetRecord) -> NestAsset:
    return NestAsset(
        id=record.id,
        type=AssetType.from_string(record.type),
        created_at=_as_utc(record.created_at),
        modified_at=_as_utc(record.modified_at),
        file_size=int(record.file_size or 0),
        metadata=decode_metadata(record.metadata_json),
    )


def asset_to_record(asset: NestAsset) -> AssetRecord:
    return AssetRecord(
        id=asset.id,
        type=asset.type.value,
        created_at=_as_utc(asset.created_at),
        modified_at=_as_utc(asset.modified_at),
        file_size=asset.file_size,
        metadata_json=encode_metadata(asset.metadata),
    )


class SqlAssetDatabase(NestDatabase):
    """``NestDatabase`` backed by SQLAlchemy.

    Sessions are synchronous; every call runs in a worker thread so the event
    loop is never blocked on the database.
    """

    def __init__(self, session_factory: sessionmaker[Session], notification_interval: float = 0.3):
        self._session_factory = session_factory
        self._notifier = ChangeNotifier(source=self, interval=notification_interval)

    @classmethod
    def from_url(
        cls,
        database_url: str,
        create_schema: bool = True,
        notification_interval: float = 0.3,
    ) -> "SqlAssetDatabase":
        engine = build_engine(database_url)
        return cls(build_session_factory(engine, create_schema), notification_interval)

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        return self._notifier.subscribe(callback)

    def close(self) -> None:
        self._notifier.close()
        bind = self._session_factory.kw.get("bind")
        if bind is not None:
            bind.dispose()

    async def _run(self, operation: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._run_sync, operation)

    def _run_sync(self, operation: Callable[[Session], T]) -> T:
        try:
            with self._session_factory() as db:
                return operation(db)
        except NestError:
            raise
        except SQLAlchemyError as exc:
            logger.error("Asset database operation failed: %s", exc)
            raise UnknownNestError(exc) from exc

    async def add(self, asset: NestAsset) -> None:
        def _add(db: Session) -> None:
            if db.get(AssetRecord, asset.id) is not None:
                raise AssetAlreadyExists(f"Asset {asset.id} already exists")
            db.add(asset_to_record(asset))
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise AssetAlreadyExists(f"Asset {asset.id} already exists") from exc

        await self._run(_add)
        self._notifier.notify()

    async def update(self, asset: NestAsset) -> None:
        def _update(db: Session) -> None:
            record = db.get(AssetRecord, asset.id)
            if record is None:
                raise AssetNotFound(f"Asset {asset.id} not found")
            record.type = asset.type.value
            record.metadata_json = encode_metadata(asset.metadata)
            record.file_size = asset.file_size
            record.modified_at = _as_utc(asset.modified_at) or datetime.now(timezone.utc)
            db.commit()

        await self._run(_update)
        self._notifier.notify()

    async def fetch_by_id(self, asset_id: str) -> NestAsset | None:
        def _fetch(db: Session) -> NestAsset | None:
            record = db.get(AssetRecord, asset_id)
            return record_to_asset(record) if record is not None else None

        return await self._run(_fetch)

    async def delete_by_id(self, asset_id: str) -> None:
        def _delete(db: Session) -> bool:
            record = db.get(AssetRecord, asset_id)
            if record is None:
                return False
            db.delete(record)
            db.commit()
            return True

        if await self._run(_delete):
            self._notifier.notify()

    async def fetch(
        self,
        limit: int,
        offset: int,
        filters: Sequence[QueryFilter] | None = None,
        ascending: bool = True,
    ) -> list[NestAsset]:
        if limit < 0 or offset < 0:
            raise InvalidQueryFilter("limit and offset must be >= 0")
        clause = combined_clause(filters)
        order = AssetRecord.created_at.asc() if ascending else AssetRecord.created_at.desc()
        tie_break = AssetRecord.id.asc() if ascending else AssetRecord.id.desc()

        def _fetch(db: Session) -> list[NestAsset]:
            statement = select(AssetRecord)
            if clause is not None:
                statement = statement.where(clause)
            statement = statement.order_by(order, tie_break)
            if offset:
                statement = statement.offset(offset)
            if limit:
                statement = statement.limit(limit)
            return [record_to_asset(record) for record in db.scalars(statement)]

        return await self._run(_fetch)

    async def fetch_count(self, types: Iterable[AssetType] | None = None) -> int:
        clause = combined_clause(type_filters(types))

        def _count(db: Session) -> int:
            statement = select(func.count()).select_from(AssetRecord)
            if clause is not None:
                statement = statement.where(clause)
            return int(db.scalar(statement) or 0)

        return await self._run(_count)

    async def delete_all(self) -> None:
        def _delete_all(db: Session) -> int:
            result = db.execute(delete(AssetRecord))
            db.commit()
            return result.rowcount or 0

        removed = await self._run(_delete_all)
        logger.info("Removed %d asset records", removed)
        self._notifier.notify()
