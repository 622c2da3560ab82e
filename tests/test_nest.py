import asyncio

import pytest

from assetnest.core.errors import (
    AssetNotFound,
    DataNotFound,
    DeleteFailed,
    InvalidAssetURL,
    UnknownNestError,
    WriteFailed,
)
from assetnest.schemas.asset import AssetIdentifier, AssetType
from assetnest.schemas.query import QueryFilter
from assetnest.services.nest import AssetsNest, build_nest, close_nest, get_nest

from mocks import MockStorage, RecordingDatabase


@pytest.fixture
def events():
    return []


@pytest.fixture
def recorded_nest(tmp_path, events):
    storage = MockStorage(events)
    database = RecordingDatabase.create(f"sqlite:///{tmp_path / 'recorded.sqlite3'}", events)
    nest = AssetsNest(storage, database)
    yield nest
    nest.close()


def test_create_then_fetch_data(nest):
    async def scenario():
        asset = await nest.create_asset(b"raw photo bytes", AssetType.PHOTO, {"title": "Beach"})
        return asset, await nest.fetch_asset(asset.id), await nest.fetch_asset_data(asset.id)

    asset, fetched, data = asyncio.run(scenario())
    assert data == b"raw photo bytes"
    assert fetched == asset
    assert asset.file_size == len(b"raw photo bytes")
    assert asset.modified_at is None
    assert asset.metadata == {"title": "Beach"}


def test_update_keeps_identity_and_replaces_content(nest):
    async def scenario():
        asset = await nest.create_asset(b"v1", AssetType.DOCUMENT, {"rev": 1})
        await nest.update_asset(asset.id, b"version two", metadata={"rev": 2})
        return asset, await nest.fetch_asset(asset.id), await nest.fetch_asset_data(asset.id)

    original, updated, data = asyncio.run(scenario())
    assert updated.id == original.id
    assert updated.created_at == original.created_at
    assert updated.type == AssetType.DOCUMENT
    assert updated.modified_at is not None
    assert updated.modified_at >= original.created_at
    assert updated.file_size == len(b"version two")
    assert updated.metadata == {"rev": 2}
    assert data == b"version two"


def test_update_without_metadata_keeps_existing(nest):
    async def scenario():
        asset = await nest.create_asset(b"v1", AssetType.PHOTO, {"keep": True})
        await nest.update_asset(asset.id, b"v2", type=AssetType.custom("sticker"))
        return await nest.fetch_asset(asset.id)

    updated = asyncio.run(scenario())
    assert updated.metadata == {"keep": True}
    assert updated.type == AssetType.custom("sticker")


def test_update_missing_asset_raises_not_found(nest):
    with pytest.raises(AssetNotFound):
        asyncio.run(nest.update_asset("missing", b"data"))


def test_delete_is_terminal(nest):
    async def scenario():
        asset = await nest.create_asset(b"bytes", AssetType.AUDIO)
        await nest.delete_asset(asset.id)
        return asset

    asset = asyncio.run(scenario())
    with pytest.raises(AssetNotFound):
        asyncio.run(nest.fetch_asset(asset.id))
    with pytest.raises(AssetNotFound):
        asyncio.run(nest.delete_asset(asset.id))
    assert asyncio.run(nest.has_asset_data(asset.id)) is False


def test_delete_all_assets_twice(nest):
    async def scenario():
        for i in range(3):
            await nest.create_asset(bytes([i]), AssetType.PHOTO)
        await nest.delete_all_assets()
        await nest.delete_all_assets()
        return await nest.fetch_count()

    assert asyncio.run(scenario()) == 0


def test_counts_by_type(nest):
    sticker = AssetType.custom("sticker")

    async def scenario():
        for asset_type, amount in ((AssetType.PHOTO, 20), (AssetType.VIDEO, 10), (sticker, 5)):
            for i in range(amount):
                await nest.create_asset(f"{asset_type.value}-{i}".encode(), asset_type)
        return (
            await nest.fetch_count(),
            await nest.fetch_count_of_type(AssetType.PHOTO),
            await nest.fetch_count([AssetType.VIDEO, sticker]),
            await nest.fetch_count_of_type(AssetType.DOCUMENT),
        )

    assert asyncio.run(scenario()) == (35, 20, 15, 0)


def test_paging_matches_full_listing(nest):
    async def scenario():
        for i in range(35):
            await nest.create_asset(f"item-{i}".encode(), AssetType.PHOTO)
        everything = await nest.fetch_all_assets()
        page = await nest.fetch_assets(limit=10, offset=20)
        return everything, page

    everything, page = asyncio.run(scenario())
    assert len(everything) == 35
    assert page == everything[20:30]


def test_type_shortcut_and_explicit_filters(nest):
    async def scenario():
        await nest.create_asset(b"p", AssetType.PHOTO)
        await nest.create_asset(b"v", AssetType.VIDEO)
        await nest.create_asset(b"d", AssetType.DOCUMENT)
        videos = await nest.fetch_all_assets(type=AssetType.VIDEO)
        either = await nest.fetch_all_assets(
            [QueryFilter(field="type", value="photo"), QueryFilter(field="type", value="document")]
        )
        return videos, either

    videos, either = asyncio.run(scenario())
    assert [a.type for a in videos] == [AssetType.VIDEO]
    assert {a.type for a in either} == {AssetType.PHOTO, AssetType.DOCUMENT}


def test_asset_url_addresses_the_same_asset(nest):
    async def scenario():
        asset = await nest.create_asset(b"by-url", AssetType.PHOTO)
        return await nest.fetch_asset_data(AssetIdentifier.from_url(asset.asset_url))

    assert asyncio.run(scenario()) == b"by-url"


def test_foreign_url_is_rejected(nest):
    with pytest.raises(InvalidAssetURL):
        asyncio.run(nest.fetch_asset(AssetIdentifier.from_url("https://example.com/a")))


def test_blob_is_written_before_metadata(recorded_nest, events):
    asset = asyncio.run(recorded_nest.create_asset(b"x", AssetType.PHOTO))
    assert events == [("storage.write", asset.id), ("database.add", asset.id)]

    events.clear()
    asyncio.run(recorded_nest.delete_asset(asset.id))
    assert events == [("storage.delete", asset.id), ("database.delete", asset.id)]


def test_failed_blob_write_creates_no_record(recorded_nest, events):
    recorded_nest.storage.fail_write = True
    with pytest.raises(WriteFailed):
        asyncio.run(recorded_nest.create_asset(b"x", AssetType.PHOTO))
    assert [name for name, _ in events] == ["storage.write"]
    assert asyncio.run(recorded_nest.fetch_count()) == 0


def test_failed_metadata_write_leaves_orphan_blob(recorded_nest):
    recorded_nest.database.fail_add = True
    with pytest.raises(UnknownNestError):
        asyncio.run(recorded_nest.create_asset(b"orphan", AssetType.PHOTO))
    assert list(recorded_nest.storage.blobs.values()) == [b"orphan"]
    assert asyncio.run(recorded_nest.fetch_all_assets()) == []


def test_failed_metadata_update_keeps_old_record(recorded_nest):
    async def scenario():
        asset = await recorded_nest.create_asset(b"v1", AssetType.PHOTO, {"rev": 1})
        recorded_nest.database.fail_update = True
        with pytest.raises(UnknownNestError):
            await recorded_nest.update_asset(asset.id, b"v2", metadata={"rev": 2})
        return await recorded_nest.fetch_asset(asset.id)

    record = asyncio.run(scenario())
    assert record.metadata == {"rev": 1}
    assert recorded_nest.storage.blobs[record.id] == b"v2"


def test_delete_tolerates_missing_blob(recorded_nest):
    async def scenario():
        asset = await recorded_nest.create_asset(b"x", AssetType.PHOTO)
        recorded_nest.storage.blobs.clear()
        await recorded_nest.delete_asset(asset.id)
        return await recorded_nest.fetch_count()

    assert asyncio.run(scenario()) == 0


def test_other_delete_failures_keep_metadata(recorded_nest):
    async def scenario():
        asset = await recorded_nest.create_asset(b"x", AssetType.PHOTO)
        recorded_nest.storage.fail_delete = True
        with pytest.raises(DeleteFailed):
            await recorded_nest.delete_asset(asset.id)
        return await recorded_nest.fetch_asset(asset.id)

    assert asyncio.run(scenario()).file_size == 1


def test_missing_blob_surfaces_as_data_not_found(recorded_nest):
    async def scenario():
        asset = await recorded_nest.create_asset(b"x", AssetType.PHOTO)
        recorded_nest.storage.blobs.clear()
        await recorded_nest.fetch_asset_data(asset.id)

    with pytest.raises(DataNotFound):
        asyncio.run(scenario())


def test_concurrent_creates_get_unique_ids(nest):
    async def scenario():
        created = await asyncio.gather(*(nest.create_asset(bytes([i]), AssetType.PHOTO) for i in range(10)))
        return created, await nest.fetch_count()

    created, count = asyncio.run(scenario())
    assert len({asset.id for asset in created}) == 10
    assert count == 10


def test_subscribe_passes_through_to_database(nest):
    seen = []
    unsubscribe = nest.subscribe(seen.append)
    asyncio.run(nest.create_asset(b"x", AssetType.PHOTO))
    unsubscribe()
    asyncio.run(nest.create_asset(b"y", AssetType.PHOTO))
    assert seen == [nest.database]


def test_default_nest_is_shared_until_closed(tmp_path):
    first = get_nest()
    assert get_nest() is first
    assert first.storage.base_directory == tmp_path / "default-root"
    close_nest()
    assert get_nest() is not first


def test_build_nest_uses_settings_locations(tmp_path):
    nest = build_nest()
    try:
        asset = asyncio.run(nest.create_asset(b"settings", AssetType.DOCUMENT))
        assert (tmp_path / "default.sqlite3").exists()
        assert nest.storage.file_path(asset.id).read_bytes() == b"settings"
    finally:
        nest.close()


def test_save_asset_restamps_modification_time(nest):
    async def scenario():
        asset = await nest.create_asset(b"v1", AssetType.PHOTO)
        await nest.update_asset(asset.id, b"v2")
        first = await nest.fetch_asset(asset.id)
        await nest.save_asset(first, b"version three")
        return first, await nest.fetch_asset(asset.id)

    first, second = asyncio.run(scenario())
    assert second.modified_at > first.modified_at
    assert second.created_at == first.created_at
    assert second.file_size == len(b"version three")
