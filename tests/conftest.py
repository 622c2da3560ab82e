from pathlib import Path

import pytest

from assetnest.core.config import get_settings
from assetnest.services.asset_database import SqlAssetDatabase
from assetnest.services.nest import AssetsNest, close_nest
from assetnest.services.storage import LocalStorage


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    return tmp_path / "nest-local-storage"


@pytest.fixture
def storage(storage_root: Path) -> LocalStorage:
    return LocalStorage(storage_root)


@pytest.fixture
def database(tmp_path: Path):
    db = SqlAssetDatabase.from_url(f"sqlite:///{tmp_path / 'assets.sqlite3'}", notification_interval=0)
    yield db
    db.close()


@pytest.fixture
def nest(storage: LocalStorage, database: SqlAssetDatabase) -> AssetsNest:
    return AssetsNest(storage, database)


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("NEST_STORAGE_ROOT", str(tmp_path / "default-root"))
    monkeypatch.setenv("NEST_DATABASE_URL", f"sqlite:///{tmp_path / 'default.sqlite3'}")
    monkeypatch.delenv("NEST_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    close_nest()
    get_settings.cache_clear()
