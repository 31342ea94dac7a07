"""
🧪 TrailerBox 測試共用夾具

所有測試皆使用 tmp_path 下的 sqlite 資料庫，不需外部服務。
"""

import asyncio
import sys
from pathlib import Path

import pytest

# 確保可以 import trailerbox 模組
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from trailerbox.database import Database, StoreSettings
from trailerbox.security.password_hasher import PasswordHasher
from trailerbox.service import TrailerService

SUPER_USER = "root"
SUPER_PASS = "root-pass"


@pytest.fixture
def fast_hasher():
    """低成本 Argon2 參數，僅供測試"""
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def store_settings(tmp_path):
    return StoreSettings(backend="sqlite", sqlite_path=tmp_path / "trailerbox.db")


@pytest.fixture
def db(store_settings):
    database = Database(store_settings)
    database.connect()
    database.ensure_schema()
    yield database
    database.close()


@pytest.fixture
def service(store_settings, fast_hasher):
    svc = TrailerService.open(
        settings=store_settings,
        admin_username=SUPER_USER,
        admin_password=SUPER_PASS,
        hasher=fast_hasher,
        pending_limit=5,
        heartbeat_interval=3600,
    )
    yield svc
    asyncio.run(svc.close())
