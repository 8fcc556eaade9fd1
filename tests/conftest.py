"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os
import tempfile

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123")
# 测试使用临时 SQLite 文件与内存 broker，不依赖外部服务
_DB_DIR = tempfile.mkdtemp(prefix="webhook-inbox-tests-")
os.environ["DATABASE__URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'app.db')}"
os.environ["REALTIME_BROKER"] = "inmemory"
os.environ["DEBUG"] = "true"
os.environ["ENVIRONMENT"] = "testing"
os.environ["REALTIME_WS_IDLE_PING_INTERVAL_S"] = "0"
os.environ.pop("REDIS__URL", None)
os.environ.pop("CLEANUP_SECRET", None)

import asyncio  # noqa: E402
from functools import partial  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from application.services.sync_service import WebhookSyncService  # noqa: E402
from application.services.webhook_store_service import WebhookStoreService  # noqa: E402
from infrastructure.database import create_engine_for, create_tables, drop_tables  # noqa: E402
from infrastructure.realtime.active_registry import ActiveConnectionRegistry  # noqa: E402
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork  # noqa: E402

from factories import make_token  # noqa: E402


@pytest.fixture
async def store(tmp_path):
    """Store on an isolated SQLite file with a small batch size to exercise chunking."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await create_tables(bind=engine)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    yield WebhookStoreService(partial(SQLAlchemyUnitOfWork, session_factory), batch_size=3)
    await engine.dispose()


@pytest.fixture
def registry():
    return ActiveConnectionRegistry()


@pytest.fixture
def sync(store, registry):
    return WebhookSyncService(store=store, registry=registry)


@pytest.fixture
def client():
    """TestClient over the real app; tables reset before each test."""
    from fastapi.testclient import TestClient
    from main import app

    async def _reset():
        await drop_tables()
        await create_tables()

    asyncio.run(_reset())
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}
