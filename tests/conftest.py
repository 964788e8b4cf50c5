import os
from contextlib import redirect_stderr, redirect_stdout
from datetime import datetime, timezone
from io import StringIO
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config

# Settings are read at import time, so the environment goes first
os.environ.setdefault("DATABASE_URL", "sqlite:////tmp/cropscan_test.db")
os.environ.setdefault("OPENAI_API_KEY", "test")
os.environ.setdefault("BLOB_BACKEND", "memory")

from fastapi.testclient import TestClient  # noqa: E402

from cropscan import dependencies  # noqa: E402
from cropscan.config import Settings  # noqa: E402
from cropscan.db import SessionLocal, init_db  # noqa: E402
from cropscan.main import app  # noqa: E402
from cropscan.models import CropStatus, Diagnostic, Farm, Severity  # noqa: E402
from cropscan.services.storage import MemoryBlobStore  # noqa: E402
from tests.utils.fakes import FakeInference  # noqa: E402


def _db_path() -> Path | None:
    db_url = os.environ.get("DATABASE_URL", "")
    if db_url.startswith("sqlite:///"):
        return Path(db_url.replace("sqlite:///", ""))
    return None


@pytest.fixture(scope="session", autouse=True)
def apply_migrations():
    """Apply Alembic migrations to a fresh database before running tests."""
    db_path = _db_path()
    if db_path is not None and db_path.exists():
        db_path.unlink()
    cfg_path = Path(__file__).resolve().parent.parent / "alembic.ini"
    config = Config(str(cfg_path))
    stdout_buf, stderr_buf = StringIO(), StringIO()
    try:
        with redirect_stdout(stdout_buf), redirect_stderr(stderr_buf):
            command.upgrade(config, "head")
    except Exception as exc:
        print("Alembic upgrade failed:", exc)
        print("stdout:\n", stdout_buf.getvalue())
        print("stderr:\n", stderr_buf.getvalue())
        raise
    init_db(Settings())
    yield
    if db_path is not None and db_path.exists():
        db_path.unlink()


@pytest.fixture(autouse=True)
def clean_db(apply_migrations):
    with SessionLocal() as session:
        session.query(Diagnostic).delete()
        session.query(Farm).delete()
        session.commit()
    yield


@pytest.fixture(scope="module")
def client(apply_migrations):
    """Yields a TestClient with lifespan events."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def fake_inference():
    return FakeInference()


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture(autouse=True)
def override_collaborators(fake_inference, blob_store):
    app.dependency_overrides[dependencies.get_inference] = lambda: fake_inference
    app.dependency_overrides[dependencies.get_storage] = lambda: blob_store
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def make_farm():
    def _make(user_id: int, name: str = "Shamba", **fields) -> int:
        fields.setdefault("location", "Nakuru")
        fields.setdefault("size_hectares", 2.5)
        with SessionLocal() as session:
            farm = Farm(user_id=user_id, name=name, **fields)
            session.add(farm)
            session.commit()
            return farm.id

    return _make


@pytest.fixture
def make_diagnostic():
    def _make(farm_id: int, created_at: datetime | None = None, **fields) -> int:
        fields.setdefault("image_url", "memory://seed.jpg")
        fields.setdefault("disease", "Leaf Rust")
        fields.setdefault("confidence", 70)
        fields.setdefault("severity", Severity.MEDIUM)
        fields.setdefault("status", CropStatus.DISEASED)
        fields.setdefault("crop", "Maize")
        fields.setdefault("treatment", "Spray fungicide")
        fields.setdefault("prevention", "Use resistant seed")
        fields.setdefault("model_version", "seed-model")
        with SessionLocal() as session:
            record = Diagnostic(
                farm_id=farm_id,
                created_at=created_at or datetime.now(timezone.utc),
                **fields,
            )
            session.add(record)
            session.commit()
            return record.id

    return _make


@pytest.fixture(autouse=True)
def mock_redis(monkeypatch):
    class _Pipe:
        def __init__(self, store):
            self.store = store
            self.ops = []

        def incr(self, key):
            self.ops.append(("incr", key))
            return self

        def expire(self, key, ttl):
            self.ops.append(("expire", key, ttl))
            return self

        async def execute(self):
            results = []
            for op in self.ops:
                if op[0] == "incr":
                    key = op[1]
                    self.store[key] = self.store.get(key, 0) + 1
                    results.append(self.store[key])
                else:
                    results.append(True)
            self.ops.clear()
            return results

    class _Redis:
        def __init__(self):
            self.store = {}

        def pipeline(self):
            return _Pipe(self.store)

    fake = _Redis()
    monkeypatch.setattr(dependencies, "redis_client", fake)
    yield
