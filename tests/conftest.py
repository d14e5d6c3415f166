"""
Shared pytest fixtures for the SecureVault test suite.

Storage-facing fixtures are parametrised so that every test depending on
``storage`` (directly or through the credential/vault stores) runs once
against the JSON file backend and once against the SQLite backend.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from securevault.core.credentials import CredentialStore
from securevault.core.crypto import PasswordHasher
from securevault.core.models import UserRecord
from securevault.core.vault import VaultStore
from securevault.server.config import Settings
from securevault.server.deps import build_services
from securevault.server.main import create_app
from securevault.storage.files import FileStorage
from securevault.storage.sql import SqlStorage

TEST_ITERATIONS = 1000


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def file_storage(tmp_path, clock):
    return FileStorage(tmp_path / "data", clock=clock, timeout=5.0)


@pytest.fixture
def sql_storage(tmp_path, clock):
    storage = SqlStorage(f"sqlite:///{tmp_path / 'vault.db'}", clock=clock, timeout=5.0)
    yield storage
    storage.close()


@pytest.fixture(params=["file", "sql"])
def storage(request):
    return request.getfixturevalue(f"{request.param}_storage")


@pytest.fixture
def make_user(storage, clock):
    """Insert a bare user record so entries can reference it."""

    def _make(username: str) -> UserRecord:
        record = UserRecord(
            username=username,
            salt="00" * 16,
            password_hash="00" * 32,
            iterations=1,
            created_at=clock(),
        )
        storage.put_user(record)
        storage.ensure_vault(username)
        return record

    return _make


@pytest.fixture
def hasher():
    return PasswordHasher(iterations=TEST_ITERATIONS)


@pytest.fixture
def credentials(storage, hasher, clock):
    return CredentialStore(storage, hasher, clock=clock)


@pytest.fixture
def vault(storage, clock):
    return VaultStore(storage, clock=clock)


# --- HTTP ---


@pytest.fixture(params=["file", "sql"])
def settings(request, tmp_path):
    return Settings(
        _env_file=None,
        STORAGE_BACKEND=request.param,
        DATA_DIR=str(tmp_path / "api-data"),
        DATABASE_URL=f"sqlite:///{tmp_path / 'api.db'}",
        KDF_ITERATIONS=TEST_ITERATIONS,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def services(settings, clock):
    services = build_services(settings, clock=clock)
    yield services
    services.close()


@pytest.fixture
def client(settings, services):
    with TestClient(create_app(settings, services=services)) as client:
        yield client