# src/securevault/server/deps.py
from dataclasses import dataclass
from datetime import timedelta
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings
from ..core.credentials import CredentialStore
from ..core.crypto import PasswordHasher
from ..core.errors import StorageError
from ..core.models import Identity, utcnow
from ..core.sessions import SessionBackend, SessionManager
from ..core.vault import VaultStore
from ..storage.base import StorageAdapter
from ..storage.files import FileStorage
from ..storage.sql import SqlStorage


@dataclass
class Services:
    storage: StorageAdapter
    credentials: CredentialStore
    sessions: SessionManager
    vault: VaultStore

    def close(self) -> None:
        self.storage.close()


def build_storage(settings: Settings, clock=utcnow) -> StorageAdapter:
    if settings.STORAGE_BACKEND == "sql":
        return SqlStorage(
            settings.DATABASE_URL,
            clock=clock,
            timeout=settings.STORAGE_TIMEOUT_SECONDS,
            echo=settings.SQL_ECHO,
        )
    return FileStorage(settings.DATA_DIR, clock=clock, timeout=settings.STORAGE_TIMEOUT_SECONDS)


def build_services(
    settings: Settings,
    storage: Optional[StorageAdapter] = None,
    session_backend: Optional[SessionBackend] = None,
    clock=utcnow,
) -> Services:
    storage = storage if storage is not None else build_storage(settings, clock=clock)
    return Services(
        storage=storage,
        credentials=CredentialStore(storage, PasswordHasher(settings.KDF_ITERATIONS), clock=clock),
        sessions=SessionManager(session_backend, ttl=timedelta(hours=settings.SESSION_TTL_HOURS), clock=clock),
        vault=VaultStore(storage, clock=clock),
    )


# --- FastAPI dependencies ---

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise StorageError("Storage is not configured")
    return services


ServicesDep = Annotated[Services, Depends(get_services)]


def get_current_identity(
    services: ServicesDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Identity:
    token = credentials.credentials if credentials else None
    return services.sessions.require(token)


IdentityDep = Annotated[Identity, Depends(get_current_identity)]
