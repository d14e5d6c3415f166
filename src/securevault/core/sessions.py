import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Protocol

from pydantic import BaseModel

from .crypto import generate_token
from .errors import Unauthorized
from .models import Identity, utcnow

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(hours=24)


class SessionRecord(BaseModel):
    username: str
    expires_at: datetime


class SessionBackend(Protocol):
    def get(self, token: str) -> Optional[SessionRecord]: ...

    def put(self, token: str, record: SessionRecord) -> None: ...

    def delete(self, token: str) -> None: ...


class InMemorySessionBackend:
    def __init__(self):
        self._records: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def get(self, token: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._records.get(token)

    def put(self, token: str, record: SessionRecord) -> None:
        with self._lock:
            self._records[token] = record

    def delete(self, token: str) -> None:
        with self._lock:
            self._records.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class SessionManager:
    """Issues bearer tokens and maps them back to identities.

    Expired sessions are only dropped when someone presents them again;
    there is no sweeper and no explicit revocation.
    """

    def __init__(self, backend: SessionBackend | None = None, ttl: timedelta = SESSION_TTL, clock=utcnow):
        self.backend = backend if backend is not None else InMemorySessionBackend()
        self.ttl = ttl
        self.clock = clock

    def issue(self, identity: Identity) -> str:
        token = generate_token()
        self.backend.put(token, SessionRecord(username=identity.username, expires_at=self.clock() + self.ttl))
        return token

    def resolve(self, token: Optional[str]) -> Optional[Identity]:
        if not token:
            return None
        record = self.backend.get(token)
        if record is None:
            return None
        if record.expires_at <= self.clock():
            self.backend.delete(token)
            logger.debug("Evicted expired session for %s", record.username)
            return None
        return Identity(username=record.username)

    def require(self, token: Optional[str]) -> Identity:
        identity = self.resolve(token)
        if identity is None:
            raise Unauthorized()
        return identity
