import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from ..core.errors import InvalidInput, StorageTimeout
from ..core.models import UserRecord, VaultEntry, is_valid_username, utcnow

DEFAULT_TIMEOUT = 5.0

# fields of an entry that update_entry may touch
MUTABLE_FIELDS = frozenset({"url", "username", "password_encrypted", "favicon_url", "note", "tags"})


class StorageAdapter(ABC):
    """Storage contract shared by the file and relational backends.

    Both implementations must return the same results for the same sequence
    of calls. Mutations for one owner are serialised through ``owner_lock``;
    every wait is bounded by ``timeout`` and raises ``StorageTimeout``.
    Entry operations reject owners that break the username rule with
    ``InvalidInput`` before touching storage.
    """

    name = "abstract"

    def __init__(self, clock=utcnow, timeout: float = DEFAULT_TIMEOUT):
        self.clock = clock
        self.timeout = timeout
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, owner: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(owner)
            if lock is None:
                lock = self._locks[owner] = threading.Lock()
            return lock

    @contextmanager
    def owner_lock(self, owner: str) -> Iterator[None]:
        lock = self._lock_for(owner)
        if not lock.acquire(timeout=self.timeout):
            raise StorageTimeout(f"Timed out waiting for the vault of {owner}")
        try:
            yield
        finally:
            lock.release()

    # --- users ---

    @abstractmethod
    def get_user(self, username: str) -> Optional[UserRecord]: ...

    @abstractmethod
    def put_user(self, record: UserRecord) -> None:
        """Insert ``record``; raise ``AlreadyExists`` if the username is taken."""

    # --- entries ---

    @abstractmethod
    def ensure_vault(self, owner: str) -> None: ...

    @abstractmethod
    def list_entries(self, owner: str) -> List[VaultEntry]:
        """Entries of ``owner``, newest ``created_at`` first."""

    @abstractmethod
    def insert_entry(self, entry: VaultEntry) -> VaultEntry: ...

    @abstractmethod
    def update_entry(self, owner: str, entry_id: str, changes: dict) -> VaultEntry:
        """Merge ``changes`` into the entry and refresh ``updated_at``.

        Raises ``NotFound`` when ``owner`` has no entry with that id.
        """

    @abstractmethod
    def delete_entry(self, owner: str, entry_id: str) -> None: ...

    @abstractmethod
    def remove_tag_from_all_entries(self, owner: str, tag: str) -> int:
        """Strip ``tag`` from every entry of ``owner``; return how many changed."""

    # --- lifecycle ---

    @abstractmethod
    def healthcheck(self) -> None: ...

    def close(self) -> None:
        pass


def check_owner(owner: str) -> str:
    if not is_valid_username(owner):
        raise InvalidInput("Invalid owner")
    return owner


def clean_changes(changes: dict) -> dict:
    return {key: value for key, value in changes.items() if key in MUTABLE_FIELDS}


def sort_newest_first(entries: List[VaultEntry]) -> List[VaultEntry]:
    # stable sort: equal timestamps keep insertion order (newest first)
    return sorted(entries, key=lambda e: e.created_at, reverse=True)
