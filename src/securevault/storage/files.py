# src/securevault/storage/files.py
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from pydantic import ValidationError

from .base import DEFAULT_TIMEOUT, StorageAdapter, check_owner, clean_changes, sort_newest_first
from ..core.errors import AlreadyExists, NotFound, StorageError, StorageTimeout
from ..core.models import UserRecord, VaultEntry, utcnow

logger = logging.getLogger(__name__)


class FileStorage(StorageAdapter):
    """JSON files on disk.

    Layout::

        <data_dir>/users.json          username -> user record
        <data_dir>/vault/<user>.json   list of entries, newest first

    Vault files are created on first access. There is no referential
    integrity between the two: a vault file may exist for an unknown user.
    """

    name = "file"

    def __init__(self, data_dir: str | Path, clock=utcnow, timeout: float = DEFAULT_TIMEOUT):
        super().__init__(clock=clock, timeout=timeout)
        self.data_dir = Path(data_dir)
        self.vault_dir = self.data_dir / "vault"
        self.users_file = self.data_dir / "users.json"
        self._users_lock = threading.Lock()
        try:
            self.vault_dir.mkdir(parents=True, exist_ok=True)
            if not self.users_file.exists():
                self._write_json(self.users_file, {})
        except OSError as e:
            logger.error("Cannot initialise file storage at %s: %s", self.data_dir, e)
            raise StorageError("File storage unavailable") from e

    # --- low level ---

    def _read_json(self, path: Path, default: Any) -> Any:
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            return default
        except OSError as e:
            logger.error("Failed to read %s: %s", path, e)
            raise StorageError("Failed to read storage") from e
        if not raw.strip():
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Corrupt storage file %s: %s", path, e)
            raise StorageError("Corrupt storage file") from e

    def _write_json(self, path: Path, data: Any) -> None:
        # write-then-rename so readers never see a half written file
        fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as e:
            logger.error("Failed to write %s: %s", path, e)
            try:
                os.remove(tmp)
            except OSError:
                pass
            raise StorageError("Failed to write storage") from e

    def _vault_path(self, owner: str) -> Path:
        # usernames double as file names
        return self.vault_dir / f"{check_owner(owner)}.json"

    def _load_users(self) -> Dict[str, Any]:
        data = self._read_json(self.users_file, {})
        if not isinstance(data, dict):
            raise StorageError("Corrupt users file")
        return data

    def _load_entries(self, owner: str) -> List[VaultEntry]:
        path = self._vault_path(owner)
        data = self._read_json(path, None)
        if data is None:
            self._write_json(path, [])
            return []
        if not isinstance(data, list):
            raise StorageError(f"Corrupt vault file for {owner}")
        try:
            return [VaultEntry.model_validate(item) for item in data]
        except ValidationError as e:
            logger.error("Corrupt vault file for %s: %s", owner, e)
            raise StorageError(f"Corrupt vault file for {owner}") from e

    def _save_entries(self, owner: str, entries: List[VaultEntry]) -> None:
        data = [e.model_dump(mode="json", by_alias=True) for e in entries]
        self._write_json(self._vault_path(owner), data)

    @contextmanager
    def _users_locked(self) -> Iterator[None]:
        if not self._users_lock.acquire(timeout=self.timeout):
            raise StorageTimeout("Timed out waiting for the user store")
        try:
            yield
        finally:
            self._users_lock.release()

    # --- users ---

    def get_user(self, username: str) -> Optional[UserRecord]:
        raw = self._load_users().get(username)
        if raw is None:
            return None
        try:
            return UserRecord.model_validate({"username": username, **raw})
        except ValidationError as e:
            logger.error("Corrupt user record %s: %s", username, e)
            raise StorageError("Corrupt user record") from e

    def put_user(self, record: UserRecord) -> None:
        with self._users_locked():
            users = self._load_users()
            if record.username in users:
                raise AlreadyExists("User exists")
            users[record.username] = record.model_dump(mode="json", by_alias=True, exclude={"username"})
            self._write_json(self.users_file, users)

    # --- entries ---

    def ensure_vault(self, owner: str) -> None:
        path = self._vault_path(owner)
        with self.owner_lock(owner):
            if not path.exists():
                self._write_json(path, [])

    def list_entries(self, owner: str) -> List[VaultEntry]:
        with self.owner_lock(owner):
            entries = self._load_entries(owner)
        return sort_newest_first(entries)

    def insert_entry(self, entry: VaultEntry) -> VaultEntry:
        with self.owner_lock(entry.owner):
            entries = self._load_entries(entry.owner)
            if any(e.id == entry.id for e in entries):
                raise AlreadyExists("Entry exists")
            entries.insert(0, entry)
            self._save_entries(entry.owner, entries)
        return entry

    def update_entry(self, owner: str, entry_id: str, changes: dict) -> VaultEntry:
        changes = clean_changes(changes)
        with self.owner_lock(owner):
            entries = self._load_entries(owner)
            for index, entry in enumerate(entries):
                if entry.id == entry_id and entry.owner == owner:
                    updated = entry.model_copy(update={**changes, "updated_at": self.clock()})
                    entries[index] = updated
                    self._save_entries(owner, entries)
                    return updated
        raise NotFound()

    def delete_entry(self, owner: str, entry_id: str) -> None:
        with self.owner_lock(owner):
            entries = self._load_entries(owner)
            remaining = [e for e in entries if not (e.id == entry_id and e.owner == owner)]
            if len(remaining) == len(entries):
                raise NotFound()
            self._save_entries(owner, remaining)

    def remove_tag_from_all_entries(self, owner: str, tag: str) -> int:
        changed = 0
        with self.owner_lock(owner):
            entries = self._load_entries(owner)
            now = self.clock()
            for index, entry in enumerate(entries):
                if tag in entry.tags:
                    tags = [t for t in entry.tags if t != tag]
                    entries[index] = entry.model_copy(update={"tags": tags, "updated_at": now})
                    changed += 1
            if changed:
                self._save_entries(owner, entries)
        return changed

    def healthcheck(self) -> None:
        if not self.vault_dir.is_dir() or not os.access(self.data_dir, os.W_OK):
            raise StorageError(f"Data directory {self.data_dir} is not writable")
        self._load_users()
