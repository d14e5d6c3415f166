import logging
from typing import List, Set

from .errors import InvalidInput, MissingFields
from .models import EntryCreate, EntryUpdate, ExportBundle, VaultEntry, new_entry_id, utcnow
from ..storage.base import StorageAdapter

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("url", "username", "password_encrypted")


class VaultStore:
    """Per-user collection of encrypted credential entries.

    Categories are not stored anywhere: they are the distinct tags found on
    the owner's entries, so declaring one does nothing and deleting one
    strips the tag from every entry that carries it.
    """

    def __init__(self, storage: StorageAdapter, clock=utcnow):
        self.storage = storage
        self.clock = clock

    def add_entry(self, owner: str, fields: EntryCreate) -> VaultEntry:
        if any(not getattr(fields, name) for name in REQUIRED_FIELDS):
            raise MissingFields()

        now = self.clock()
        entry = VaultEntry(
            id=new_entry_id(),
            owner=owner,
            url=fields.url,
            username=fields.username,
            password_encrypted=fields.password_encrypted,
            favicon_url=fields.favicon_url,
            note=fields.note,
            tags=list(fields.tags),
            created_at=now,
            updated_at=now,
        )
        return self.storage.insert_entry(entry)

    def list_entries(self, owner: str) -> List[VaultEntry]:
        return self.storage.list_entries(owner)

    def update_entry(self, owner: str, entry_id: str, partial: EntryUpdate) -> VaultEntry:
        changes = partial.changes()
        for name in REQUIRED_FIELDS:
            if name in changes and not changes[name]:
                raise InvalidInput(f"{name} cannot be empty")
        if "tags" in changes and changes["tags"] is None:
            changes["tags"] = []
        return self.storage.update_entry(owner, entry_id, changes)

    def delete_entry(self, owner: str, entry_id: str) -> None:
        self.storage.delete_entry(owner, entry_id)

    def list_categories(self, owner: str) -> Set[str]:
        return {tag for entry in self.storage.list_entries(owner) for tag in entry.tags if tag}

    def declare_category(self, name: object) -> str:
        if not isinstance(name, str) or not name.strip():
            raise InvalidInput("Invalid category")
        return name

    def delete_category(self, owner: str, name: str) -> None:
        changed = self.storage.remove_tag_from_all_entries(owner, name)
        logger.info("Removed category %r from %d entries of %s", name, changed, owner)

    def export(self, owner: str) -> ExportBundle:
        return ExportBundle(username=owner, exported_at=self.clock(), entries=self.list_entries(owner))
