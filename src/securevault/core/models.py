import re
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]{3,32}$")
MIN_PASSWORD_LENGTH = 6
EXPORT_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_entry_id() -> str:
    return str(uuid4())


def is_valid_username(username: object) -> bool:
    return isinstance(username, str) and USERNAME_PATTERN.match(username) is not None


def dedupe_tags(tags: List[str]) -> List[str]:
    seen = set()
    result = []
    for tag in tags:
        if tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


class CamelModel(BaseModel):
    # JSON keys are camelCase, python attributes snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Identity(BaseModel):
    username: str


class UserRecord(CamelModel):
    username: str
    salt: str
    password_hash: str
    iterations: int
    algorithm: str = "pbkdf2_sha256"
    created_at: datetime = Field(default_factory=utcnow)


class VaultEntry(CamelModel):
    id: str = Field(default_factory=new_entry_id)
    owner: str
    url: str
    username: str
    password_encrypted: str
    favicon_url: Optional[str] = None
    note: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class EntryCreate(CamelModel):
    """Fields accepted when adding an entry.

    Everything is optional at this level so that the vault store can report
    missing required fields itself instead of failing schema validation.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    url: Optional[str] = None
    username: Optional[str] = None
    password_encrypted: Optional[str] = None
    favicon_url: Optional[str] = None
    note: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value):
        if not isinstance(value, list):
            return []
        return value

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: List[str]) -> List[str]:
        return dedupe_tags(value)


class EntryUpdate(CamelModel):
    """Partial update; only fields present in the payload are applied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    url: Optional[str] = None
    username: Optional[str] = None
    password_encrypted: Optional[str] = None
    favicon_url: Optional[str] = None
    note: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        return dedupe_tags(value)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class ExportBundle(CamelModel):
    version: int = EXPORT_VERSION
    username: str
    exported_at: datetime = Field(default_factory=utcnow)
    entries: List[VaultEntry]
