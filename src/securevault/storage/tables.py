from typing import ClassVar, List, Optional
from datetime import datetime
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import SQLModel, Field


class UserRow(SQLModel, table=True):
    __tablename__: ClassVar[str] = "users"
    username: str = Field(primary_key=True, max_length=32)
    salt: str
    password_hash: str
    iterations: int
    algorithm: str = Field(default="pbkdf2_sha256")
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class EntryRow(SQLModel, table=True):
    __tablename__: ClassVar[str] = "vault_entries"
    # surrogate key keeps insertion order for entries created in the same instant
    pk: Optional[int] = Field(default=None, primary_key=True)
    id: str = Field(index=True, unique=True)
    owner: str = Field(foreign_key="users.username", index=True)
    url: str
    username: str
    password_encrypted: str
    favicon_url: Optional[str] = None
    note: Optional[str] = None
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False, index=True))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
