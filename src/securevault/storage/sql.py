# src/securevault/storage/sql.py
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from .base import DEFAULT_TIMEOUT, StorageAdapter, check_owner, clean_changes
from .tables import EntryRow, UserRow
from ..core.errors import AlreadyExists, NotFound, StorageError, StorageTimeout, VaultError
from ..core.models import UserRecord, VaultEntry, utcnow

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores REFERENCES clauses unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, timeout: float = DEFAULT_TIMEOUT, echo: bool = False) -> Engine:
    url = make_url(database_url)
    kwargs = {"echo": echo}
    is_sqlite = url.get_backend_name() == "sqlite"
    if is_sqlite:
        # FastAPI runs sync handlers in a threadpool, so connections cross threads
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": timeout}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_timeout"] = timeout
        kwargs["pool_pre_ping"] = True

    engine = create_engine(database_url, **kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _aware(value: datetime) -> datetime:
    # SQLite hands datetimes back without tzinfo; everything stored is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _entry_from_row(row: EntryRow) -> VaultEntry:
    return VaultEntry(
        id=row.id,
        owner=row.owner,
        url=row.url,
        username=row.username,
        password_encrypted=row.password_encrypted,
        favicon_url=row.favicon_url,
        note=row.note,
        tags=list(row.tags or []),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class SqlStorage(StorageAdapter):
    """Relational backend: one row per user, one row per entry.

    Entries reference their owner through a foreign key, so an entry can
    never be stored for a user that does not exist.
    """

    name = "sql"

    def __init__(self, database_url: str, clock=utcnow, timeout: float = DEFAULT_TIMEOUT, echo: bool = False):
        super().__init__(clock=clock, timeout=timeout)
        with self._guard("initialise database"):
            self.engine = build_engine(database_url, timeout=timeout, echo=echo)
            SQLModel.metadata.create_all(self.engine, tables=[UserRow.__table__, EntryRow.__table__])

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except VaultError:
            raise
        except PoolTimeoutError as e:
            logger.error("Database pool timeout during %s: %s", action, e)
            raise StorageTimeout() from e
        except OperationalError as e:
            message = str(e).lower()
            if "locked" in message or "timeout" in message or "timed out" in message:
                logger.error("Database timeout during %s: %s", action, e)
                raise StorageTimeout() from e
            logger.error("Database failure during %s: %s", action, e)
            raise StorageError() from e
        except SQLAlchemyError as e:
            logger.error("Database failure during %s: %s", action, e)
            raise StorageError() from e

    def _owned_entry(self, session: Session, owner: str, entry_id: str) -> EntryRow:
        statement = select(EntryRow).where(EntryRow.id == entry_id, EntryRow.owner == owner)
        row = session.exec(statement).first()
        if row is None:
            raise NotFound()
        return row

    # --- users ---

    def get_user(self, username: str) -> Optional[UserRecord]:
        with self._guard("get user"):
            with Session(self.engine) as session:
                row = session.get(UserRow, username)
                if row is None:
                    return None
                return UserRecord(
                    username=row.username,
                    salt=row.salt,
                    password_hash=row.password_hash,
                    iterations=row.iterations,
                    algorithm=row.algorithm,
                    created_at=_aware(row.created_at),
                )

    def put_user(self, record: UserRecord) -> None:
        with self._guard("put user"):
            with Session(self.engine) as session:
                session.add(
                    UserRow(
                        username=record.username,
                        salt=record.salt,
                        password_hash=record.password_hash,
                        iterations=record.iterations,
                        algorithm=record.algorithm,
                        created_at=record.created_at,
                    )
                )
                try:
                    session.commit()
                except IntegrityError as e:
                    session.rollback()
                    raise AlreadyExists("User exists") from e

    # --- entries ---

    def ensure_vault(self, owner: str) -> None:
        # entries live in a shared table, nothing to provision
        check_owner(owner)

    def list_entries(self, owner: str) -> List[VaultEntry]:
        check_owner(owner)
        with self._guard("list entries"):
            with Session(self.engine) as session:
                statement = (
                    select(EntryRow)
                    .where(EntryRow.owner == owner)
                    .order_by(EntryRow.created_at.desc(), EntryRow.pk.desc())  # type: ignore
                )
                return [_entry_from_row(row) for row in session.exec(statement).all()]

    def insert_entry(self, entry: VaultEntry) -> VaultEntry:
        check_owner(entry.owner)
        with self.owner_lock(entry.owner), self._guard("insert entry"):
            with Session(self.engine) as session:
                if session.exec(select(EntryRow).where(EntryRow.id == entry.id)).first() is not None:
                    raise AlreadyExists("Entry exists")
                session.add(
                    EntryRow(
                        id=entry.id,
                        owner=entry.owner,
                        url=entry.url,
                        username=entry.username,
                        password_encrypted=entry.password_encrypted,
                        favicon_url=entry.favicon_url,
                        note=entry.note,
                        tags=list(entry.tags),
                        created_at=entry.created_at,
                        updated_at=entry.updated_at,
                    )
                )
                try:
                    session.commit()
                except IntegrityError as e:
                    session.rollback()
                    logger.error("Entry %s for %s rejected by database: %s", entry.id, entry.owner, e)
                    raise StorageError("Entry rejected by storage") from e
        return entry

    # read-modify-write paths hold the owner lock so a concurrent edit of
    # the same entry cannot land between the SELECT and the flush

    def update_entry(self, owner: str, entry_id: str, changes: dict) -> VaultEntry:
        check_owner(owner)
        changes = clean_changes(changes)
        with self.owner_lock(owner), self._guard("update entry"):
            with Session(self.engine) as session:
                row = self._owned_entry(session, owner, entry_id)
                for key, value in changes.items():
                    setattr(row, key, list(value) if key == "tags" else value)
                row.updated_at = self.clock()
                session.add(row)
                session.commit()
                session.refresh(row)
                return _entry_from_row(row)

    def delete_entry(self, owner: str, entry_id: str) -> None:
        check_owner(owner)
        with self.owner_lock(owner), self._guard("delete entry"):
            with Session(self.engine) as session:
                row = self._owned_entry(session, owner, entry_id)
                session.delete(row)
                session.commit()

    def remove_tag_from_all_entries(self, owner: str, tag: str) -> int:
        check_owner(owner)
        changed = 0
        with self.owner_lock(owner), self._guard("remove tag"):
            # one commit for all rows of the owner
            with Session(self.engine) as session:
                statement = select(EntryRow).where(EntryRow.owner == owner)
                rows = session.exec(statement).all()
                now = self.clock()
                for row in rows:
                    if tag in (row.tags or []):
                        row.tags = [t for t in row.tags if t != tag]
                        row.updated_at = now
                        session.add(row)
                        changed += 1
                session.commit()
        return changed

    def healthcheck(self) -> None:
        with self._guard("healthcheck"):
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))

    def close(self) -> None:
        self.engine.dispose()
