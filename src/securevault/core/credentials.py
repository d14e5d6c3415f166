import logging

from .crypto import ALGORITHM, PasswordHasher
from .errors import InvalidCredentials, InvalidInput, StorageError
from .models import MIN_PASSWORD_LENGTH, Identity, UserRecord, is_valid_username, utcnow
from ..storage.base import StorageAdapter

logger = logging.getLogger(__name__)


class CredentialStore:
    """Registers users and checks login attempts.

    Password material never leaves this class in clear: the record keeps the
    salt, the derived hash and the work factor it was derived with, so the
    default iteration count can be raised later without breaking logins.
    """

    def __init__(self, storage: StorageAdapter, hasher: PasswordHasher | None = None, clock=utcnow):
        self.storage = storage
        self.hasher = hasher or PasswordHasher()
        self.clock = clock
        # burned on unknown usernames so both failure paths cost one KDF run
        self._dummy_salt = self.hasher.generate_salt()
        self._dummy_hash = self.hasher.hash_password("", self._dummy_salt)

    def register(self, username: str, password: str) -> None:
        if not is_valid_username(username):
            raise InvalidInput("Invalid username or password")
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInput("Invalid username or password")

        salt = self.hasher.generate_salt()
        record = UserRecord(
            username=username,
            salt=salt,
            password_hash=self.hasher.hash_password(password, salt),
            iterations=self.hasher.iterations,
            algorithm=self.hasher.algorithm,
            created_at=self.clock(),
        )
        # put_user is the uniqueness check; AlreadyExists propagates
        self.storage.put_user(record)
        self.storage.ensure_vault(username)
        logger.info("Registered user %s", username)

    def verify(self, username: str, password: str) -> Identity:
        if not isinstance(username, str) or not isinstance(password, str):
            raise InvalidCredentials()

        record = self.storage.get_user(username) if is_valid_username(username) else None
        if record is None:
            self.hasher.verify_password(password, self._dummy_salt, self.hasher.iterations, self._dummy_hash)
            logger.info("Rejected login for %s", username)
            raise InvalidCredentials()

        if record.algorithm != ALGORITHM:
            raise StorageError(f"Unsupported password algorithm {record.algorithm!r} for {username}")

        if not self.hasher.verify_password(password, record.salt, record.iterations, record.password_hash):
            logger.info("Rejected login for %s", username)
            raise InvalidCredentials()

        return Identity(username=record.username)
