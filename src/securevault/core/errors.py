class VaultError(Exception):
    """Base class for every failure the vault core reports to its callers."""

    message = "Request failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.message)


class InvalidInput(VaultError):
    message = "Invalid input"


class AlreadyExists(VaultError):
    message = "Already exists"


class InvalidCredentials(VaultError):
    message = "Invalid credentials"


class Unauthorized(VaultError):
    message = "Unauthorized"


class NotFound(VaultError):
    # also raised for entries owned by someone else
    message = "Not found"


class MissingFields(VaultError):
    message = "Missing fields"


class StorageError(VaultError):
    message = "Storage failure"


class StorageTimeout(StorageError):
    message = "Storage timed out"
