import hmac
import secrets

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

ALGORITHM = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 120000
SALT_BYTES = 16
HASH_BYTES = 32
TOKEN_BYTES = 32  # 256 bits


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


class PasswordHasher:
    def __init__(self, iterations: int = DEFAULT_ITERATIONS):
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self.iterations = iterations
        self.algorithm = ALGORITHM

    def generate_salt(self) -> str:
        return secrets.token_hex(SALT_BYTES)

    def hash_password(self, password: str, salt: str, iterations: int | None = None) -> str:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=HASH_BYTES,
            salt=salt.encode("utf-8"),
            iterations=iterations or self.iterations,
        )
        return kdf.derive(password.encode("utf-8")).hex()

    def verify_password(self, password: str, salt: str, iterations: int, expected_hash: str) -> bool:
        candidate = self.hash_password(password, salt, iterations)
        return hmac.compare_digest(candidate, expected_hash)
