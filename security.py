import bcrypt

from constants import BCRYPT_ROUNDS
from logging_config import get_logger

logger = get_logger(__name__)

# bcrypt only looks at the first 72 bytes; newer releases refuse longer input
_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Salted bcrypt hash of `password`, as text."""
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("ascii"))
    except ValueError:
        logger.warning("Stored password hash is malformed, treating as mismatch")
        return False
