import logging
from functools import lru_cache

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

# argon2id; hashes made with older parameters are upgraded on the next login
password_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__type="ID",
    argon2__memory_cost=65536,
    argon2__time_cost=3,
    argon2__parallelism=4,
)


def hash_password(password: str) -> str:
    return password_context.hash(password)


def verify_password(password: str | None, password_hash: str | None) -> bool:
    if not password or not password_hash:
        return False
    try:
        return password_context.verify(password, password_hash)
    except ValueError:
        logger.warning("Stored password hash is not a recognised format")
        return False


@lru_cache(maxsize=1)
def dummy_hash() -> str:
    """A hash no password matches; verified against when the account does not exist
    so unknown e-mails cost the same argon2 work as wrong passwords."""
    return hash_password("no-such-account")


def verify_and_upgrade(password: str | None, password_hash: str | None) -> tuple[bool, str | None]:
    """Check a password and return a fresh hash when the stored one is outdated."""
    if not verify_password(password, password_hash):
        return False, None
    if password_context.needs_update(password_hash):
        return True, hash_password(password)
    return True, None
