import logging

from passlib.context import CryptContext

logging.getLogger("passlib.handlers.bcrypt").setLevel(logging.ERROR)

# bcrypt_sha256 lifts bcrypt's 72-byte limit; plain bcrypt hashes from the
# old seed script still verify and get upgraded on login.
pwd_ctx = CryptContext(
    schemes=["bcrypt_sha256", "bcrypt"],
    deprecated="auto",
)


def hash_password(plain: str) -> str:
    return pwd_ctx.hash(plain)


def verify_password(plain: str, hashed: str | None) -> tuple[bool, str | None]:
    """Return ``(ok, replacement_hash)``.

    ``replacement_hash`` is set when the stored hash uses a deprecated scheme
    and should be written back by the caller.
    """
    if not plain or not hashed:
        return False, None
    try:
        return pwd_ctx.verify_and_update(plain, hashed)
    except ValueError:
        return False, None
