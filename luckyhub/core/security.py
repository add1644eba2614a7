import secrets

from passlib.context import CryptContext

# pbkdf2_sha256 is broadly compatible across Python versions and needs no
# native extension.
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def unusable_password_hash() -> str:
    """Hash of a random secret nobody knows, for accounts that never log in."""
    return get_password_hash(secrets.token_urlsafe(32))


def normalize_username(username: str) -> str:
    return (username or "").strip().lower()
