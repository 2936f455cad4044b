import secrets
import string
from datetime import datetime, timezone
from typing import Callable, Optional

_ALPHABET = string.ascii_lowercase + string.digits


def id_generator(prefix: str, length: int) -> Callable[[], str]:
    """Return a factory producing ids like `<prefix>_<random>`."""
    def generate() -> str:
        return f"{prefix}_" + "".join(secrets.choice(_ALPHABET) for _ in range(length))
    return generate


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands datetimes back naive; treat those as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
