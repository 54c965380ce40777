from datetime import datetime, timezone
from uuid import uuid4 as _uuid4


def uuid4() -> str:
    return str(_uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def cents_to_euros(amount: int) -> float:
    return round(amount / 100, 2)
