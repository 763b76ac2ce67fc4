from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

NAME_PATTERN = r"^[a-zA-Z\s]+$"


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Storage keeps naive UTC datetimes; convert aware input to match."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class StatusMessage(BaseModel):
    message: str
