from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict


def utcnow() -> datetime:
    return datetime.now(UTC)


class WireModel(BaseModel):
    """Base for payloads exchanged between the panel and node agents."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")
