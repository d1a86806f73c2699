"""Location schemas."""

import uuid

from pydantic import BaseModel, ConfigDict, Field


class LocationBase(BaseModel):
    short_code: str = Field(..., min_length=1, max_length=60)
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    country: str | None = Field(default=None, min_length=2, max_length=2)
    city: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class LocationCreate(LocationBase):
    pass


class LocationRead(LocationBase):
    id: uuid.UUID
    model_config = ConfigDict(from_attributes=True)
