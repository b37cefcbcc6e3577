from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def dump(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class CapsuleCreate(CamelModel):
    title: str
    message: str
    unlock_date: datetime

    @field_validator("title", "message")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("unlock_date")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class MediaItemOut(CamelModel):
    kind: str
    url: str
    storage_id: str


class CapsuleOut(CamelModel):
    id: str
    title: str
    message: str
    unlock_date: datetime
    is_unlocked: bool
    media: List[MediaItemOut]
    created_at: datetime
    updated_at: datetime


class CapsuleSummary(CamelModel):
    id: str
    title: str
    unlock_date: datetime
    status: str
    is_locked: bool


class LockedCapsule(CamelModel):
    id: str
    status: str = "locked"
    is_locked: bool = True
    unlock_date: datetime
    unlocks_in: Optional[str]


class UnlockedCapsule(CamelModel):
    id: str
    status: str = "unlocked"
    is_locked: bool = False
    title: str
    message: str
    unlock_date: datetime
    media: List[MediaItemOut]
