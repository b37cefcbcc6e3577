import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, returns aware UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(150), unique=True, index=True, nullable=False)

    capsules = relationship("Capsule", back_populates="user")


class Capsule(Base):
    __tablename__ = "capsules"
    id = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    unlock_date = Column(UTCDateTime, nullable=False, index=True)
    is_unlocked = Column(Boolean, nullable=False, default=False)
    # Append-only list of {"kind", "url", "storage_id"}; replaced as a whole on append.
    media = Column(JSON, nullable=False, default=list)
    # Set once the open notification for the unlocked capsule has been queued.
    notified_at = Column(UTCDateTime, nullable=True, index=True)
    version_id = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="capsules")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self):
        return f"<Capsule {self.id} user={self.user_id} unlock={self.unlock_date}>"
