from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.orm import declarative_base
from uuid_extension import uuid7

Base = declarative_base()


def new_id() -> str:
    return str(uuid7())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseModel(Base):
    """Time-ordered uuid7 string ids and UTC timestamps set by the application."""

    __abstract__ = True

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    created_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )
