# ctaflow/models/base.py
"""Declarative base and the columns every draft-cache table shares"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel(Base):
    """
    Abstract row scoped to one business.

    updated_at doubles as the last-write time of a cached draft.
    """
    __abstract__ = True

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(String(100), index=True, nullable=False, default="unknown")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
