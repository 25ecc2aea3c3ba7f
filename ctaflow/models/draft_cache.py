# ctaflow/models/draft_cache.py
"""Draft cache entries: unsaved builder state kept for crash/tab-discard recovery"""
from sqlalchemy import Column, String, Text
from ctaflow.models.base import BaseModel


class DraftCacheEntry(BaseModel):
    """
    One recovery snapshot per (business, flow-or-new) key.

    The payload is the versioned snapshot JSON exactly as the recorder wrote it.
    """
    __tablename__ = "draft_cache"

    key = Column(String(255), unique=True, index=True, nullable=False)
    payload = Column(Text, nullable=False)

    def __repr__(self):
        return f"<DraftCacheEntry {self.key}>"
