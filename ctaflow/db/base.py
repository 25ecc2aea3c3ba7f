# ctaflow/db/base.py
"""Import all models so metadata.create_all sees them"""
from ctaflow.models.base import Base

from ctaflow.models.draft_cache import DraftCacheEntry

__all__ = ["Base", "DraftCacheEntry"]
