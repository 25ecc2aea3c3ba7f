# ctaflow/schemas/template.py
"""Pydantic schemas for the template catalog collaborator"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, field_validator

from ctaflow.schemas.flow import inbound


# ────────────────────────────────────────────
# Enums
# ────────────────────────────────────────────

class TemplateMedia(str, Enum):
    """Media filter in the template picker"""
    ALL = "all"
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"

    @classmethod
    def parse(cls, value) -> "TemplateMedia":
        raw = str(value or "").strip().lower()
        if raw == "pdf":
            return cls.DOCUMENT
        for media in cls:
            if media.value == raw:
                return media
        return cls.ALL


class TemplateSort(str, Enum):
    UPDATED_DESC = "updated_desc"
    CREATED_DESC = "created_desc"
    CREATED_ASC = "created_asc"
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"

    @property
    def params(self) -> dict:
        key, direction = _SORT_PARAMS[self]
        return {"sortKey": key, "sortDir": direction}


_SORT_PARAMS = {
    TemplateSort.UPDATED_DESC: ("updatedAt", "desc"),
    TemplateSort.CREATED_DESC: ("createdAt", "desc"),
    TemplateSort.CREATED_ASC: ("createdAt", "asc"),
    TemplateSort.NAME_ASC: ("name", "asc"),
    TemplateSort.NAME_DESC: ("name", "desc"),
}


# ────────────────────────────────────────────
# Catalog items
# ────────────────────────────────────────────

class TemplateSummary(BaseModel):
    """One row of the template list"""
    name: str = inbound("", "name")
    language_code: str = inbound("en_US", "languageCode")
    category: str = inbound("", "category")
    header_kind: str = inbound("none", "headerKind")
    body_preview: str = inbound("", "bodyPreview")
    body_var_count: int = inbound(0, "bodyVarCount")
    created_at: Optional[str] = inbound(None, "createdAt")
    updated_at: Optional[str] = inbound(None, "updatedAt")

    @field_validator("name", "category", "body_preview", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    @field_validator("language_code", mode="before")
    @classmethod
    def _default_language(cls, value):
        return value or "en_US"

    @field_validator("header_kind", mode="before")
    @classmethod
    def _default_header(cls, value):
        return value or "none"

    @field_validator("body_var_count", mode="before")
    @classmethod
    def _default_count(cls, value):
        return value if isinstance(value, int) else 0


class TemplateListResponse(BaseModel):
    success: bool = inbound(False, "success")
    templates: List[TemplateSummary] = inbound([], "templates")
    page: Optional[int] = inbound(None, "page")
    total_pages: int = inbound(0, "totalPages")

    @field_validator("templates", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value

    @field_validator("total_pages", mode="before")
    @classmethod
    def _default_pages(cls, value):
        return value or 0
