# ctaflow/schemas/editor.py
"""Pydantic schemas for editor sessions and the canvas-facing API"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ctaflow.schemas.flow import CampaignUsageLock
from ctaflow.schemas.graph import Edge, Node, TemplateSnapshot, ValidationIssue
from ctaflow.schemas.template import TemplateSummary


class EditorMode(str, Enum):
    NEW = "new"
    EDIT = "edit"
    VIEW = "view"

    @classmethod
    def parse(cls, value, flow_id: Optional[str] = None) -> "EditorMode":
        raw = str(value or "").strip().lower()
        if raw == "view":
            return cls.VIEW
        if raw == "edit" or flow_id:
            return cls.EDIT if flow_id else cls.NEW
        return cls.NEW


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    """User-facing toast"""
    level: NotificationLevel
    message: str


# ────────────────────────────────────────────
# Outcomes
# ────────────────────────────────────────────

class ActionOutcome(BaseModel):
    """Result of save/publish/fork and other session actions"""
    ok: bool = True
    state: Optional[str] = None
    flow_id: Optional[str] = None
    notifications: List[Notification] = Field(default_factory=list)
    # "validation", "usage_lock" or "transport" when ok is False
    error: Optional[str] = None
    blocking_issue: Optional[ValidationIssue] = None
    campaigns: List[Dict[str, Any]] = Field(default_factory=list)


class CanvasView(BaseModel):
    """Everything the canvas needs to render one session"""
    session_id: Optional[str] = None
    flow_id: Optional[str] = None
    mode: EditorMode
    state: str
    name: str
    readonly: bool
    dirty: bool
    republish_needed: bool = False
    fork_prompt_open: bool = False
    lock: CampaignUsageLock = Field(default_factory=CampaignUsageLock)
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    has_no_incoming: List[str] = Field(default_factory=list)


class ValidationReport(BaseModel):
    publishable: bool
    issues: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class LeaveCheck(BaseModel):
    confirm: bool
    message: Optional[str] = None


# ────────────────────────────────────────────
# Requests
# ────────────────────────────────────────────

class OpenSessionRequest(BaseModel):
    flow_id: Optional[str] = None
    mode: Optional[str] = None


class AddNodesRequest(BaseModel):
    templates: List[TemplateSnapshot] = Field(..., min_length=1)


class MoveNodeRequest(BaseModel):
    x: float
    y: float


class ConnectRequest(BaseModel):
    source: str
    source_handle: Optional[str] = None
    target: str


class SelectionDeleteRequest(BaseModel):
    node_ids: List[str] = Field(default_factory=list)
    edge_ids: List[str] = Field(default_factory=list)


class RenameRequest(BaseModel):
    name: str = ""


class LayoutRequest(BaseModel):
    direction: str = "LR"


class VisibilityRequest(BaseModel):
    hidden: bool = True


class AddFromCatalogRequest(BaseModel):
    templates: List[TemplateSummary] = Field(..., min_length=1)


# ────────────────────────────────────────────
# Responses
# ────────────────────────────────────────────

class SessionOpenedResponse(BaseModel):
    session_id: str
    outcome: ActionOutcome
    view: CanvasView


class MutationResponse(BaseModel):
    """Canvas mutation result; applied is False for rejected or read-only no-ops"""
    applied: bool
    created_ids: List[str] = Field(default_factory=list)
    view: CanvasView
