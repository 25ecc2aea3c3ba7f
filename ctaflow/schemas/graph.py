# ctaflow/schemas/graph.py
"""
In-memory flow graph types.

A flow is a set of template-backed nodes wired together by edges that start
at a specific button slot ("handle") on the source node.
"""
from enum import Enum
from typing import List, NewType, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


# ────────────────────────────────────────────
# Addressing
# ────────────────────────────────────────────

HANDLE_PREFIX = "btn-"
URL_PARAM_SLOTS = 3

# Index-derived connection point on a node ("btn-0", "btn-1", ...)
HandleId = NewType("HandleId", str)
# Button text as sent on the wire to key a transition
ButtonLabel = NewType("ButtonLabel", str)


# ────────────────────────────────────────────
# Enums
# ────────────────────────────────────────────

class TemplateKind(str, Enum):
    """Template header kind"""
    TEXT = "text_template"
    IMAGE = "image_template"
    VIDEO = "video_template"
    DOCUMENT = "document_template"

    @classmethod
    def parse(cls, value) -> "TemplateKind":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().lower()
        for kind in cls:
            if kind.value == raw:
                return kind
        return cls.TEXT

    @classmethod
    def from_header_kind(cls, header_kind) -> "TemplateKind":
        return _HEADER_KINDS.get(str(header_kind or "").strip().lower(), cls.TEXT)

    @property
    def requires_header_media(self) -> bool:
        return _MEDIA_REQUIRED[self]


_MEDIA_REQUIRED = {
    TemplateKind.TEXT: False,
    TemplateKind.IMAGE: True,
    TemplateKind.VIDEO: True,
    TemplateKind.DOCUMENT: True,
}

_HEADER_KINDS = {
    "image": TemplateKind.IMAGE,
    "video": TemplateKind.VIDEO,
    "document": TemplateKind.DOCUMENT,
}


class IssueKind(str, Enum):
    """Validation checks, in user-facing priority order"""
    HEADER_MEDIA = "header_media"
    BODY_PLACEHOLDER = "body_placeholder"
    DYNAMIC_URL = "dynamic_url"


# ────────────────────────────────────────────
# Graph elements
# ────────────────────────────────────────────

class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0


class Button(BaseModel):
    """One button slot on a node"""
    text: str = ""
    type: str = "QUICK_REPLY"
    sub_type: str = ""
    value: str = ""
    target_node_id: Optional[str] = None
    index: int = 0

    @property
    def handle(self) -> HandleId:
        return HandleId(f"{HANDLE_PREFIX}{self.index}")

    @property
    def is_url(self) -> bool:
        return self.type.strip().upper() == "URL" or self.sub_type.strip().lower() == "url"

    @property
    def is_dynamic_url(self) -> bool:
        return self.is_url and "{{" in self.value.strip()


class Node(BaseModel):
    """One message step backed by a template"""
    id: str
    position: Position = Field(default_factory=Position)
    template_name: str = ""
    template_type: TemplateKind = TemplateKind.TEXT
    header_media_url: str = ""
    message_body: str = ""
    body_params: List[str] = Field(default_factory=list)
    url_button_params: List[str] = Field(default_factory=lambda: [""] * URL_PARAM_SLOTS)
    buttons: List[Button] = Field(default_factory=list)
    use_profile_name: bool = False
    profile_name_slot: Optional[int] = 1
    required_tag: str = ""
    required_source: str = ""
    trigger_button_text: str = ""
    trigger_button_type: str = "cta"
    # Measured by the canvas; None until rendered
    width: Optional[float] = None
    height: Optional[float] = None

    @field_validator("template_type", mode="before")
    @classmethod
    def _parse_template_type(cls, value):
        return TemplateKind.parse(value)

    def button_for_handle(self, handle: Optional[str]) -> Optional[Button]:
        for btn in self.buttons:
            if btn.handle == handle:
                return btn
        return None


class Edge(BaseModel):
    """Directed transition from a button handle on `source` to `target`"""
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    label: str = ""


# ────────────────────────────────────────────
# Template catalog payloads
# ────────────────────────────────────────────

class TemplateButton(BaseModel):
    """Button as supplied by the template catalog"""
    text: str = ""
    type: str = "QUICK_REPLY"
    sub_type: str = Field("", validation_alias=AliasChoices("sub_type", "subType", "SubType"))
    parameter_value: str = Field(
        "", validation_alias=AliasChoices("parameter_value", "parameterValue", "ParameterValue")
    )
    index: Optional[int] = None

    @field_validator("text", "type", "sub_type", "parameter_value", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value


class TemplateSnapshot(BaseModel):
    """Immutable template payload handed to the graph when a step is added"""
    name: str = ""
    type: TemplateKind = TemplateKind.TEXT
    body: str = ""
    buttons: List[TemplateButton] = Field(default_factory=list)

    class Config:
        frozen = True

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value):
        return TemplateKind.parse(value)


# ────────────────────────────────────────────
# Validation
# ────────────────────────────────────────────

class ValidationIssue(BaseModel):
    """A content defect that blocks publish (and warns on save)"""
    node_id: str
    template_name: str
    reason: str
    check: IssueKind
    slot: Optional[int] = None
    button_index: Optional[int] = None
    button_text: Optional[str] = None
