# ctaflow/schemas/flow.py
"""
Pydantic schemas for the flow API wire contract.

Reads accept camelCase (GET responses), PascalCase (our own create/update
payloads) and snake_case. Writes always serialize to PascalCase, which is
what the create/update endpoints expect.
"""
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


def _aliases(camel: str) -> AliasChoices:
    snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in camel)
    pascal = camel[0].upper() + camel[1:]
    return AliasChoices(snake, camel, pascal)


def inbound(default: Any, camel: str, **kwargs):
    """Field readable from snake/camel/Pascal keys"""
    return Field(default, validation_alias=_aliases(camel), **kwargs)


def wire(default: Any, camel: str, **kwargs):
    """Field readable from snake/camel/Pascal keys, written as Pascal"""
    return Field(
        default,
        validation_alias=_aliases(camel),
        serialization_alias=camel[0].upper() + camel[1:],
        **kwargs,
    )


# ────────────────────────────────────────────
# Flow document
# ────────────────────────────────────────────

class WireButton(BaseModel):
    text: Optional[str] = wire(None, "text")
    type: Optional[str] = wire(None, "type")
    sub_type: Optional[str] = wire(None, "subType")
    value: Optional[str] = wire(None, "value")
    target_node_id: Optional[str] = wire(None, "targetNodeId")
    index: Optional[int] = wire(None, "index")


class WireNode(BaseModel):
    id: str = wire(..., "id")
    template_name: Optional[str] = wire(None, "templateName")
    template_type: Optional[str] = wire(None, "templateType")
    header_media_url: Optional[str] = wire(None, "headerMediaUrl")
    body_params: Optional[List[Optional[str]]] = wire(None, "bodyParams")
    url_button_params: Optional[List[Optional[str]]] = wire(None, "urlButtonParams")
    message_body: Optional[str] = wire(None, "messageBody")
    position_x: Optional[float] = wire(None, "positionX")
    position_y: Optional[float] = wire(None, "positionY")
    trigger_button_text: Optional[str] = wire(None, "triggerButtonText")
    trigger_button_type: Optional[str] = wire(None, "triggerButtonType")
    required_tag: Optional[str] = wire(None, "requiredTag")
    required_source: Optional[str] = wire(None, "requiredSource")
    use_profile_name: Optional[bool] = wire(None, "useProfileName")
    profile_name_slot: Optional[int] = wire(None, "profileNameSlot")
    buttons: Optional[List[WireButton]] = wire(None, "buttons")


class WireEdge(BaseModel):
    from_node_id: str = wire(..., "fromNodeId")
    to_node_id: str = wire(..., "toNodeId")
    # Button text on the wire, not the canvas handle id
    source_handle: Optional[str] = wire(None, "sourceHandle")


class FlowDocument(BaseModel):
    """GET flow/{id} response and POST/PUT flow body"""
    flow_name: Optional[str] = wire(None, "flowName")
    is_published: bool = wire(False, "isPublished")
    nodes: List[WireNode] = wire([], "nodes")
    edges: List[WireEdge] = wire([], "edges")

    @field_validator("nodes", "edges", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value

    @field_validator("is_published", mode="before")
    @classmethod
    def _truthy(cls, value):
        return bool(value)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


# ────────────────────────────────────────────
# Endpoint responses
# ────────────────────────────────────────────

class CreateFlowResponse(BaseModel):
    flow_id: Optional[str] = inbound(None, "flowId")

    @field_validator("flow_id", mode="before")
    @classmethod
    def _as_str(cls, value):
        return None if value in (None, "") else str(value)


class UpdateFlowResponse(BaseModel):
    needs_republish: bool = inbound(False, "needsRepublish")

    @field_validator("needs_republish", mode="before")
    @classmethod
    def _truthy(cls, value):
        return bool(value)


class PublishFlowResponse(BaseModel):
    success: bool = inbound(True, "success")
    message: Optional[str] = inbound(None, "message")


class ForkFlowResponse(CreateFlowResponse):
    pass


class CampaignUsage(BaseModel):
    """A campaign currently attached to a published flow"""
    id: Optional[str] = inbound(None, "id")
    name: Optional[str] = inbound(None, "name")
    status: Optional[str] = inbound(None, "status")
    created_at: Optional[str] = inbound(None, "createdAt")
    created_by: Optional[str] = inbound(None, "createdBy")
    scheduled_at: Optional[str] = inbound(None, "scheduledAt")
    first_sent_at: Optional[str] = inbound(None, "firstSentAt")

    @field_validator("id", "created_at", "created_by", "scheduled_at", "first_sent_at", mode="before")
    @classmethod
    def _as_str(cls, value):
        return None if value is None else str(value)


class FlowUsageResponse(BaseModel):
    campaigns: List[CampaignUsage] = inbound([], "campaigns")

    @field_validator("campaigns", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value


class CampaignUsageLock(BaseModel):
    """Read-only view of a flow's attachment to live campaigns"""
    locked: bool = False
    campaigns: List[CampaignUsage] = Field(default_factory=list)

    @classmethod
    def from_campaigns(cls, campaigns) -> "CampaignUsageLock":
        parsed = [c if isinstance(c, CampaignUsage) else CampaignUsage.model_validate(c)
                  for c in campaigns or []]
        return cls(locked=bool(parsed), campaigns=parsed)
