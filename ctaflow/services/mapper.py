# ctaflow/services/mapper.py
"""
Graph <-> flow API payload translation.

The canvas addresses transitions by handle ("btn-<index>"); the API keys
them by button text. Outbound edges carry the button label, inbound edges are
re-indexed by matching that label against the loaded node's buttons.
"""
import logging
from typing import Dict, NamedTuple, Optional

from ctaflow.schemas.flow import FlowDocument, WireButton, WireEdge, WireNode
from ctaflow.schemas.graph import Button, ButtonLabel, Edge, Node, Position
from ctaflow.services.graph import FlowGraph, reconcile_node
from ctaflow.services.handles import handle_for_label, label_for_handle

log = logging.getLogger("ctaflow.mapper")

UNTITLED_FLOW = "Untitled Flow"


class LoadedFlow(NamedTuple):
    graph: FlowGraph
    is_published: bool


def wire_label(edge: Edge, source: Optional[Node]) -> ButtonLabel:
    """
    Button text to send for an edge.

    The current text of the button behind the handle; the label snapshotted
    at connect time is only a fallback once that button is gone.
    """
    buttons = source.buttons if source else []
    derived = label_for_handle(buttons, edge.source_handle)
    return derived or ButtonLabel((edge.label or "").strip())


class WireMapper:
    """Translate between FlowGraph and FlowDocument for one business"""

    def __init__(self, business_id: Optional[str] = None):
        self.business_id = business_id

    # ────────────────────────────────────────────
    # Outbound
    # ────────────────────────────────────────────

    def to_document(self, graph: FlowGraph, is_published: bool = False) -> FlowDocument:
        nodes = [self._node_out(n) for n in graph.nodes if n.template_name]
        by_id: Dict[str, Node] = {n.id: n for n in graph.nodes}
        edges = [
            WireEdge(
                from_node_id=e.source,
                to_node_id=e.target,
                source_handle=wire_label(e, by_id.get(e.source)),
            )
            for e in graph.edges
        ]
        return FlowDocument(
            flow_name=graph.name or "Untitled",
            is_published=is_published,
            nodes=nodes,
            edges=edges,
        )

    def to_payload(self, graph: FlowGraph) -> dict:
        """Create/update body. Always a draft; publishing is a separate call."""
        return self.to_document(graph, is_published=False).to_payload()

    @staticmethod
    def _node_out(node: Node) -> WireNode:
        slot = node.profile_name_slot
        return WireNode(
            id=node.id,
            template_name=node.template_name or "Untitled",
            template_type=node.template_type.value,
            header_media_url=node.header_media_url.strip(),
            body_params=list(node.body_params),
            url_button_params=list(node.url_button_params),
            message_body=node.message_body or "",
            position_x=node.position.x or 0,
            position_y=node.position.y or 0,
            trigger_button_text=node.trigger_button_text or "",
            trigger_button_type=node.trigger_button_type or "cta",
            required_tag=node.required_tag or "",
            required_source=node.required_source or "",
            use_profile_name=bool(node.use_profile_name),
            profile_name_slot=slot if isinstance(slot, int) and slot > 0 else 1,
            # an empty slot was never configured; drop it instead of sending null
            buttons=[
                WireButton(
                    text=b.text.strip(),
                    type=b.type or "QUICK_REPLY",
                    sub_type=b.sub_type or "",
                    value=b.value or "",
                    target_node_id=b.target_node_id or None,
                    index=b.index,
                )
                for b in node.buttons
                if b.text.strip()
            ],
        )

    # ────────────────────────────────────────────
    # Inbound
    # ────────────────────────────────────────────

    def from_document(self, document: FlowDocument) -> LoadedFlow:
        nodes = [self._node_in(wn, i) for i, wn in enumerate(document.nodes)]
        by_id = {n.id: n for n in nodes}

        edges = []
        for we in document.edges:
            raw = str(we.source_handle or "")
            source = by_id.get(we.from_node_id)
            handle = handle_for_label(source.buttons, raw) if source else None
            if handle is None:
                log.warning(
                    f"⚠️ Edge {we.from_node_id} -> {we.to_node_id}: no button matches '{raw}'"
                )
            edges.append(Edge(
                id=f"e-{we.from_node_id}-{we.to_node_id}-{raw or 'h'}",
                source=we.from_node_id,
                target=we.to_node_id,
                source_handle=handle,
                label=raw,
            ))

        graph = FlowGraph(
            business_id=self.business_id,
            name=document.flow_name or UNTITLED_FLOW,
            nodes=nodes,
            edges=edges,
        )
        log.info(f"Loaded flow '{graph.name}': {len(nodes)} nodes, {len(edges)} edges")
        return LoadedFlow(graph=graph, is_published=document.is_published)

    @staticmethod
    def _node_in(wn: WireNode, index: int) -> Node:
        slot = wn.profile_name_slot
        node = Node(
            id=wn.id,
            position=Position(
                x=wn.position_x if wn.position_x is not None else 120 + index * 120,
                y=wn.position_y if wn.position_y is not None else 150 + (index % 5) * 60,
            ),
            template_name=wn.template_name or "",
            template_type=wn.template_type,
            header_media_url=wn.header_media_url or "",
            message_body=wn.message_body or "",
            body_params=[str(p or "") for p in wn.body_params or []],
            url_button_params=[str(p or "") for p in wn.url_button_params or []],
            trigger_button_text=wn.trigger_button_text or "",
            trigger_button_type=wn.trigger_button_type or "cta",
            required_tag=wn.required_tag or "",
            required_source=wn.required_source or "",
            use_profile_name=bool(wn.use_profile_name),
            profile_name_slot=slot if isinstance(slot, int) and slot > 0 else 1,
            buttons=[
                Button(
                    text=b.text or "",
                    type=b.type or "QUICK_REPLY",
                    sub_type=b.sub_type or "",
                    value=b.value or "",
                    target_node_id=b.target_node_id or None,
                    index=b.index if isinstance(b.index, int) else i,
                )
                for i, b in enumerate(wn.buttons or [])
            ],
        )
        return reconcile_node(node)
