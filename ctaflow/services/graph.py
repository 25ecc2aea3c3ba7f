# ctaflow/services/graph.py
"""
Flow graph model - node/edge containers and the mutation API the canvas drives.

All mutations are synchronous and serialized on a per-graph lock. Each
successful one bumps the revision, marks the graph dirty and
notifies listeners (the draft recorder subscribes here). A read-only graph
turns every mutation into a no-op.
"""
import functools
import logging
import math
import threading
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ctaflow.core.config import GRID, NODE_DEFAULT_HEIGHT, NODE_DEFAULT_WIDTH
from ctaflow.schemas.graph import (
    URL_PARAM_SLOTS, Button, Edge, Node, Position, TemplateKind, TemplateSnapshot
)
from ctaflow.services.handles import label_for_handle
from ctaflow.services.validation import count_placeholders

log = logging.getLogger("ctaflow.graph")

BATCH_COLUMNS = 2
PLACEMENT_GAP = 80
DEFAULT_BODY = "Message body preview..."
UNTITLED_STEP = "Untitled"

Listener = Callable[["FlowGraph", str], None]


def synchronized(method):
    """Run the method while holding the instance's `_lock` (an RLock)"""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


def snap(value: float) -> float:
    """Round to the nearest grid line (halves round up)"""
    return math.floor(value / GRID + 0.5) * GRID


def reconcile_node(node: Node) -> Node:
    """
    Restore per-node invariants after an edit.

    - body_params length equals the placeholder count; existing values keep their slot
    - url_button_params always has one entry per URL button slot
    - profile-name greeting only on text templates with placeholders, slot clamped
    - trigger button mirrors the first button
    """
    count = count_placeholders(node.message_body)
    params = [str(p or "") for p in node.body_params[:count]]
    node.body_params = params + [""] * (count - len(params))

    url_params = [str(p or "") for p in node.url_button_params[:URL_PARAM_SLOTS]]
    node.url_button_params = url_params + [""] * (URL_PARAM_SLOTS - len(url_params))

    can_use_profile = node.template_type is TemplateKind.TEXT and count > 0
    if not can_use_profile:
        node.use_profile_name = False
        node.profile_name_slot = None
    elif node.use_profile_name:
        node.profile_name_slot = max(1, min(node.profile_name_slot or 1, count))

    if node.buttons:
        node.trigger_button_text = node.buttons[0].text
        node.trigger_button_type = "cta"
    return node


def node_from_snapshot(snapshot: TemplateSnapshot, node_id: str, position: Position) -> Node:
    buttons = [
        Button(
            text=btn.text or "",
            type=btn.type or "QUICK_REPLY",
            sub_type=btn.sub_type or "",
            value=btn.parameter_value or "",
            target_node_id=None,
            index=btn.index if btn.index is not None else i,
        )
        for i, btn in enumerate(snapshot.buttons)
    ]
    node = Node(
        id=node_id,
        position=position,
        template_name=snapshot.name or UNTITLED_STEP,
        template_type=snapshot.type,
        message_body=snapshot.body or DEFAULT_BODY,
        buttons=buttons,
    )
    return reconcile_node(node)


class FlowGraph:
    """
    Node/edge container for one flow.

    Args:
        business_id: Explicit business context the graph belongs to
        name: Flow name
        nodes/edges: Initial content (taken as-is, not marked dirty)
        id_factory: Generator for node/edge ids (uuid4 by default)
    """

    def __init__(
        self,
        business_id: Optional[str] = None,
        name: str = "",
        nodes: Optional[Iterable[Node]] = None,
        edges: Optional[Iterable[Edge]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.business_id = business_id
        self.name = name
        self.nodes: List[Node] = list(nodes or [])
        self.edges: List[Edge] = list(edges or [])
        self.dirty = False
        self.readonly = False
        # Bumped on every mutation; lets callers tell whether content changed since a read
        self.revision = 0
        self._lock = threading.RLock()
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._listeners: List[Listener] = []

    # ────────────────────────────────────────────
    # Observers
    # ────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _mutated(self, action: str) -> None:
        self.revision += 1
        self.dirty = True
        log.debug(f"Graph mutation: {action} (nodes={len(self.nodes)}, edges={len(self.edges)})")
        for listener in list(self._listeners):
            listener(self, action)

    def _blocked(self, action: str) -> bool:
        if self.readonly:
            log.debug(f"Ignoring {action}: graph is read-only")
        return self.readonly

    # ────────────────────────────────────────────
    # Lookups
    # ────────────────────────────────────────────

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def is_empty(self) -> bool:
        return not self.nodes and not self.edges and not self.name.strip()

    def compute_reachability(self) -> Set[str]:
        """Ids of nodes that are the target of at least one edge"""
        return {edge.target for edge in self.edges}

    # ────────────────────────────────────────────
    # Nodes
    # ────────────────────────────────────────────

    def _placement_origin(self) -> Position:
        if not self.nodes:
            return Position(x=snap(120), y=snap(120))
        right = max(n.position.x + (n.width or NODE_DEFAULT_WIDTH) for n in self.nodes)
        top = min(n.position.y for n in self.nodes)
        return Position(x=snap(right + PLACEMENT_GAP), y=snap(top))

    def add_node(self, snapshot: TemplateSnapshot) -> Optional[Node]:
        added = self.add_nodes_batch([snapshot])
        return added[0] if added else None

    @synchronized
    def add_nodes_batch(self, snapshots: Iterable[TemplateSnapshot]) -> List[Node]:
        """Add one node per template, laid out in a grid right of the existing nodes"""
        items = [s for s in snapshots or [] if s is not None]
        if not items or self._blocked("add_nodes"):
            return []

        origin = self._placement_origin()
        cols = min(BATCH_COLUMNS, len(items))
        gap_x = snap(NODE_DEFAULT_WIDTH + PLACEMENT_GAP)
        gap_y = snap(NODE_DEFAULT_HEIGHT + PLACEMENT_GAP)

        added = []
        for idx, snapshot in enumerate(items):
            col, row = idx % cols, idx // cols
            position = Position(x=origin.x + col * gap_x, y=origin.y + row * gap_y)
            node = node_from_snapshot(snapshot, self._new_id(), position)
            self.nodes.append(node)
            added.append(node)

        self._mutated(f"add_nodes[{len(added)}]")
        return added

    @synchronized
    def delete_node(self, node_id: str) -> bool:
        """Remove the node and every edge touching it"""
        if self._blocked("delete_node") or self.get_node(node_id) is None:
            return False
        self.nodes = [n for n in self.nodes if n.id != node_id]
        self.edges = [e for e in self.edges if e.source != node_id and e.target != node_id]
        self._sync_button_targets()
        self._mutated(f"delete_node:{node_id}")
        return True

    @synchronized
    def delete_selection(self, node_ids: Iterable[str] = (), edge_ids: Iterable[str] = ()) -> bool:
        node_ids, edge_ids = set(node_ids or ()), set(edge_ids or ())
        if self._blocked("delete_selection") or not (node_ids or edge_ids):
            return False
        before = (len(self.nodes), len(self.edges))
        self.nodes = [n for n in self.nodes if n.id not in node_ids]
        self.edges = [
            e for e in self.edges
            if e.id not in edge_ids and e.source not in node_ids and e.target not in node_ids
        ]
        if (len(self.nodes), len(self.edges)) == before:
            return False
        self._sync_button_targets()
        self._mutated("delete_selection")
        return True

    @synchronized
    def update_node_data(self, node_id: str, fields: Dict[str, Any]) -> Optional[Node]:
        """Shallow-merge `fields` into the node, then reconcile its invariants"""
        if self._blocked("update_node_data"):
            return None
        for pos, node in enumerate(self.nodes):
            if node.id != node_id:
                continue
            data = node.model_dump()
            unknown = set(fields) - set(data) | ({"id"} & set(fields))
            if unknown:
                log.warning(f"⚠️ Ignoring unknown node fields {sorted(unknown)} on {node_id}")
            data.update({k: v for k, v in fields.items() if k not in unknown})
            updated = reconcile_node(Node.model_validate(data))
            self.nodes[pos] = updated
            if "buttons" in fields:
                self._sync_button_targets()
            self._mutated(f"update_node:{node_id}")
            return updated
        return None

    @synchronized
    def move_node(self, node_id: str, x: float, y: float) -> bool:
        node = self.get_node(node_id)
        if node is None or self._blocked("move_node"):
            return False
        node.position = Position(x=x, y=y)
        self._mutated(f"move_node:{node_id}")
        return True

    @synchronized
    def measure_node(self, node_id: str, width: float, height: float) -> None:
        """Record the rendered size; not a content change"""
        node = self.get_node(node_id)
        if node is not None:
            node.width, node.height = width, height

    @synchronized
    def apply_positions(self, positions: Dict[str, Position]) -> None:
        if self._blocked("apply_positions"):
            return
        for node in self.nodes:
            if node.id in positions:
                node.position = positions[node.id]
        self._mutated("layout")

    @synchronized
    def rename(self, name: str) -> None:
        if self._blocked("rename"):
            return
        self.name = name or ""
        self._mutated("rename")

    # ────────────────────────────────────────────
    # Edges
    # ────────────────────────────────────────────

    def has_edge_from(self, source: str, source_handle: str) -> bool:
        return any(e.source == source and e.source_handle == source_handle for e in self.edges)

    @synchronized
    def connect(self, source: str, source_handle: Optional[str], target: str) -> Optional[Edge]:
        """
        Wire the button behind `source_handle` on `source` to `target`.

        Returns None (connection rejected) when the handle is missing, either
        node is unknown, or the handle already drives a transition.
        """
        if self._blocked("connect"):
            return None
        if not source or not source_handle or not target:
            log.debug("Connection rejected: missing source or handle")
            return None
        source_node = self.get_node(source)
        if source_node is None or self.get_node(target) is None:
            log.debug(f"Connection rejected: unknown node ({source} -> {target})")
            return None
        if self.has_edge_from(source, source_handle):
            log.warning(f"⚠️ Connection rejected: {source}/{source_handle} already has a transition")
            return None

        edge = Edge(
            id=self._new_id(),
            source=source,
            target=target,
            source_handle=source_handle,
            label=label_for_handle(source_node.buttons, source_handle),
        )
        self.edges.append(edge)
        btn = source_node.button_for_handle(source_handle)
        if btn is not None:
            btn.target_node_id = target
        self._mutated(f"connect:{source}/{source_handle}->{target}")
        return edge

    @synchronized
    def disconnect(self, edge_id: str) -> bool:
        if self._blocked("disconnect") or self.get_edge(edge_id) is None:
            return False
        self.edges = [e for e in self.edges if e.id != edge_id]
        self._sync_button_targets()
        self._mutated(f"disconnect:{edge_id}")
        return True

    def _sync_button_targets(self) -> None:
        """Recompute every button's target_node_id from the edge set"""
        targets = {(e.source, e.source_handle): e.target for e in self.edges}
        for node in self.nodes:
            for btn in node.buttons:
                btn.target_node_id = targets.get((node.id, btn.handle))

    # ────────────────────────────────────────────
    # Whole-graph operations
    # ────────────────────────────────────────────

    @synchronized
    def replace(self, nodes: Iterable[Node], edges: Iterable[Edge], name: Optional[str] = None,
                dirty: bool = False) -> None:
        """Swap in new content (load/restore) without notifying listeners"""
        self.nodes = list(nodes)
        self.edges = list(edges)
        if name is not None:
            self.name = name
        self.revision += 1
        self.dirty = dirty

    @synchronized
    def clone(self) -> "FlowGraph":
        """Deep copy; edits to the clone never reach this graph"""
        copy = FlowGraph(
            business_id=self.business_id,
            name=self.name,
            nodes=[n.model_copy(deep=True) for n in self.nodes],
            edges=[e.model_copy(deep=True) for e in self.edges],
            id_factory=self._new_id,
        )
        copy.dirty = self.dirty
        return copy
