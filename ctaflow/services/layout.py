# ctaflow/services/layout.py
"""
Deterministic layered layout for a flow graph.

Steps (Sugiyama style):
1. Break cycles by reversing DFS back edges
2. Rank nodes by longest path from the sources
3. Order nodes inside each rank with barycenter sweeps
4. Assign coordinates, centering every rank on the widest one

Positions depend only on node order, edges and node sizes, never on the
current positions, so running the layout twice yields the same result.
"""
import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import networkx as nx

from ctaflow.core.config import (
    LAYOUT_MARGIN, LAYOUT_NODE_SEP, LAYOUT_RANK_SEP, NODE_DEFAULT_HEIGHT, NODE_DEFAULT_WIDTH
)
from ctaflow.schemas.graph import Edge, Node, Position

log = logging.getLogger("ctaflow.layout")

ORDERING_SWEEPS = 4


class LayoutDirection(str, Enum):
    LEFT_TO_RIGHT = "LR"
    TOP_TO_BOTTOM = "TB"

    @classmethod
    def parse(cls, value) -> "LayoutDirection":
        raw = str(value or "").strip().lower()
        if raw in ("tb", "top-to-bottom", "top_to_bottom"):
            return cls.TOP_TO_BOTTOM
        return cls.LEFT_TO_RIGHT


def _size(node: Node) -> Tuple[float, float]:
    return (node.width or NODE_DEFAULT_WIDTH, node.height or NODE_DEFAULT_HEIGHT)


def _build_graph(nodes: List[Node], edges: Iterable[Edge]) -> nx.DiGraph:
    g = nx.DiGraph()
    g.add_nodes_from(n.id for n in nodes)
    for edge in edges:
        if edge.source == edge.target:
            continue
        if g.has_node(edge.source) and g.has_node(edge.target):
            g.add_edge(edge.source, edge.target)
    return g


def _break_cycles(g: nx.DiGraph, order: Dict[str, int]) -> nx.DiGraph:
    """Return an acyclic copy of `g` with back edges reversed"""
    acyclic = nx.DiGraph()
    acyclic.add_nodes_from(g.nodes)
    state: Dict[str, int] = {}  # 1 = on stack, 2 = done

    def successors(n):
        return sorted(g.successors(n), key=order.__getitem__)

    for root in sorted(g.nodes, key=order.__getitem__):
        if root in state:
            continue
        state[root] = 1
        stack = [(root, iter(successors(root)))]
        while stack:
            parent, children = stack[-1]
            child = next(children, None)
            if child is None:
                state[parent] = 2
                stack.pop()
                continue
            if state.get(child) == 1:
                acyclic.add_edge(child, parent)
            else:
                acyclic.add_edge(parent, child)
                if child not in state:
                    state[child] = 1
                    stack.append((child, iter(successors(child))))
    return acyclic


def _rank(dag: nx.DiGraph, order: Dict[str, int]) -> Dict[str, int]:
    ranks: Dict[str, int] = {}
    for n in nx.lexicographical_topological_sort(dag, key=order.__getitem__):
        preds = list(dag.predecessors(n))
        ranks[n] = max((ranks[p] + 1 for p in preds), default=0)
    return ranks


def _order_layers(dag: nx.DiGraph, ranks: Dict[str, int], order: Dict[str, int]) -> List[List[str]]:
    depth = max(ranks.values(), default=-1) + 1
    layers: List[List[str]] = [[] for _ in range(depth)]
    for n in sorted(ranks, key=order.__getitem__):
        layers[ranks[n]].append(n)

    def sweep(layer_range, neighbours):
        for r in layer_range:
            slot = {n: i for layer in layers for i, n in enumerate(layer)}

            def barycenter(n, current):
                linked = [slot[m] for m in neighbours(n) if m in slot]
                return (sum(linked) / len(linked)) if linked else float(current)

            layers[r] = [
                n for _, _, n in sorted(
                    (barycenter(n, i), i, n) for i, n in enumerate(layers[r])
                )
            ]

    for _ in range(ORDERING_SWEEPS):
        sweep(range(1, depth), dag.predecessors)
        sweep(range(depth - 2, -1, -1), dag.successors)
    return layers


def compute_layout(
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    direction=LayoutDirection.LEFT_TO_RIGHT,
    node_sep: Optional[float] = None,
    rank_sep: Optional[float] = None,
    margin: Optional[float] = None,
) -> Dict[str, Position]:
    """
    New top-left position for every node.

    Edges are only read. Nodes without a measured size use the default box.
    """
    nodes = list(nodes)
    if not nodes:
        return {}
    direction = LayoutDirection.parse(direction.value if isinstance(direction, LayoutDirection) else direction)
    node_sep = LAYOUT_NODE_SEP if node_sep is None else node_sep
    rank_sep = LAYOUT_RANK_SEP if rank_sep is None else rank_sep
    margin = LAYOUT_MARGIN if margin is None else margin

    order = {n.id: i for i, n in enumerate(nodes)}
    sizes = {n.id: _size(n) for n in nodes}
    horizontal = direction is LayoutDirection.LEFT_TO_RIGHT

    def along_rank(n):  # extent in the rank direction
        w, h = sizes[n]
        return w if horizontal else h

    def across_rank(n):
        w, h = sizes[n]
        return h if horizontal else w

    dag = _break_cycles(_build_graph(nodes, edges), order)
    layers = _order_layers(dag, _rank(dag, order), order)

    rank_depths = [max(along_rank(n) for n in layer) for layer in layers]
    spans = [sum(across_rank(n) for n in layer) + node_sep * (len(layer) - 1) for layer in layers]
    widest = max(spans)

    positions: Dict[str, Position] = {}
    rank_offset = margin
    for layer, depth, span in zip(layers, rank_depths, spans):
        cross = margin + (widest - span) / 2
        for n in layer:
            # center each node on its rank line
            main = rank_offset + (depth - along_rank(n)) / 2
            if horizontal:
                positions[n] = Position(x=main, y=cross)
            else:
                positions[n] = Position(x=cross, y=main)
            cross += across_rank(n) + node_sep
        rank_offset += depth + rank_sep

    log.debug(f"Layout {direction.value}: {len(nodes)} nodes in {len(layers)} ranks")
    return positions


def apply_layout(graph, direction=LayoutDirection.LEFT_TO_RIGHT, **options) -> Dict[str, Position]:
    """Lay out a FlowGraph in place and return the positions used"""
    positions = compute_layout(graph.nodes, graph.edges, direction, **options)
    if positions:
        graph.apply_positions(positions)
    return positions
