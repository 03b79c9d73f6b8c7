"""Layout module — layered left-to-right canvas layout.

Phases:
  1. Graph building   (validate edges, index nodes)
  2. Cycle breaking   (feedback edges via iterative DFS)
  3. Layer assignment (longest path from a root, Kahn order)
  4. Vertical placement (parents centered over their children)
  5. Overlap resolution (shift subtrees until same-layer nodes are apart)
  6. Position emission (layer → x, resolved y)

Every call works on its own arena: node ids are mapped to dense indices
once, and per-node state (layer, y, subtree bottom) lives in parallel lists.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

import networkx as nx
import structlog

from canvas_layout.types import Edge, LayeredLayout, LayeredLayoutOptions, Position

logger = structlog.get_logger()

T = TypeVar("T")

EdgeLike = Edge | tuple[str, str] | Mapping[str, Any]

# ─── Graph Building ───────────────────────────────────────────────────────────


@dataclass
class LayoutGraph:
    """Arena-indexed graph for a single layout call.

    Attributes:
        ids: Maps index → node id, in first-seen order.
        index: Maps node id → index.
        digraph: DiGraph over indices. Adjacency order follows edge order, so
            the first predecessor of a node is the source of its first edge.
        edges: Cleaned (src, tgt) index pairs in input order, deduplicated.
        dropped: Number of input edges filtered out as unusable (missing
            endpoint key, unknown endpoint or self-loop).
        duplicates: Number of repeated edges collapsed into an earlier one.
    """

    ids: list[str]
    index: dict[str, int]
    digraph: nx.DiGraph
    edges: list[tuple[int, int]] = field(default_factory=list)
    dropped: int = 0
    duplicates: int = 0

    def __len__(self) -> int:
        return len(self.ids)

    def edge_ids(self, edge: tuple[int, int]) -> Edge:
        return Edge(self.ids[edge[0]], self.ids[edge[1]])


def build_graph(node_ids: Iterable[str], edges: Iterable[EdgeLike]) -> LayoutGraph:
    """Index the nodes and keep only the edges the layout can use.

    An edge is kept when it names both endpoints, both are known nodes and
    it is not a self-loop; repeats of a kept edge collapse into it. Anything
    else is dropped silently: canvases routinely hold dangling or half-built
    edges while being edited.
    """
    ids: list[str] = []
    index: dict[str, int] = {}
    for node_id in node_ids:
        if node_id not in index:
            index[node_id] = len(ids)
            ids.append(node_id)

    digraph: nx.DiGraph = nx.DiGraph()
    digraph.add_nodes_from(range(len(ids)))

    cleaned: list[tuple[int, int]] = []
    dropped = 0
    duplicates = 0
    for raw in edges:
        try:
            edge = Edge.coerce(raw)
        except (KeyError, TypeError, ValueError):
            dropped += 1
            continue
        src = index.get(edge.source)
        tgt = index.get(edge.target)
        if src is None or tgt is None or src == tgt:
            dropped += 1
            continue
        if digraph.has_edge(src, tgt):
            duplicates += 1
            continue
        digraph.add_edge(src, tgt)
        cleaned.append((src, tgt))

    if dropped:
        logger.debug("invalid_edges_dropped", dropped=dropped, kept=len(cleaned))
    if duplicates:
        logger.debug("duplicate_edges_collapsed", duplicates=duplicates, kept=len(cleaned))

    return LayoutGraph(
        ids=ids,
        index=index,
        digraph=digraph,
        edges=cleaned,
        dropped=dropped,
        duplicates=duplicates,
    )


# ─── Cycle Breaking ───────────────────────────────────────────────────────────


def _kahn_order(graph: LayoutGraph, excluded: set[tuple[int, int]]) -> list[int]:
    """Topological order of every node Kahn's algorithm can reach.

    Nodes on (or behind) a cycle that ``excluded`` does not break are left out.
    """
    in_degree = [0] * len(graph)
    for src, tgt in graph.edges:
        if (src, tgt) not in excluded:
            in_degree[tgt] += 1

    queue: deque[int] = deque(i for i in range(len(graph)) if in_degree[i] == 0)
    order: list[int] = []
    while queue:
        node = queue.popleft()
        order.append(node)
        for succ in graph.digraph.successors(node):
            if (node, succ) in excluded:
                continue
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                queue.append(succ)
    return order


def _find_feedback_edge(
    graph: LayoutGraph,
    remaining: list[int],
    excluded: set[tuple[int, int]],
) -> tuple[int, int] | None:
    """Return the first back-edge found by DFS over the ``remaining`` nodes.

    The DFS keeps an explicit frame stack instead of recursing, so a cycle of
    thousands of nodes cannot hit the interpreter's recursion limit. Roots are
    tried in input order and successors in edge order.
    """
    inside = set(remaining)

    def cycle_successors(node: int) -> list[int]:
        return [
            succ
            for succ in graph.digraph.successors(node)
            if succ in inside and (node, succ) not in excluded
        ]

    visited: set[int] = set()
    on_stack: set[int] = set()

    for root in remaining:
        if root in visited:
            continue
        visited.add(root)
        on_stack.add(root)
        frames = [(root, iter(cycle_successors(root)))]
        while frames:
            node, pending = frames[-1]
            for succ in pending:
                if succ in on_stack:
                    return (node, succ)
                if succ not in visited:
                    visited.add(succ)
                    on_stack.add(succ)
                    frames.append((succ, iter(cycle_successors(succ))))
                    break
            else:
                frames.pop()
                on_stack.discard(node)
    return None


def break_cycles(graph: LayoutGraph) -> list[tuple[int, int]]:
    """Pick feedback edges until the rest of the graph is acyclic.

    Each round runs Kahn's algorithm with the feedback edges found so far
    excluded; whatever it cannot order sits on or behind a cycle. A DFS
    restricted to those nodes yields one more feedback edge ``(u, v)``, where
    ``v`` is still on the DFS stack when ``u`` reaches it. A single cycle
    therefore yields exactly one feedback edge.
    """
    feedback: list[tuple[int, int]] = []
    excluded: set[tuple[int, int]] = set()

    while True:
        ordered = set(_kahn_order(graph, excluded))
        remaining = [i for i in range(len(graph)) if i not in ordered]
        if not remaining:
            break
        edge = _find_feedback_edge(graph, remaining, excluded)
        if edge is None:
            break
        feedback.append(edge)
        excluded.add(edge)
        source, target = graph.edge_ids(edge)
        logger.debug("feedback_edge_selected", source=source, target=target, stranded=len(remaining))

    return feedback


# ─── Layer Assignment ─────────────────────────────────────────────────────────


def assign_layers(graph: LayoutGraph, feedback: Iterable[tuple[int, int]] = ()) -> list[int]:
    """Assign each node a layer: 0 for roots, else 1 + max predecessor layer.

    Feedback edges are ignored both for the topological order and for the
    predecessor maximum. If ``feedback`` leaves a cycle unbroken, the nodes
    Kahn's algorithm could not reach are processed last in input order, with
    not-yet-assigned predecessors counting as layer 0.
    """
    excluded = set(feedback)
    order = _kahn_order(graph, excluded)
    seen = set(order)
    order.extend(i for i in range(len(graph)) if i not in seen)

    layers = [0] * len(graph)
    for node in order:
        pred_layers = [
            layers[pred] for pred in graph.digraph.predecessors(node) if (pred, node) not in excluded
        ]
        layers[node] = 1 + max(pred_layers) if pred_layers else 0
    return layers


def _group_by_layer(graph: LayoutGraph, layers: Sequence[int]) -> dict[int, list[int]]:
    """Layer index → node indices, each layer sorted by node id."""
    by_layer: dict[int, list[int]] = {}
    for node in range(len(graph)):
        by_layer.setdefault(layers[node], []).append(node)
    for members in by_layer.values():
        members.sort(key=lambda i: graph.ids[i])
    return dict(sorted(by_layer.items()))


def _next_layer_children(graph: LayoutGraph, layers: Sequence[int], node: int) -> list[int]:
    return [succ for succ in graph.digraph.successors(node) if layers[succ] == layers[node] + 1]


# ─── Vertical Placement ───────────────────────────────────────────────────────


def position_vertically(
    graph: LayoutGraph,
    layers: Sequence[int],
    options: LayeredLayoutOptions | None = None,
) -> list[float]:
    """Assign a y coordinate to every node, deepest layer first.

    The deepest layer is spread evenly from ``start_y`` in ``step_y`` steps,
    with nodes grouped by their first predecessor so siblings stay adjacent.
    Every other node is centered over the vertical span of its children in
    the next layer, lifted by ``parent_center_offset_up``; a node without
    such children sits at ``start_y`` and is pushed apart later by
    ``resolve_overlaps``.
    """
    opts = options or LayeredLayoutOptions()
    y = [opts.start_y] * len(graph)
    by_layer = _group_by_layer(graph, layers)
    if not by_layer:
        return y

    last_layer = max(by_layer)
    for layer_idx in sorted(by_layer, reverse=True):
        members = by_layer[layer_idx]

        if layer_idx == last_layer:
            groups: dict[str, list[int]] = {}
            for node in members:
                parent = next(iter(graph.digraph.predecessors(node)), None)
                key = graph.ids[parent] if parent is not None else graph.ids[node]
                groups.setdefault(key, []).append(node)

            slot = 0
            for key in sorted(groups):
                for node in sorted(groups[key], key=lambda i: graph.ids[i]):
                    y[node] = opts.start_y + slot * opts.step_y
                    slot += 1
            continue

        for node in members:
            children = _next_layer_children(graph, layers, node)
            if not children:
                y[node] = opts.start_y
                continue
            child_ys = [y[child] for child in children]
            center = (min(child_ys) + max(child_ys)) / 2
            y[node] = center - opts.parent_center_offset_up

    return y


# ─── Overlap Resolution ───────────────────────────────────────────────────────


def _descendants(graph: LayoutGraph, layers: Sequence[int], node: int) -> list[int]:
    """The node plus everything reachable through next-layer children, once each."""
    seen = {node}
    result = [node]
    pending = [node]
    while pending:
        current = pending.pop()
        for child in _next_layer_children(graph, layers, current):
            if child not in seen:
                seen.add(child)
                result.append(child)
                pending.append(child)
    return result


def _ancestors(graph: LayoutGraph, node: int, excluded: set[tuple[int, int]]) -> list[int]:
    """Every node with a non-feedback path to ``node``, once each."""
    seen: set[int] = set()
    result: list[int] = []
    pending = [node]
    while pending:
        current = pending.pop()
        for pred in graph.digraph.predecessors(current):
            if (pred, current) in excluded or pred in seen:
                continue
            seen.add(pred)
            result.append(pred)
            pending.append(pred)
    return result


def subtree_bottoms(graph: LayoutGraph, layers: Sequence[int], y: Sequence[float]) -> list[float]:
    """Lowest y hanging below each node: its own y for a leaf, else the
    maximum over its next-layer children."""
    bottoms = list(y)
    for _layer_idx, members in sorted(_group_by_layer(graph, layers).items(), reverse=True):
        for node in members:
            children = _next_layer_children(graph, layers, node)
            if children:
                bottoms[node] = max(bottoms[child] for child in children)
    return bottoms


def resolve_overlaps(
    graph: LayoutGraph,
    layers: Sequence[int],
    y: Sequence[float],
    feedback: Iterable[tuple[int, int]] = (),
    options: LayeredLayoutOptions | None = None,
) -> tuple[list[float], list[float]]:
    """Push same-layer nodes apart until every pair is at least ``min_gap`` apart.

    Layers are processed left to right. Within a layer the nodes are sorted
    by y and adjacent pairs scanned; when the lower node starts less than
    ``min_gap`` below the upper node, or below the upper node's subtree bottom
    if that is lower still, the lower node and all of its descendants move
    down by the missing distance, and every ancestor
    of the lower node has its subtree bottom extended by the same amount.
    The scan restarts after each shift until the layer is clean.

    Returns:
        (y, subtree_bottoms) as new lists; the inputs are not modified.
    """
    opts = options or LayeredLayoutOptions()
    excluded = set(feedback)
    min_gap = opts.min_gap

    ys = list(y)
    bottoms = subtree_bottoms(graph, layers, ys)

    for layer_idx, members in _group_by_layer(graph, layers).items():
        changed = True
        while changed:
            changed = False
            ordered = sorted(members, key=lambda i: ys[i])
            for upper, lower in zip(ordered, ordered[1:]):
                required = max(bottoms[upper], ys[upper]) + min_gap
                if ys[lower] >= required:
                    continue
                delta = required - ys[lower]
                for node in _descendants(graph, layers, lower):
                    ys[node] += delta
                    bottoms[node] += delta
                for node in _ancestors(graph, lower, excluded):
                    bottoms[node] += delta
                logger.debug(
                    "subtree_shifted",
                    layer=layer_idx,
                    node=graph.ids[lower],
                    below=graph.ids[upper],
                    delta=delta,
                )
                changed = True
                break

    return ys, bottoms


# ─── Full Layout Pipeline ─────────────────────────────────────────────────────


def compute_layered_layout(
    node_ids: Iterable[str],
    edges: Iterable[EdgeLike],
    options: LayeredLayoutOptions | None = None,
) -> LayeredLayout:
    """Run every phase and return positions, layers and diagnostics by node id."""
    opts = options or LayeredLayoutOptions()
    graph = build_graph(node_ids, edges)
    feedback = break_cycles(graph)
    layers = assign_layers(graph, feedback)
    y = position_vertically(graph, layers, opts)
    y, bottoms = resolve_overlaps(graph, layers, y, feedback, opts)

    result = LayeredLayout(feedback_edges=[graph.edge_ids(edge) for edge in feedback])
    for node, node_id in enumerate(graph.ids):
        result.layers[node_id] = layers[node]
        result.positions[node_id] = Position(x=opts.start_x + layers[node] * opts.step_x, y=y[node])
        result.subtree_bottoms[node_id] = bottoms[node]

    logger.debug(
        "layered_layout_computed",
        nodes=len(graph),
        edges=len(graph.edges),
        layers=result.layer_count,
        feedback_edges=len(feedback),
    )
    return result


def layout_nodes_by_graph(
    items: Sequence[T],
    get_node_id: Callable[[T], str],
    edges: Iterable[EdgeLike],
    set_position: Callable[[T, float, float], T],
    options: LayeredLayoutOptions | None = None,
) -> list[T]:
    """Lay out canvas items left to right by following their edges.

    Layer 0 holds the nodes without incoming edges and each further layer is
    one ``step_x`` to the right. Parents are centered over their fan-out, so
    an LLM node wired to three tools sits level with the middle tool.

    Args:
        items: Canvas nodes in any caller-defined type.
        get_node_id: Extracts the node id from an item.
        edges: ``Edge`` objects, ``(source, target)`` pairs or mappings with
            ``"source"`` / ``"target"`` keys. Edges to unknown nodes and
            self-loops are ignored.
        set_position: Returns the item placed at ``(x, y)``; whether it copies
            or mutates is up to the caller.
        options: Start offsets and step sizes; defaults suit the agent canvas.

    Returns:
        One item per input item, in input order.
    """
    opts = options or LayeredLayoutOptions()
    node_ids = [get_node_id(item) for item in items]
    layout = compute_layered_layout(node_ids, edges, opts)

    result: list[T] = []
    for item, node_id in zip(items, node_ids):
        pos = layout.positions.get(node_id, Position(x=opts.start_x, y=opts.start_y))
        result.append(set_position(item, pos.x, pos.y))
    return result
