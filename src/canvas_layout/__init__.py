"""Canvas layout helpers so nodes in the agent and workflow editors don't overlap."""

from __future__ import annotations

from canvas_layout.errors import CanvasLayoutError, LayoutOptionsError
from canvas_layout.grid import (
    agent_grid_options,
    get_grid_position,
    get_next_node_position,
    layout_nodes_without_overlap,
    workflow_grid_options,
)
from canvas_layout.layout import (
    LayoutGraph,
    assign_layers,
    break_cycles,
    build_graph,
    compute_layered_layout,
    layout_nodes_by_graph,
    position_vertically,
    resolve_overlaps,
    subtree_bottoms,
)
from canvas_layout.types import (
    Edge,
    GridLayoutOptions,
    LayeredLayout,
    LayeredLayoutOptions,
    Position,
)

__all__ = [
    "CanvasLayoutError",
    "Edge",
    "GridLayoutOptions",
    "LayeredLayout",
    "LayeredLayoutOptions",
    "LayoutGraph",
    "LayoutOptionsError",
    "Position",
    "agent_grid_options",
    "assign_layers",
    "break_cycles",
    "build_graph",
    "compute_layered_layout",
    "get_grid_position",
    "get_next_node_position",
    "layout_nodes_by_graph",
    "layout_nodes_without_overlap",
    "position_vertically",
    "resolve_overlaps",
    "subtree_bottoms",
    "workflow_grid_options",
]
