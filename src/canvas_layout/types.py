"""Layout types shared by the layered engine and the grid helpers."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from canvas_layout.errors import LayoutOptionsError

# ─── Defaults ─────────────────────────────────────────────────────────────────

# Agent canvas: larger nodes, left-to-right flow.
DEFAULT_START_X: float = 100
DEFAULT_START_Y: float = 80
DEFAULT_STEP_X: float = 380
DEFAULT_STEP_Y: float = 220
DEFAULT_AGENT_ROWS: int = 4

# Workflow canvas: smaller nodes, row-major grid.
DEFAULT_WORKFLOW_START_X: float = 80
DEFAULT_WORKFLOW_START_Y: float = 60
DEFAULT_WORKFLOW_STEP_X: float = 300
DEFAULT_WORKFLOW_STEP_Y: float = 180
DEFAULT_WORKFLOW_COLS: int = 3

# Half the rendered node height: canvases position nodes by top-left corner.
DEFAULT_PARENT_CENTER_OFFSET_UP: float = 55

# Same-layer nodes end up at least this fraction of step_y apart.
MIN_GAP_RATIO: float = 0.3


# ─── Geometry ─────────────────────────────────────────────────────────────────


@dataclass
class Position:
    """A canvas coordinate (top-left corner of a node)."""

    x: float
    y: float


class Edge(NamedTuple):
    """A directed edge between two node ids."""

    source: str
    target: str

    @classmethod
    def coerce(cls, raw: Edge | tuple[str, str] | Mapping[str, Any]) -> Edge:
        """Accept an Edge, a (source, target) pair or a React Flow style mapping."""
        if isinstance(raw, Mapping):
            return cls(raw["source"], raw["target"])
        source, target = raw
        return cls(source, target)


# ─── Options ──────────────────────────────────────────────────────────────────


def _require_positive(name: str, value: float) -> None:
    if not math.isfinite(value) or value <= 0:
        raise LayoutOptionsError(f"{name} must be a positive finite number, got {value!r}")


def _require_finite(name: str, value: float) -> None:
    if not math.isfinite(value):
        raise LayoutOptionsError(f"{name} must be finite, got {value!r}")


@dataclass(frozen=True)
class LayeredLayoutOptions:
    """Options for the layered (graph-driven) layout.

    Attributes:
        start_x: x of layer 0.
        start_y: y of the topmost node in the deepest layer.
        step_x: horizontal distance between consecutive layers.
        step_y: vertical distance between siblings in the deepest layer.
        parent_center_offset_up: how far a parent is lifted above the
            midpoint of its children, so its visual center (not its
            top-left corner) lines up with theirs.
    """

    start_x: float = DEFAULT_START_X
    start_y: float = DEFAULT_START_Y
    step_x: float = DEFAULT_STEP_X
    step_y: float = DEFAULT_STEP_Y
    parent_center_offset_up: float = DEFAULT_PARENT_CENTER_OFFSET_UP

    def __post_init__(self) -> None:
        _require_finite("start_x", self.start_x)
        _require_finite("start_y", self.start_y)
        _require_positive("step_x", self.step_x)
        _require_positive("step_y", self.step_y)
        _require_finite("parent_center_offset_up", self.parent_center_offset_up)

    @property
    def min_gap(self) -> float:
        return self.step_y * MIN_GAP_RATIO


@dataclass(frozen=True)
class GridLayoutOptions:
    """Options for grid placement when no edge information is available.

    When ``rows`` is set the grid is filled column-major (left-to-right flow,
    ``rows`` nodes per column). Otherwise it is filled row-major with
    ``cols`` nodes per row.
    """

    start_x: float = DEFAULT_START_X
    start_y: float = DEFAULT_START_Y
    step_x: float = DEFAULT_STEP_X
    step_y: float = DEFAULT_STEP_Y
    cols: int = DEFAULT_WORKFLOW_COLS
    rows: int | None = None

    def __post_init__(self) -> None:
        _require_finite("start_x", self.start_x)
        _require_finite("start_y", self.start_y)
        _require_positive("step_x", self.step_x)
        _require_positive("step_y", self.step_y)
        if self.cols <= 0:
            raise LayoutOptionsError(f"cols must be positive, got {self.cols!r}")
        if self.rows is not None and self.rows <= 0:
            raise LayoutOptionsError(f"rows must be positive or None, got {self.rows!r}")

    @property
    def column_major(self) -> bool:
        return self.rows is not None


# ─── Results ──────────────────────────────────────────────────────────────────


@dataclass
class LayeredLayout:
    """Everything the layered engine computed for one call.

    Attributes:
        positions: Maps node id → final canvas position.
        layers: Maps node id → layer index (column).
        feedback_edges: Edges ignored for layering so the graph is acyclic.
        subtree_bottoms: Maps node id → lowest y of the node and everything
            hanging below it in later layers, after overlap resolution.
    """

    positions: dict[str, Position] = field(default_factory=dict)
    layers: dict[str, int] = field(default_factory=dict)
    feedback_edges: list[Edge] = field(default_factory=list)
    subtree_bottoms: dict[str, float] = field(default_factory=dict)

    @property
    def layer_count(self) -> int:
        return (max(self.layers.values()) + 1) if self.layers else 0
