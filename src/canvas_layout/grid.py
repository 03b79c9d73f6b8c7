"""Grid placement for canvases without edge information.

Used when nodes arrive with no graph structure to follow (bulk import of
unconnected nodes, or dropping a single new node onto a populated canvas).
The layered layout in ``canvas_layout.layout`` is preferred whenever edges
are known.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from typing import TypeVar

import structlog

from canvas_layout.types import (
    DEFAULT_AGENT_ROWS,
    DEFAULT_START_X,
    DEFAULT_START_Y,
    DEFAULT_STEP_X,
    DEFAULT_STEP_Y,
    DEFAULT_WORKFLOW_COLS,
    DEFAULT_WORKFLOW_START_X,
    DEFAULT_WORKFLOW_START_Y,
    DEFAULT_WORKFLOW_STEP_X,
    DEFAULT_WORKFLOW_STEP_Y,
    GridLayoutOptions,
    Position,
)

logger = structlog.get_logger()

T = TypeVar("T")

# A cell counts as occupied when an existing node is within this fraction of
# the smaller step on both axes.
OCCUPIED_TOLERANCE_RATIO: float = 0.4
# Slightly looser when deciding whether to keep a node's stored position.
KEEP_TOLERANCE_RATIO: float = 0.45


def agent_grid_options() -> GridLayoutOptions:
    """Grid for the agent canvas: large nodes, column-major, 4 per column."""
    return GridLayoutOptions(
        start_x=DEFAULT_START_X,
        start_y=DEFAULT_START_Y,
        step_x=DEFAULT_STEP_X,
        step_y=DEFAULT_STEP_Y,
        rows=DEFAULT_AGENT_ROWS,
    )


def workflow_grid_options() -> GridLayoutOptions:
    """Grid for the workflow canvas: row-major, 3 per row."""
    return GridLayoutOptions(
        start_x=DEFAULT_WORKFLOW_START_X,
        start_y=DEFAULT_WORKFLOW_START_Y,
        step_x=DEFAULT_WORKFLOW_STEP_X,
        step_y=DEFAULT_WORKFLOW_STEP_Y,
        cols=DEFAULT_WORKFLOW_COLS,
        rows=None,
    )


def get_grid_position(index: int, options: GridLayoutOptions | None = None) -> Position:
    """Position of the ``index``-th grid cell."""
    opts = options or agent_grid_options()
    if opts.rows is not None:
        col, row = divmod(index, opts.rows)
    else:
        row, col = divmod(index, opts.cols)
    return Position(x=opts.start_x + col * opts.step_x, y=opts.start_y + row * opts.step_y)


def _overlaps(x: float, y: float, existing: Sequence[Position], tolerance: float) -> bool:
    return any(abs(p.x - x) < tolerance and abs(p.y - y) < tolerance for p in existing)


def get_next_node_position(
    existing: Sequence[Position],
    options: GridLayoutOptions | None = None,
) -> Position:
    """First grid cell, in fill order, that no existing node occupies.

    Always terminates: each existing position can occupy at most one cell.
    """
    opts = options or agent_grid_options()
    tolerance = min(opts.step_x, opts.step_y) * OCCUPIED_TOLERANCE_RATIO

    index = 0
    while True:
        cell = get_grid_position(index, opts)
        if not _overlaps(cell.x, cell.y, existing, tolerance):
            return cell
        index += 1


def _usable(pos: Sequence[float] | None) -> bool:
    if pos is None or len(pos) < 2:
        return False
    try:
        return math.isfinite(pos[0]) and math.isfinite(pos[1])
    except TypeError:
        return False


def layout_nodes_without_overlap(
    items: Sequence[T],
    get_position: Callable[[T], Sequence[float] | None],
    set_position: Callable[[T, float, float], T],
    options: GridLayoutOptions | None = None,
) -> list[T]:
    """Give every item a grid position that does not overlap earlier items.

    Items are handled in order. An item keeps its stored position when it is
    a finite ``(x, y)`` pair clear of every position placed so far; otherwise
    it takes the next free grid cell.
    """
    opts = options or agent_grid_options()
    tolerance = min(opts.step_x, opts.step_y) * KEEP_TOLERANCE_RATIO

    placed: list[Position] = []
    result: list[T] = []
    moved = 0
    for item in items:
        pos = get_position(item)
        if _usable(pos) and not _overlaps(pos[0], pos[1], placed, tolerance):
            target = Position(x=pos[0], y=pos[1])
        else:
            target = get_next_node_position(placed, opts)
            moved += 1
        placed.append(target)
        result.append(set_position(item, target.x, target.y))

    logger.debug("grid_layout_computed", nodes=len(result), moved=moved)
    return result
