"""Tests for grid.py — fallback grid placement when no edges are known."""

from __future__ import annotations

import math

from canvas_layout.grid import (
    agent_grid_options,
    get_grid_position,
    get_next_node_position,
    layout_nodes_without_overlap,
    workflow_grid_options,
)
from canvas_layout.types import GridLayoutOptions, Position

# ─── Helpers ──────────────────────────────────────────────────────────────────


def get_pos(item: dict):
    return item.get("position")


def place(item: dict, x: float, y: float) -> dict:
    return {**item, "position": (x, y)}


# ─── Presets ──────────────────────────────────────────────────────────────────


class TestPresets:
    def test_agent_grid(self):
        """Agent canvas: column-major, 4 nodes per column."""
        opts = agent_grid_options()
        assert (opts.start_x, opts.start_y, opts.step_x, opts.step_y, opts.rows) == (100, 80, 380, 220, 4)

    def test_workflow_grid(self):
        """Workflow canvas: row-major, 3 nodes per row."""
        opts = workflow_grid_options()
        assert (opts.start_x, opts.start_y, opts.step_x, opts.step_y) == (80, 60, 300, 180)
        assert opts.cols == 3
        assert opts.rows is None

    def test_fresh_objects(self):
        """Each call returns a new options object."""
        assert agent_grid_options() is not agent_grid_options()


# ─── get_grid_position ────────────────────────────────────────────────────────


class TestGetGridPosition:
    def test_first_cell(self):
        """Index 0 is the start offset."""
        assert get_grid_position(0) == Position(100, 80)

    def test_column_major_wraps_after_rows(self):
        """Agent grid: index 4 starts the second column, index 5 is below it."""
        assert get_grid_position(3) == Position(100, 80 + 3 * 220)
        assert get_grid_position(4) == Position(480, 80)
        assert get_grid_position(5) == Position(480, 300)

    def test_row_major_wraps_after_cols(self):
        """Workflow grid: index 3 starts the second row."""
        opts = workflow_grid_options()
        assert get_grid_position(2, opts) == Position(680, 60)
        assert get_grid_position(3, opts) == Position(80, 240)
        assert get_grid_position(4, opts) == Position(380, 240)


# ─── get_next_node_position ───────────────────────────────────────────────────


class TestGetNextNodePosition:
    def test_empty_canvas(self):
        """Nothing placed — the first cell is free."""
        assert get_next_node_position([]) == Position(100, 80)

    def test_skips_occupied_cells(self):
        """Cells with a node within tolerance are skipped."""
        existing = [Position(120, 50), Position(100, 300)]
        assert get_next_node_position(existing) == Position(100, 520)

    def test_outside_tolerance_is_free(self):
        """A node 0.4 * step away on one axis does not occupy the cell."""
        existing = [Position(100 + 0.4 * 220, 80)]
        assert get_next_node_position(existing) == Position(100, 80)

    def test_row_major(self):
        opts = GridLayoutOptions(start_x=0, start_y=0, step_x=10, step_y=10, cols=2, rows=None)
        existing = [Position(0, 0), Position(10, 0)]
        assert get_next_node_position(existing, opts) == Position(0, 10)


# ─── layout_nodes_without_overlap ─────────────────────────────────────────────


class TestLayoutNodesWithoutOverlap:
    def test_keeps_valid_and_fills_rest(self):
        """Valid stored positions are kept; overlapping or missing ones get free cells."""
        items = [
            {"id": "a", "position": (500, 500)},
            {"id": "b", "position": (510, 505)},
            {"id": "c"},
            {"id": "d", "position": (math.nan, 0)},
            {"id": "e", "position": (900, 900)},
        ]
        out = layout_nodes_without_overlap(items, get_pos, place)
        assert [item["position"] for item in out] == [
            (500, 500),
            (100, 80),
            (100, 300),
            (100, 520),
            (900, 900),
        ]

    def test_short_position_rejected(self):
        """A position with fewer than two coordinates is replaced."""
        out = layout_nodes_without_overlap([{"id": "a", "position": (5,)}], get_pos, place)
        assert out[0]["position"] == (100, 80)

    def test_order_preserved_and_inputs_untouched(self):
        items = [{"id": "x"}, {"id": "y"}]
        out = layout_nodes_without_overlap(items, get_pos, place, workflow_grid_options())
        assert [item["id"] for item in out] == ["x", "y"]
        assert [item["position"] for item in out] == [(80, 60), (380, 60)]
        assert all("position" not in item for item in items)

    def test_empty(self):
        assert layout_nodes_without_overlap([], get_pos, place) == []
