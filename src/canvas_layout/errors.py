"""Exceptions raised by canvas_layout."""

from __future__ import annotations


class CanvasLayoutError(Exception):
    """Base class for all canvas_layout errors."""


class LayoutOptionsError(CanvasLayoutError, ValueError):
    """An options object was constructed with unusable values.

    Graph data never raises: unknown endpoints, self-loops and duplicate
    edges are filtered out. Only option values (steps, grid dimensions)
    are validated, since a zero or negative step collapses every node onto
    the same coordinate.
    """
