"""Fixed-size 2D grids of fixed-size elements, stored row-major.

Grids are lists of rows; row 0 is the first row in the payload, which for
terrain data is the bottom (southern) edge of the cell. Elements with a
single component decode to plain numbers, multi-component elements to
tuples (or ``factory(*components)`` when a factory is given).
"""
from __future__ import annotations

import struct
from typing import Any, Callable, Optional, Sequence

from tes3pack.esm.errors import DimensionMismatchError, TruncationError

Grid = list[list[Any]]


def fill_grid(data: bytes, width: int, height: int, element: struct.Struct,
              factory: Optional[Callable[..., Any]] = None) -> Grid:
    """Decode the first ``width * height`` elements of ``data`` into rows."""
    if width < 0 or height < 0:
        raise DimensionMismatchError(f"invalid grid dimensions {width}x{height}")
    needed = width * height * element.size
    if len(data) < needed:
        raise TruncationError(f"{width}x{height} grid", needed, len(data))

    single = len(element.unpack(bytes(element.size))) == 1
    values = element.iter_unpack(memoryview(data)[:needed])
    grid = []
    for _ in range(height):
        row = []
        for _ in range(width):
            components = next(values)
            if factory is not None:
                row.append(factory(*components))
            elif single:
                row.append(components[0])
            else:
                row.append(components)
        grid.append(row)
    return grid


def flatten_grid(grid: Sequence[Sequence[Any]], width: int, height: int,
                 element: struct.Struct) -> bytes:
    """Encode rows back into a flat buffer; every row must be ``width`` long."""
    if len(grid) != height:
        raise DimensionMismatchError(f"grid height mismatch: got {len(grid)}, want {height}")
    out = bytearray()
    for y, row in enumerate(grid):
        if len(row) != width:
            raise DimensionMismatchError(f"row {y} width mismatch: got {len(row)}, want {width}")
        for value in row:
            if isinstance(value, tuple):
                out += element.pack(*value)
            else:
                out += element.pack(value)
    return bytes(out)


def grid_shape(grid: Sequence[Sequence[Any]]) -> tuple[int, int]:
    """Return (width, height), rejecting ragged rows."""
    if not grid:
        return 0, 0
    width = len(grid[0])
    for y, row in enumerate(grid):
        if len(row) != width:
            raise DimensionMismatchError(
                f"mismatched row lengths: row 0 has {width}, row {y} has {len(row)}"
            )
    return width, len(grid)
