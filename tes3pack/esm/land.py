"""LAND records: terrain for one exterior cell.

INTV - int32 grid X, int32 grid Y
DATA - uint32 flags (which of the optional arrays are present)
VNML - 65x65 vertex normals, int8 x/y/z each
VHGT - float32 height offset, 65x65 int8 height deltas, 3 unused bytes
WNAM - 9x9 world map heights
VCLR - 65x65 vertex colors, uint8 r/g/b each
VTEX - 16x16 uint16 texture indices (LTEX INTV value + 1, 0 is the default)

All grids run bottom row first. Height deltas are relative to the
previous vertex; ``HeightField.absolute_heights`` turns them into world
unit elevations.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, NamedTuple, Optional

from tes3pack.esm.constants import (
    LAND_GLOBAL_MAP_SIZE,
    LAND_HEIGHT_SCALE,
    LAND_SIZE,
    LAND_TEXTURE_SIZE,
    REC_LAND,
    VHGT_TRAILER_SIZE,
)
from tes3pack.esm.errors import DimensionMismatchError, TagMismatchError
from tes3pack.esm.fields import (
    Color,
    Field,
    StructField,
    Uint32Field,
    decode_into,
    index_layout,
    marshal_fields,
)
from tes3pack.esm.grid import Grid, fill_grid, flatten_grid
from tes3pack.esm.records import Record, Subrecord

_FLOAT = struct.Struct("<f")
_DELTA = struct.Struct("<b")

# LAND DATA flags
LAND_FLAG_HEIGHTS = 0x01    # VNML, VHGT and WNAM present
LAND_FLAG_COLORS = 0x02
LAND_FLAG_TEXTURES = 0x04


class Normal(NamedTuple):
    x: int
    y: int
    z: int


@dataclass
class GridField(Field):
    """A square grid whose elements fill the whole payload."""
    values: Grid = field(default_factory=list)
    grid_size: ClassVar[int] = 0
    element: ClassVar[struct.Struct] = struct.Struct("<B")
    factory: ClassVar[Optional[Callable[..., Any]]] = None

    def __post_init__(self):
        if not self.values:
            self.values = self.blank()

    @classmethod
    def blank(cls) -> Grid:
        zero = cls.element.unpack(bytes(cls.element.size))
        value = cls.factory(*zero) if cls.factory is not None else zero[0]
        return [[value] * cls.grid_size for _ in range(cls.grid_size)]

    @classmethod
    def payload_size(cls) -> int:
        return cls.grid_size * cls.grid_size * cls.element.size

    @classmethod
    def min_size(cls) -> int:
        return cls.payload_size()

    @classmethod
    def decode(cls, data: bytes):
        if len(data) != cls.payload_size():
            raise DimensionMismatchError(
                f"{cls.tag}: expected {cls.payload_size()} bytes, got {len(data)}"
            )
        return cls(fill_grid(data, cls.grid_size, cls.grid_size, cls.element, cls.factory))

    def encode(self) -> bytes:
        return flatten_grid(self.values, self.grid_size, self.grid_size, self.element)


@dataclass
class NormalField(GridField, tag="VNML"):
    grid_size = LAND_SIZE
    element = struct.Struct("<3b")
    factory = Normal


@dataclass
class ColorField(GridField, tag="VCLR"):
    grid_size = LAND_SIZE
    element = struct.Struct("<3B")
    factory = Color


@dataclass
class TextureField(GridField, tag="VTEX"):
    grid_size = LAND_TEXTURE_SIZE
    element = struct.Struct("<H")


@dataclass
class WorldMapField(GridField, tag="WNAM"):
    grid_size = LAND_GLOBAL_MAP_SIZE
    element = struct.Struct("<B")


@dataclass
class HeightField(Field, tag="VHGT"):
    """Height offset plus a 65x65 grid of signed per-vertex deltas."""
    offset: float = 0.0
    deltas: Grid = field(default_factory=list)
    trailer: bytes = bytes(VHGT_TRAILER_SIZE)

    _grid_bytes: ClassVar[int] = LAND_SIZE * LAND_SIZE

    def __post_init__(self):
        if not self.deltas:
            self.deltas = [[0] * LAND_SIZE for _ in range(LAND_SIZE)]

    @classmethod
    def min_size(cls) -> int:
        return _FLOAT.size + cls._grid_bytes

    @classmethod
    def decode(cls, data: bytes):
        grid_end = _FLOAT.size + cls._grid_bytes
        trailer = data[grid_end:]
        if len(trailer) != VHGT_TRAILER_SIZE:
            raise DimensionMismatchError(
                f"VHGT: expected {grid_end + VHGT_TRAILER_SIZE} bytes, got {len(data)}"
            )
        return cls(
            offset=_FLOAT.unpack_from(data)[0],
            deltas=fill_grid(data[_FLOAT.size:grid_end], LAND_SIZE, LAND_SIZE, _DELTA),
            trailer=trailer,
        )

    def encode(self) -> bytes:
        if len(self.trailer) != VHGT_TRAILER_SIZE:
            raise DimensionMismatchError(f"VHGT trailer must be {VHGT_TRAILER_SIZE} bytes")
        grid = flatten_grid(self.deltas, LAND_SIZE, LAND_SIZE, _DELTA)
        return _FLOAT.pack(self.offset) + grid + bytes(self.trailer)

    def absolute_heights(self) -> list[list[float]]:
        """Rebuild elevations in world units from the stored deltas.

        Column 0 of each row is relative to column 0 of the previous row
        (the first row to ``offset``); every other vertex is relative to
        its left neighbour. Row 0 is the bottom edge of the cell.
        """
        heights = []
        row_base = self.offset
        for row in self.deltas:
            row_base += row[0]
            total = row_base
            out = [total * LAND_HEIGHT_SCALE]
            for delta in row[1:]:
                total += delta
                out.append(total * LAND_HEIGHT_SCALE)
            heights.append(out)
        return heights


@dataclass
class LandGrid(StructField, tag="INTV"):
    grid_x: int = 0
    grid_y: int = 0
    _format = struct.Struct("<ii")


@dataclass
class LandFlags(Uint32Field, tag="DATA"):
    pass


_LAND_LAYOUT = (
    ("grid", LandGrid),
    ("data_flags", LandFlags),
    ("normals", NormalField),
    ("heights", HeightField),
    ("world_map", WorldMapField),
    ("colors", ColorField),
    ("textures", TextureField),
)
_LAND_BY_TAG = index_layout(_LAND_LAYOUT)


@dataclass
class Land:
    """Parsed LAND record."""
    grid: Optional[LandGrid] = None
    data_flags: Optional[LandFlags] = None
    normals: Optional[NormalField] = None
    heights: Optional[HeightField] = None
    world_map: Optional[WorldMapField] = None
    colors: Optional[ColorField] = None
    textures: Optional[TextureField] = None
    flags: int = 0

    @classmethod
    def from_record(cls, rec: Record) -> "Land":
        if rec.tag != REC_LAND:
            raise TagMismatchError(REC_LAND, rec.tag)
        land = cls(flags=rec.flags)
        for sub in rec.subrecords:
            decode_into(land, sub, _LAND_BY_TAG, REC_LAND)
        return land

    def subrecords(self) -> list[Subrecord]:
        return marshal_fields(self, _LAND_LAYOUT)

    def to_record(self) -> Record:
        return Record(tag=REC_LAND, flags=self.flags, subrecords=self.subrecords())

    def elevation_range(self) -> Optional[tuple[float, float]]:
        """(lowest, highest) reconstructed elevation, or None without VHGT."""
        if self.heights is None:
            return None
        flat = [h for row in self.heights.absolute_heights() for h in row]
        return min(flat), max(flat)
