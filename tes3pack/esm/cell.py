"""CELL records and the reference groups packed inside them.

A cell's subrecords are a handful of scalar fields followed by a flat run
of reference groups:

    NAME DATA [RGNN] [NAM5] [WHGT] [AMBI]
    (MVRF [CNAM] [CNDT] [FRMR ...])*     moved references
    (FRMR NAME [optional fields])*       persistent children
    [NAM0 (FRMR NAME [optional fields])*] temporary children

Reference groups carry no length and no terminator. A group parser keeps
consuming subrecords while the next tag is one it knows and has not seen
yet, and reports how many it consumed; the first tag it cannot take ends
the group and is left for the caller.
"""
from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from typing import Optional, Sequence

from tes3pack.esm.constants import REC_CELL
from tes3pack.esm.errors import TagMismatchError
from tes3pack.esm.fields import (
    BytesField,
    Color,
    Field,
    Float32Field,
    StringField,
    StructField,
    Uint8Field,
    Uint32Field,
    decode_into,
    index_layout,
    marshal_fields,
)
from tes3pack.esm.records import Record, Subrecord

logger = logging.getLogger(__name__)

_AMBI = struct.Struct("<3Bx3Bx3Bxf")

# Cell DATA flags
CELL_FLAG_INTERIOR = 0x01
CELL_FLAG_HAS_WATER = 0x02
CELL_FLAG_ILLEGAL_TO_SLEEP = 0x04
CELL_FLAG_BEHAVE_LIKE_EXTERIOR = 0x80


# --- Cell fields -----------------------------------------------------------

@dataclass
class CellName(StringField, tag="NAME"):
    pass


@dataclass
class CellData(StructField, tag="DATA"):
    flags: int = 0
    grid_x: int = 0
    grid_y: int = 0
    _format = struct.Struct("<Iii")

    @property
    def is_interior(self) -> bool:
        return bool(self.flags & CELL_FLAG_INTERIOR)


@dataclass
class RegionName(StringField, tag="RGNN"):
    pass


@dataclass
class MapColor(BytesField, tag="NAM5"):
    pass


@dataclass
class WaterHeight(Float32Field, tag="WHGT"):
    pass


@dataclass
class AmbientLight(Field, tag="AMBI"):
    """Ambient, sunlight and fog colors (each padded to 4 bytes), fog density."""
    ambient: Color = Color(0, 0, 0)
    sunlight: Color = Color(0, 0, 0)
    fog_color: Color = Color(0, 0, 0)
    fog_density: float = 0.0

    @classmethod
    def min_size(cls) -> int:
        return _AMBI.size

    @classmethod
    def decode(cls, data: bytes):
        v = _AMBI.unpack_from(data)
        return cls(Color(*v[0:3]), Color(*v[3:6]), Color(*v[6:9]), v[9])

    def encode(self) -> bytes:
        return _AMBI.pack(*self.ambient, *self.sunlight, *self.fog_color, self.fog_density)


@dataclass
class TemporaryCount(Uint32Field, tag="NAM0"):
    pass


# --- Form reference fields -------------------------------------------------

@dataclass
class Placement(StructField):
    """Position and rotation (radians)."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    rot_x: float = 0.0
    rot_y: float = 0.0
    rot_z: float = 0.0
    _format = struct.Struct("<6f")


@dataclass
class RefId(Uint32Field, tag="FRMR"):
    pass


@dataclass
class RefName(StringField, tag="NAME"):
    """Object id, or "PlayerSaveGame"."""


@dataclass
class Blocked(Uint8Field, tag="UNAM"):
    pass


@dataclass
class Scale(Float32Field, tag="XSCL"):
    pass


@dataclass
class OwnerNpc(StringField, tag="ANAM"):
    pass


@dataclass
class OwnerGlobal(StringField, tag="BNAM"):
    pass


@dataclass
class Faction(StringField, tag="CNAM"):
    pass


@dataclass
class FactionRank(Uint32Field, tag="INDX"):
    pass


@dataclass
class Soul(StringField, tag="XSOL"):
    pass


@dataclass
class EnchantCharge(Float32Field, tag="XCHG"):
    pass


@dataclass
class Condition(Uint32Field, tag="INTV"):
    """Health, uses, or (bit-cast float) light time remaining."""


@dataclass
class GoldValue(Uint32Field, tag="NAM9"):
    pass


@dataclass
class DoorDestination(Placement, tag="DODT"):
    pass


@dataclass
class DoorCell(StringField, tag="DNAM"):
    pass


@dataclass
class LockLevel(Uint32Field, tag="FLTV"):
    pass


@dataclass
class KeyName(StringField, tag="KNAM"):
    pass


@dataclass
class TrapName(StringField, tag="TNAM"):
    pass


@dataclass
class Disabled(Uint8Field, tag="ZNAM"):
    pass


@dataclass
class Position(Placement, tag="DATA"):
    pass


# --- Moved reference fields ------------------------------------------------

@dataclass
class MovedRefId(Uint32Field, tag="MVRF"):
    pass


@dataclass
class DestinationCell(StringField, tag="CNAM"):
    pass


@dataclass
class DestinationGrid(StructField, tag="CNDT"):
    grid_x: int = 0
    grid_y: int = 0
    _format = struct.Struct("<ii")


# --- Groups ----------------------------------------------------------------

_FORM_REF_LAYOUT = (
    ("ref_id", RefId),
    ("name", RefName),
    ("blocked", Blocked),
    ("scale", Scale),
    ("owner_npc", OwnerNpc),
    ("owner_global", OwnerGlobal),
    ("faction", Faction),
    ("faction_rank", FactionRank),
    ("soul", Soul),
    ("charge", EnchantCharge),
    ("condition", Condition),
    ("value", GoldValue),
    ("door_destination", DoorDestination),
    ("door_cell", DoorCell),
    ("lock_level", LockLevel),
    ("key", KeyName),
    ("trap", TrapName),
    ("disabled", Disabled),
    ("position", Position),
)
_FORM_REF_BY_TAG = index_layout(_FORM_REF_LAYOUT)


@dataclass
class FormReference:
    """An object placed in a cell."""
    ref_id: Optional[RefId] = None
    name: Optional[RefName] = None
    blocked: Optional[Blocked] = None
    scale: Optional[Scale] = None
    owner_npc: Optional[OwnerNpc] = None
    owner_global: Optional[OwnerGlobal] = None
    faction: Optional[Faction] = None
    faction_rank: Optional[FactionRank] = None
    soul: Optional[Soul] = None
    charge: Optional[EnchantCharge] = None
    condition: Optional[Condition] = None
    value: Optional[GoldValue] = None
    door_destination: Optional[DoorDestination] = None
    door_cell: Optional[DoorCell] = None
    lock_level: Optional[LockLevel] = None
    key: Optional[KeyName] = None
    trap: Optional[TrapName] = None
    disabled: Optional[Disabled] = None
    position: Optional[Position] = None

    @classmethod
    def parse(cls, subs: Sequence[Subrecord], start: int = 0) -> tuple["FormReference", int]:
        """Greedily parse one reference group starting at ``subs[start]``.

        Returns the reference and how many subrecords it consumed. The group
        ends at the first tag that is not a form reference field, or that
        this reference already has (so a second FRMR starts a new group).
        """
        ref = cls()
        seen = set()
        pos = start
        while pos < len(subs):
            sub = subs[pos]
            slot = _FORM_REF_BY_TAG.get(sub.tag)
            if slot is None or sub.tag in seen:
                break
            if not seen and sub.tag != RefId.tag:
                break
            attr, codec = slot
            setattr(ref, attr, codec.unmarshal(sub))
            seen.add(sub.tag)
            pos += 1
        return ref, pos - start

    @property
    def is_complete(self) -> bool:
        return self.ref_id is not None and self.name is not None

    def subrecords(self) -> list[Subrecord]:
        return marshal_fields(self, _FORM_REF_LAYOUT)


_MOVED_REF_LAYOUT = (
    ("ref_id", MovedRefId),
    ("cell", DestinationCell),
    ("grid", DestinationGrid),
)
_MOVED_REF_BY_TAG = index_layout(_MOVED_REF_LAYOUT)


@dataclass
class MovedReference:
    """A reference that moved out of its original cell into this one."""
    ref_id: Optional[MovedRefId] = None
    cell: Optional[DestinationCell] = None
    grid: Optional[DestinationGrid] = None
    moved: Optional[FormReference] = None

    @classmethod
    def parse(cls, subs: Sequence[Subrecord], start: int = 0) -> tuple["MovedReference", int]:
        """Parse MVRF [CNAM] [CNDT] [FRMR group]; same stopping rule as FormReference."""
        mref = cls()
        seen = set()
        pos = start
        while pos < len(subs):
            sub = subs[pos]
            if sub.tag in seen:
                break
            if not seen and sub.tag != MovedRefId.tag:
                break
            if sub.tag == RefId.tag:
                mref.moved, consumed = FormReference.parse(subs, pos)
                seen.add(sub.tag)
                pos += consumed
                continue
            slot = _MOVED_REF_BY_TAG.get(sub.tag)
            if slot is None:
                break
            attr, codec = slot
            setattr(mref, attr, codec.unmarshal(sub))
            seen.add(sub.tag)
            pos += 1
        return mref, pos - start

    def subrecords(self) -> list[Subrecord]:
        out = marshal_fields(self, _MOVED_REF_LAYOUT)
        if self.moved is not None:
            out.extend(self.moved.subrecords())
        return out


# --- Cell ------------------------------------------------------------------

_CELL_LAYOUT = (
    ("name", CellName),
    ("data", CellData),
    ("region", RegionName),
    ("map_color", MapColor),
    ("water_height", WaterHeight),
    ("ambient", AmbientLight),
)
_CELL_BY_TAG = index_layout(_CELL_LAYOUT)


@dataclass
class Cell:
    """Parsed CELL record."""
    name: Optional[CellName] = None
    data: Optional[CellData] = None
    region: Optional[RegionName] = None
    map_color: Optional[MapColor] = None
    water_height: Optional[WaterHeight] = None
    ambient: Optional[AmbientLight] = None
    moved_references: list[MovedReference] = field(default_factory=list)
    persistent_children: list[FormReference] = field(default_factory=list)
    temporary_children: list[FormReference] = field(default_factory=list)
    flags: int = 0

    @classmethod
    def from_record(cls, rec: Record) -> "Cell":
        if rec.tag != REC_CELL:
            raise TagMismatchError(REC_CELL, rec.tag)
        cell = cls(flags=rec.flags)
        temporary = False
        subs = rec.subrecords
        pos = 0
        while pos < len(subs):
            sub = subs[pos]
            if sub.tag == MovedRefId.tag:
                mref, consumed = MovedReference.parse(subs, pos)
                cell.moved_references.append(mref)
                pos += consumed
            elif sub.tag == RefId.tag:
                ref, consumed = FormReference.parse(subs, pos)
                pos += consumed
                if not ref.is_complete:
                    logger.warning(
                        "CELL %s: dropping reference %d with no NAME",
                        cell.display_name, ref.ref_id.value,
                    )
                elif temporary:
                    cell.temporary_children.append(ref)
                else:
                    cell.persistent_children.append(ref)
            elif sub.tag == TemporaryCount.tag:
                # Count is recomputed on write; only its position matters
                TemporaryCount.unmarshal(sub)
                temporary = True
                pos += 1
            else:
                decode_into(cell, sub, _CELL_BY_TAG, REC_CELL)
                pos += 1
        return cell

    @property
    def display_name(self) -> str:
        if self.name is not None and self.name.value.rstrip("\x00"):
            return repr(self.name.value.rstrip("\x00"))
        if self.data is not None:
            return f"({self.data.grid_x}, {self.data.grid_y})"
        return "<unnamed>"

    def subrecords(self) -> list[Subrecord]:
        out = marshal_fields(self, _CELL_LAYOUT)
        for mref in self.moved_references:
            out.extend(mref.subrecords())
        for ref in self.persistent_children:
            out.extend(ref.subrecords())
        if self.temporary_children:
            out.append(TemporaryCount(len(self.temporary_children)).marshal())
            for ref in self.temporary_children:
                out.extend(ref.subrecords())
        return out

    def to_record(self) -> Record:
        return Record(tag=REC_CELL, flags=self.flags, subrecords=self.subrecords())
