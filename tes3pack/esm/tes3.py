"""TES3 header record: the first record of every plugin.

HEDR
    float32 - version (1.2 for Morrowind, 1.3 for Tribunal and Bloodmoon)
    uint32 - flags (0x1: treat as a master regardless of extension)
    char[32] - author / company name
    char[256] - file description
    uint32 - number of records after this one
MAST / DATA pairs
    zstring master file name, uint64 size of that master when saved
"""
from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Optional

from tes3pack.esm.constants import (
    HEDR_DESCRIPTION_SIZE,
    HEDR_NAME_SIZE,
    HEDR_SIZE,
    HEDR_VERSION,
    REC_TES3,
)
from tes3pack.esm.errors import EsmError, TagMismatchError, UnknownSubrecordError
from tes3pack.esm.fields import (
    Field,
    StringField,
    Uint64Field,
    read_padded_string,
    write_padded_string,
)
from tes3pack.esm.records import Record, Subrecord

_HEDR_HEAD = struct.Struct("<fI")
_UINT32 = struct.Struct("<I")
_NAME_START = _HEDR_HEAD.size
_DESCRIPTION_START = _NAME_START + HEDR_NAME_SIZE
_COUNT_START = _DESCRIPTION_START + HEDR_DESCRIPTION_SIZE


@dataclass
class Header(Field, tag="HEDR"):
    version: float = HEDR_VERSION
    flags: int = 0
    name: str = ""
    description: str = ""
    num_records: int = 0

    @classmethod
    def min_size(cls) -> int:
        return HEDR_SIZE

    @classmethod
    def decode(cls, data: bytes):
        version, flags = _HEDR_HEAD.unpack_from(data)
        return cls(
            version=version,
            flags=flags,
            name=read_padded_string(data[_NAME_START:_DESCRIPTION_START]),
            description=read_padded_string(data[_DESCRIPTION_START:_COUNT_START]),
            num_records=_UINT32.unpack_from(data, _COUNT_START)[0],
        )

    def encode(self) -> bytes:
        return b"".join((
            _HEDR_HEAD.pack(self.version, self.flags),
            write_padded_string(self.name, HEDR_NAME_SIZE, "HEDR name"),
            write_padded_string(self.description, HEDR_DESCRIPTION_SIZE, "HEDR description"),
            _UINT32.pack(self.num_records),
        ))


@dataclass
class MasterName(StringField, tag="MAST"):
    pass


@dataclass
class MasterSize(Uint64Field, tag="DATA"):
    pass


@dataclass
class Master:
    name: MasterName
    size: Optional[MasterSize] = None


@dataclass
class Tes3Header:
    """Parsed TES3 record."""
    header: Optional[Header] = None
    masters: list[Master] = field(default_factory=list)
    flags: int = 0

    @classmethod
    def from_record(cls, rec: Record) -> "Tes3Header":
        if rec.tag != REC_TES3:
            raise TagMismatchError(REC_TES3, rec.tag)
        tes3 = cls(flags=rec.flags)
        for sub in rec.subrecords:
            if sub.tag == Header.tag:
                tes3.header = Header.unmarshal(sub)
            elif sub.tag == MasterName.tag:
                tes3.masters.append(Master(name=MasterName.unmarshal(sub)))
            elif sub.tag == MasterSize.tag:
                if not tes3.masters or tes3.masters[-1].size is not None:
                    raise EsmError("TES3 DATA subrecord without a preceding MAST")
                tes3.masters[-1].size = MasterSize.unmarshal(sub)
            else:
                raise UnknownSubrecordError(REC_TES3, sub.tag)
        return tes3

    def subrecords(self) -> list[Subrecord]:
        out = []
        if self.header is not None:
            out.append(self.header.marshal())
        for master in self.masters:
            out.append(master.name.marshal())
            if master.size is not None:
                out.append(master.size.marshal())
        return out

    def to_record(self) -> Record:
        return Record(tag=REC_TES3, flags=self.flags, subrecords=self.subrecords())


def new_tes3_record(name: str = "", description: str = "") -> Record:
    """Make the TES3 record that must open a new plugin."""
    tes3 = Tes3Header(header=Header(name=name, description=description))
    return tes3.to_record()


def refresh_record_count(records: list[Record]) -> None:
    """Set HEDR's record count to the number of records after the header."""
    if not records or records[0].tag != REC_TES3:
        raise EsmError("plugin does not start with a TES3 record")
    tes3 = Tes3Header.from_record(records[0])
    if tes3.header is None:
        raise EsmError("TES3 record has no HEDR subrecord")
    tes3.header.num_records = len(records) - 1
    records[0] = tes3.to_record()
