"""LTEX records: landscape textures referenced by LAND VTEX indices."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tes3pack.esm.constants import REC_LTEX
from tes3pack.esm.errors import TagMismatchError
from tes3pack.esm.fields import (
    StringField,
    Uint32Field,
    decode_into,
    index_layout,
    marshal_fields,
)
from tes3pack.esm.records import Record, Subrecord


@dataclass
class TextureId(StringField, tag="NAME"):
    pass


@dataclass
class TextureIndex(Uint32Field, tag="INTV"):
    pass


@dataclass
class TexturePath(StringField, tag="DATA"):
    pass


_LTEX_LAYOUT = (
    ("id", TextureId),
    ("index", TextureIndex),
    ("path", TexturePath),
)
_LTEX_BY_TAG = index_layout(_LTEX_LAYOUT)


@dataclass
class LandTexture:
    id: Optional[TextureId] = None
    index: Optional[TextureIndex] = None
    path: Optional[TexturePath] = None
    flags: int = 0

    @classmethod
    def from_record(cls, rec: Record) -> "LandTexture":
        if rec.tag != REC_LTEX:
            raise TagMismatchError(REC_LTEX, rec.tag)
        ltex = cls(flags=rec.flags)
        for sub in rec.subrecords:
            decode_into(ltex, sub, _LTEX_BY_TAG, REC_LTEX)
        return ltex

    def subrecords(self) -> list[Subrecord]:
        return marshal_fields(self, _LTEX_LAYOUT)

    def to_record(self) -> Record:
        return Record(tag=REC_LTEX, flags=self.flags, subrecords=self.subrecords())
