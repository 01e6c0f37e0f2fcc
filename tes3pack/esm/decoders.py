"""Record-type dispatch to the structured entity parsers.

Decodes CELL, LAND, LTEX, LUAL and TES3 records into entities; every
entity knows how to turn itself back into a Record.
"""
from __future__ import annotations

from typing import Any, Optional

from tes3pack.esm.cell import Cell
from tes3pack.esm.constants import REC_CELL, REC_LAND, REC_LTEX, REC_LUAL, REC_TES3
from tes3pack.esm.errors import EsmError
from tes3pack.esm.land import Land
from tes3pack.esm.ltex import LandTexture
from tes3pack.esm.lua import LuaScripts
from tes3pack.esm.records import Record
from tes3pack.esm.tes3 import Tes3Header

_DECODERS = {
    REC_TES3: Tes3Header.from_record,
    REC_CELL: Cell.from_record,
    REC_LAND: Land.from_record,
    REC_LTEX: LandTexture.from_record,
    REC_LUAL: LuaScripts.from_record,
}


def decode_record(rec: Record) -> Optional[Any]:
    """Decode a record into its entity, or None for record types without a parser."""
    decoder = _DECODERS.get(rec.tag)
    if decoder is None:
        return None
    return decoder(rec)


def decode_records(records: list[Record], tag: str) -> list[Any]:
    """Decode every record of one type, in file order."""
    if tag not in _DECODERS:
        raise EsmError(f"no parser for {tag} records")
    return [_DECODERS[tag](rec) for rec in records if rec.tag == tag]


def encode_entity(entity: Any) -> Record:
    to_record = getattr(entity, "to_record", None)
    if to_record is None:
        raise EsmError(f"cannot encode {type(entity).__name__}")
    return to_record()
