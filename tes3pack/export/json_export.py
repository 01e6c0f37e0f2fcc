"""Export records as JSON."""
from __future__ import annotations

import dataclasses
import json
from typing import Any, Iterable

from tes3pack.esm.decoders import decode_record
from tes3pack.esm.records import Record


def _to_plain(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if hasattr(value, "_asdict"):
        return {k: _to_plain(v) for k, v in value._asdict().items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    return value


def record_to_dict(rec: Record, decode: bool = True) -> dict:
    entry = {
        "tag": rec.tag,
        "flags": f"0x{rec.flags:08X}",
        "plugin": rec.plugin_name,
        "offset": rec.plugin_offset,
        "subrecords": [
            {"tag": sub.tag, "size": sub.size, "data": sub.data.hex()}
            for sub in rec.subrecords
        ],
    }
    if decode:
        entity = decode_record(rec)
        if entity is not None:
            entry["decoded"] = _to_plain(entity)
    return entry


def export_json(records: Iterable[Record], decode: bool = True) -> str:
    """Export records as JSON string."""
    data = [record_to_dict(rec, decode) for rec in records]
    return json.dumps(data, indent=2)
