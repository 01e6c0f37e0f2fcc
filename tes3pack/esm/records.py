"""Record and Subrecord dataclasses for TES3 plugin files."""
from __future__ import annotations

import io
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable

from tes3pack.esm.constants import TAG_SIZE
from tes3pack.esm.errors import EsmError

_SUB_HEADER = struct.Struct("<4sI")            # tag(4) + length(4)
_RECORD_HEADER = struct.Struct("<4sI4sI")      # tag(4) + size(4) + reserved(4) + flags(4)
_RESERVED = b"\x00\x00\x00\x00"


def encode_tag(tag: str) -> bytes:
    raw = tag.encode("latin-1")
    if len(raw) != TAG_SIZE:
        raise EsmError(f"tag {tag!r} is not {TAG_SIZE} bytes")
    return raw


def decode_tag(raw: bytes) -> str:
    return raw.decode("latin-1")


@dataclass(slots=True)
class Subrecord:
    """A single tagged field within a record."""
    tag: str           # 4-char tag (NAME, DATA, FRMR, etc.)
    data: bytes = b""  # Raw payload, exactly as long as its length field

    @property
    def size(self) -> int:
        return len(self.data)

    def to_bytes(self) -> bytes:
        return _SUB_HEADER.pack(encode_tag(self.tag), len(self.data)) + bytes(self.data)

    def write(self, out: BinaryIO) -> None:
        out.write(self.to_bytes())


@dataclass(slots=True)
class Record:
    """A top-level record and its subrecords.

    ``plugin_name`` and ``plugin_offset`` describe where the record was
    read from. They are never written and do not take part in equality.
    """
    tag: str
    flags: int = 0
    subrecords: list[Subrecord] = field(default_factory=list)
    plugin_name: str = field(default="", compare=False)
    plugin_offset: int = field(default=0, compare=False)

    @property
    def data_size(self) -> int:
        return sum(8 + len(sub.data) for sub in self.subrecords)

    def to_bytes(self) -> bytes:
        """Serialize the record; the size field is computed from content."""
        body = io.BytesIO()
        for sub in self.subrecords:
            sub.write(body)
        payload = body.getvalue()
        header = _RECORD_HEADER.pack(encode_tag(self.tag), len(payload), _RESERVED, self.flags)
        return header + payload

    def write(self, out: BinaryIO) -> None:
        out.write(self.to_bytes())


def write_records(out: BinaryIO, records: Iterable[Record]) -> int:
    """Write records in order. Returns the number written."""
    count = 0
    for rec in records:
        rec.write(out)
        count += 1
    return count
