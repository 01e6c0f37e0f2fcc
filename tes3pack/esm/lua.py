"""LUAL records: the Lua script configuration carried by OpenMW content files.

Each script is a group of subrecords:

LUAS - VFS path to the script
LUAF - uint32 flags, then a list of 4-byte record tags the script attaches to
LUAR - attach to a specific record (followed by optional LUAD init data)
LUAI - attach to a specific instance (followed by optional LUAD init data)

Groups have no terminator; a new LUAS starts the next one.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Optional, Sequence

from tes3pack.esm.constants import REC_LUAL, TAG_SIZE
from tes3pack.esm.errors import (
    EsmError,
    TagMismatchError,
    UnknownSubrecordError,
    ValueTooLongError,
)
from tes3pack.esm.fields import Field, StringField, encode_text, read_padded_string
from tes3pack.esm.records import Record, Subrecord

_UINT32 = struct.Struct("<I")

# Subrecords that belong to the current script group and are kept verbatim
ATTACHMENT_TAGS = frozenset({"LUAR", "LUAI", "LUAD"})


@dataclass
class ScriptPath(StringField, tag="LUAS"):
    pass


@dataclass
class ScriptFlags(Field, tag="LUAF"):
    """Attachment flags plus the record tags the script attaches to."""
    flags: int = 0
    targets: list[str] = field(default_factory=list)

    @classmethod
    def min_size(cls) -> int:
        return _UINT32.size

    @classmethod
    def decode(cls, data: bytes):
        flags = _UINT32.unpack_from(data)[0]
        raw = read_padded_string(data[_UINT32.size:])
        targets = [raw[i:i + TAG_SIZE] for i in range(0, len(raw), TAG_SIZE)]
        return cls(flags=flags, targets=targets)

    def encode(self) -> bytes:
        out = bytearray(_UINT32.pack(self.flags))
        for target in self.targets:
            raw = encode_text(target)
            if len(raw) > TAG_SIZE:
                raise ValueTooLongError(f"LUAF target {target!r}", TAG_SIZE, len(raw))
            out += raw + b"_" * (TAG_SIZE - len(raw))
        return bytes(out)


@dataclass
class LuaScript:
    """One script entry of a LUAL record."""
    path: ScriptPath
    flags: Optional[ScriptFlags] = None
    attachments: list[Subrecord] = field(default_factory=list)

    @classmethod
    def parse(cls, subs: Sequence[Subrecord], start: int = 0) -> tuple["LuaScript", int]:
        """Parse one script group starting at ``subs[start]``.

        Returns the script and the number of subrecords consumed. Parsing
        stops, without error, at the first subrecord that cannot belong
        to this group.
        """
        if start >= len(subs) or subs[start].tag != ScriptPath.tag:
            got = subs[start].tag if start < len(subs) else "end of record"
            raise TagMismatchError(ScriptPath.tag, got)
        script = cls(path=ScriptPath.unmarshal(subs[start]))
        pos = start + 1
        while pos < len(subs):
            sub = subs[pos]
            if sub.tag == ScriptFlags.tag and script.flags is None and not script.attachments:
                script.flags = ScriptFlags.unmarshal(sub)
            elif sub.tag in ATTACHMENT_TAGS:
                script.attachments.append(sub)
            else:
                break
            pos += 1
        return script, pos - start

    def subrecords(self) -> list[Subrecord]:
        out = [self.path.marshal()]
        if self.flags is not None:
            out.append(self.flags.marshal())
        out.extend(self.attachments)
        return out


@dataclass
class LuaScripts:
    """Parsed LUAL record."""
    scripts: list[LuaScript] = field(default_factory=list)
    flags: int = 0

    @classmethod
    def from_record(cls, rec: Record) -> "LuaScripts":
        if rec.tag != REC_LUAL:
            raise TagMismatchError(REC_LUAL, rec.tag)
        lual = cls(flags=rec.flags)
        subs = rec.subrecords
        pos = 0
        while pos < len(subs):
            if subs[pos].tag != ScriptPath.tag:
                if subs[pos].tag in ATTACHMENT_TAGS or subs[pos].tag == ScriptFlags.tag:
                    raise EsmError(f"LUAL {subs[pos].tag} subrecord without a preceding LUAS")
                raise UnknownSubrecordError(REC_LUAL, subs[pos].tag)
            script, consumed = LuaScript.parse(subs, pos)
            lual.scripts.append(script)
            pos += consumed
        return lual

    def subrecords(self) -> list[Subrecord]:
        out = []
        for script in self.scripts:
            out.extend(script.subrecords())
        return out

    def to_record(self) -> Record:
        return Record(tag=REC_LUAL, flags=self.flags, subrecords=self.subrecords())
