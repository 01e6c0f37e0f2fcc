"""Typed subrecord fields.

Every field class is bound to exactly one subrecord tag when it is
declared::

    @dataclass
    class Scale(Float32Field, tag="XSCL"):
        pass

``Scale.unmarshal(sub)`` checks the tag and payload size before decoding,
and ``Scale(1.5).marshal()`` produces a new Subrecord. Entities keep an
ordered layout of ``(attribute, field class)`` pairs; the same layout
drives tag dispatch on read and canonical ordering on write.
"""
from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, fields
from typing import ClassVar, NamedTuple, Sequence

from tes3pack.esm.constants import ENCODING, ENCODING_ERRORS
from tes3pack.esm.errors import (
    FieldSizeError,
    TagMismatchError,
    UnknownSubrecordError,
    ValueTooLongError,
)
from tes3pack.esm.records import Subrecord

logger = logging.getLogger(__name__)

Layout = Sequence[tuple[str, type["Field"]]]


class Color(NamedTuple):
    r: int
    g: int
    b: int


def decode_text(raw: bytes) -> str:
    return bytes(raw).decode(ENCODING, ENCODING_ERRORS)


def encode_text(value: str) -> bytes:
    return value.encode(ENCODING, ENCODING_ERRORS)


def read_padded_string(raw: bytes) -> str:
    """Read up to the first zero byte; anything after it is padding."""
    end = raw.find(b"\x00")
    return decode_text(raw if end < 0 else raw[:end])


def write_padded_string(value: str, width: int, what: str = "string") -> bytes:
    """Encode and zero-pad to exactly ``width`` bytes."""
    raw = encode_text(value)
    if len(raw) > width:
        raise ValueTooLongError(what, width, len(raw))
    return raw + b"\x00" * (width - len(raw))


class Field:
    """Base for a decoded view of one subrecord."""
    tag: ClassVar[str] = ""

    def __init_subclass__(cls, tag: str | None = None, **kwargs):
        super().__init_subclass__(**kwargs)
        if tag is not None:
            cls.tag = tag

    @classmethod
    def min_size(cls) -> int:
        return 0

    @classmethod
    def unmarshal(cls, sub: Subrecord):
        if sub.tag != cls.tag:
            raise TagMismatchError(cls.tag, sub.tag)
        needed = cls.min_size()
        if len(sub.data) < needed:
            raise FieldSizeError(cls.tag, needed, len(sub.data))
        return cls.decode(bytes(sub.data))

    @classmethod
    def decode(cls, data: bytes):
        raise NotImplementedError

    def encode(self) -> bytes:
        raise NotImplementedError

    def marshal(self) -> Subrecord:
        return Subrecord(tag=self.tag, data=self.encode())


class StructField(Field):
    """Fixed layout field; dataclass fields map in order onto ``_format``."""
    _format: ClassVar[struct.Struct]

    @classmethod
    def min_size(cls) -> int:
        return cls._format.size

    @classmethod
    def decode(cls, data: bytes):
        return cls(*cls._format.unpack_from(data))

    def encode(self) -> bytes:
        return self._format.pack(*(getattr(self, f.name) for f in fields(self)))


@dataclass
class Uint8Field(StructField):
    value: int = 0
    _format = struct.Struct("<B")


@dataclass
class Uint32Field(StructField):
    value: int = 0
    _format = struct.Struct("<I")


@dataclass
class Uint64Field(StructField):
    value: int = 0
    _format = struct.Struct("<Q")


@dataclass
class Float32Field(StructField):
    value: float = 0.0
    _format = struct.Struct("<f")


@dataclass
class StringField(Field):
    """Unpadded string; the entire payload is the text, terminator included."""
    value: str = ""

    @classmethod
    def decode(cls, data: bytes):
        return cls(decode_text(data))

    def encode(self) -> bytes:
        return encode_text(self.value)


@dataclass
class FixedStringField(Field):
    """Zero-padded string of a fixed byte width."""
    value: str = ""
    width: ClassVar[int] = 0

    @classmethod
    def min_size(cls) -> int:
        return cls.width

    @classmethod
    def decode(cls, data: bytes):
        return cls(read_padded_string(data[:cls.width]))

    def encode(self) -> bytes:
        return write_padded_string(self.value, self.width, self.tag)


@dataclass
class BytesField(Field):
    value: bytes = b""

    @classmethod
    def decode(cls, data: bytes):
        return cls(data)

    def encode(self) -> bytes:
        return bytes(self.value)


def index_layout(layout: Layout) -> dict[str, tuple[str, type[Field]]]:
    """Map each tag in a layout to its (attribute, field class)."""
    by_tag = {}
    for attr, codec in layout:
        by_tag[codec.tag] = (attr, codec)
    return by_tag


def decode_into(owner, sub: Subrecord, by_tag: dict, record_tag: str) -> None:
    """Decode ``sub`` onto its attribute of ``owner``.

    Unknown tags are fatal here. A repeated tag replaces the earlier value
    and is logged.
    """
    slot = by_tag.get(sub.tag)
    if slot is None:
        raise UnknownSubrecordError(record_tag, sub.tag)
    attr, codec = slot
    if getattr(owner, attr) is not None:
        logger.warning("duplicate %s.%s subrecord; keeping the last one", record_tag, sub.tag)
    setattr(owner, attr, codec.unmarshal(sub))


def marshal_fields(owner, layout: Layout) -> list[Subrecord]:
    """Marshal every present field of ``owner`` in layout order."""
    out = []
    for attr, _ in layout:
        value = getattr(owner, attr)
        if value is not None:
            out.append(value.marshal())
    return out
