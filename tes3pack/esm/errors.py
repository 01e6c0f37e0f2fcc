"""Exceptions raised by the record, subrecord and field codecs."""
from __future__ import annotations


class EsmError(ValueError):
    """Base class for all plugin format errors."""


class TruncationError(EsmError):
    """Fewer bytes remain than a declared length requires."""

    def __init__(self, what: str, needed: int, available: int):
        self.needed = needed
        self.available = available
        super().__init__(f"{what}: need {needed} bytes, got {available}")


class FieldSizeError(TruncationError):
    """A fixed-size field payload is shorter than its layout."""

    def __init__(self, tag: str, needed: int, available: int):
        self.tag = tag
        super().__init__(f"{tag} too short", needed, available)


class StructuralOverrunError(EsmError):
    """A subrecord would read past the end of its enclosing record."""

    def __init__(self, record_tag: str, sub_tag: str, end: int, boundary: int):
        self.record_tag = record_tag
        self.sub_tag = sub_tag
        super().__init__(
            f"subrecord {sub_tag!r} in {record_tag!r} ends at {end}, "
            f"past the record boundary {boundary}"
        )


class TagMismatchError(EsmError):
    def __init__(self, expected: str, got: str):
        self.expected = expected
        self.got = got
        super().__init__(f"expected {expected!r}, got {got!r}")


class UnknownSubrecordError(EsmError):
    """An unrecognized tag where the format offers no way to skip it."""

    def __init__(self, record_tag: str, sub_tag: str):
        self.record_tag = record_tag
        self.sub_tag = sub_tag
        super().__init__(f"unknown {record_tag} subrecord {sub_tag!r}")


class ValueTooLongError(EsmError):
    def __init__(self, what: str, width: int, actual: int):
        self.width = width
        self.actual = actual
        super().__init__(f"{what}: value too long ({actual} > {width} bytes)")


class DimensionMismatchError(EsmError):
    """Grid shape or payload length does not match the field layout."""
