"""Low-level TES3 plugin parser (.esm / .esp / .omwaddon)."""
from __future__ import annotations

import io
import logging
import struct
from collections import Counter
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from tes3pack.esm.constants import RECORD_HEADER_SIZE, SUBRECORD_HEADER_SIZE
from tes3pack.esm.errors import StructuralOverrunError, TruncationError
from tes3pack.esm.records import Record, Subrecord, decode_tag

logger = logging.getLogger(__name__)

# Struct formats (little-endian)
_RECORD_HEADER = struct.Struct("<4sI4sI")   # tag(4) + size(4) + reserved(4) + flags(4)
_SUB_HEADER = struct.Struct("<4sI")         # tag(4) + length(4)


def read_subrecord(stream: BinaryIO) -> Optional[Subrecord]:
    """Read one subrecord from a stream. Returns None at a clean end of stream."""
    header = stream.read(SUBRECORD_HEADER_SIZE)
    if not header:
        return None
    if len(header) < SUBRECORD_HEADER_SIZE:
        raise TruncationError("subrecord header", SUBRECORD_HEADER_SIZE, len(header))
    tag_bytes, length = _SUB_HEADER.unpack(header)
    tag = decode_tag(tag_bytes)
    data = stream.read(length)
    if len(data) < length:
        raise TruncationError(f"subrecord {tag!r}", length, len(data))
    return Subrecord(tag=tag, data=data)


def parse_subrecords(record_tag: str, body: bytes) -> list[Subrecord]:
    """Split a record body into subrecords; every byte must be accounted for."""
    subrecords = []
    offset = 0
    end = len(body)

    while offset < end:
        if offset + SUBRECORD_HEADER_SIZE > end:
            partial = decode_tag(body[offset:offset + 4])
            raise StructuralOverrunError(record_tag, partial, offset + SUBRECORD_HEADER_SIZE, end)
        tag_bytes, length = _SUB_HEADER.unpack_from(body, offset)
        tag = decode_tag(tag_bytes)
        offset += SUBRECORD_HEADER_SIZE

        if offset + length > end:
            raise StructuralOverrunError(record_tag, tag, offset + length, end)

        subrecords.append(Subrecord(tag=tag, data=bytes(body[offset:offset + length])))
        offset += length

    return subrecords


def read_record(stream: BinaryIO, plugin_name: str = "", offset: int = 0) -> Optional[Record]:
    """Read one record from a stream.

    Returns None when the stream ends cleanly before a header. A partial
    header or a short body is a TruncationError.
    """
    header = stream.read(RECORD_HEADER_SIZE)
    if not header:
        return None
    if len(header) < RECORD_HEADER_SIZE:
        raise TruncationError("record header", RECORD_HEADER_SIZE, len(header))

    tag_bytes, size, _, flags = _RECORD_HEADER.unpack(header)
    tag = decode_tag(tag_bytes)
    body = stream.read(size)
    if len(body) < size:
        raise TruncationError(f"record {tag!r} at offset {offset}", size, len(body))

    return Record(
        tag=tag,
        flags=flags,
        subrecords=parse_subrecords(tag, body),
        plugin_name=plugin_name,
        plugin_offset=offset,
    )


def iter_plugin_data(plugin_name: str, stream: BinaryIO) -> Iterator[Record]:
    """Iterate records from a stream, strictly in file order."""
    offset = 0
    while True:
        rec = read_record(stream, plugin_name, offset)
        if rec is None:
            return
        offset += RECORD_HEADER_SIZE + rec.data_size
        yield rec


def parse_plugin_data(plugin_name: str, data: bytes | BinaryIO) -> list[Record]:
    """Parse every record from bytes or a binary stream."""
    stream = io.BytesIO(data) if isinstance(data, (bytes, bytearray, memoryview)) else data
    return list(iter_plugin_data(plugin_name, stream))


class PluginReader:
    """Parser for TES3 plugin files.

    Records are materialized in stream order; there is no random access
    into the file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.plugin_name = self.path.name.lower()

    def parse_all(self) -> list[Record]:
        """Parse all records into a list."""
        records = list(self.iter_records())
        logger.debug("parsed %d records from %s", len(records), self.path)
        return records

    def iter_records(self) -> Iterator[Record]:
        with open(self.path, "rb") as f:
            yield from iter_plugin_data(self.plugin_name, f)


def parse_plugin_file(path: Path | str) -> list[Record]:
    """Extract all records from an .esm/.esp/.omwaddon file."""
    return PluginReader(Path(path)).parse_all()


def main():
    """Quick test: parse a plugin and print record tag counts."""
    import sys
    import time
    if len(sys.argv) < 2:
        print("Usage: python -m tes3pack.esm.reader <path/to/plugin.esp>")
        sys.exit(1)

    path = Path(sys.argv[1])
    print(f"Parsing {path} ({path.stat().st_size / 1024:.0f} KB)...")

    start = time.perf_counter()
    records = parse_plugin_file(path)
    elapsed = time.perf_counter() - start

    print(f"\nParsed {len(records):,} records in {elapsed:.2f}s\n")

    tag_counts = Counter(r.tag for r in records)
    print(f"{'Tag':<8} {'Count':>8}")
    print("-" * 18)
    for tag, count in tag_counts.most_common(30):
        print(f"{tag:<8} {count:>8,}")

    total_subs = sum(len(r.subrecords) for r in records)
    print(f"\nTotal subrecords: {total_subs:,}")


if __name__ == "__main__":
    main()
