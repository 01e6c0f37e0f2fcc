"""BSA archive reader for Morrowind (TES3, version 0x100)."""
from __future__ import annotations

import logging
import os
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_HEADER = struct.Struct("<III")     # version(4) + hash table offset minus header(4) + filecount(4)
_SIZE_OFFSET = struct.Struct("<II")  # size(4) + offset into the data section(4)
_NAME_OFFSET = struct.Struct("<I")
_HASH_SIZE = 8

TES3_BSA_VERSION = 0x100
MAX_FILE_COUNT = 200_000
MAX_NAME_LENGTH = 4096


class BSAError(ValueError):
    """Malformed or unsupported BSA archive."""


@dataclass(slots=True)
class BSAFileEntry:
    """A file entry in a BSA archive. ``offset`` is absolute within the archive."""
    name: str
    offset: int
    size: int


def normalize_name(name: str) -> str:
    """Archive lookups are case-insensitive and use forward slashes."""
    return name.replace("\\", "/").lower()


class BSAReader:
    """Reader for TES3 BSA archives. Entries are uncompressed."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.entries: list[BSAFileEntry] = []
        self._by_name: dict[str, BSAFileEntry] = {}
        self._parse_header()

    def _parse_header(self):
        file_size = os.path.getsize(self.path)
        with open(self.path, "rb") as f:
            header_data = f.read(_HEADER.size)
            if len(header_data) < _HEADER.size:
                raise BSAError(f"{self.path.name}: truncated header")
            version, hash_offset, file_count = _HEADER.unpack(header_data)

            if version != TES3_BSA_VERSION:
                raise BSAError(f"Not a TES3 BSA file: bad version 0x{version:08x}")
            if file_count > MAX_FILE_COUNT:
                raise BSAError(f"Unreasonable file count {file_count}")

            table = f.read(file_count * (_SIZE_OFFSET.size + _NAME_OFFSET.size))
            if len(table) < file_count * (_SIZE_OFFSET.size + _NAME_OFFSET.size):
                raise BSAError(f"{self.path.name}: truncated file table")
            pairs = list(_SIZE_OFFSET.iter_unpack(table[:file_count * _SIZE_OFFSET.size]))
            name_offsets = [o for (o,) in _NAME_OFFSET.iter_unpack(table[file_count * _SIZE_OFFSET.size:])]

            # Name offsets are relative to the start of the name table,
            # which directly follows the name offset array
            names_start = f.tell()
            names = []
            for i, rel in enumerate(name_offsets):
                start = names_start + rel
                if start >= file_size:
                    raise BSAError(f"name {i}: offset {rel} out of bounds")
                f.seek(start)
                raw = f.read(MAX_NAME_LENGTH + 1)
                end = raw.find(b"\x00")
                if end < 0:
                    raise BSAError(f"name {i}: unterminated or too long")
                names.append(normalize_name(raw[:end].decode("cp1252", errors="replace")))

        hash_table = hash_offset + _HEADER.size
        data_start = hash_table + _HASH_SIZE * file_count
        if data_start > file_size:
            raise BSAError(f"{self.path.name}: hash table exceeds file size")

        for i, ((size, rel), name) in enumerate(zip(pairs, names)):
            offset = data_start + rel
            if offset + size > file_size:
                raise BSAError(f"entry {i} ({name}): data out of bounds (offset {offset}, size {size})")
            entry = BSAFileEntry(name=name, offset=offset, size=size)
            self.entries.append(entry)
            self._by_name.setdefault(name, entry)

        logger.debug("indexed %d files in %s", len(self.entries), self.path)

    def get(self, name: str) -> Optional[BSAFileEntry]:
        """Exact (case-insensitive) lookup by archive path."""
        return self._by_name.get(normalize_name(name))

    def extract_file(self, entry: BSAFileEntry) -> bytes:
        """Extract a single file from the archive."""
        with open(self.path, "rb") as f:
            f.seek(entry.offset)
            data = f.read(entry.size)
        if len(data) != entry.size:
            raise BSAError(f"{entry.name}: expected {entry.size} bytes, got {len(data)}")
        return data

    def read_file(self, name: str) -> bytes:
        entry = self.get(name)
        if entry is None:
            raise FileNotFoundError(f"{name!r} not found in {self.path}")
        return self.extract_file(entry)


def main():
    """List files in a BSA archive."""
    import sys
    if len(sys.argv) < 2:
        print("Usage: python -m tes3pack.bsa.reader <path/to/file.bsa>")
        sys.exit(1)

    path = Path(sys.argv[1])
    print(f"Reading {path.name}...")
    reader = BSAReader(path)
    print(f"Found {len(reader.entries)} files:\n")
    for entry in reader.entries:
        size_kb = entry.size / 1024
        print(f"  {entry.name} ({size_kb:.0f} KB)")


if __name__ == "__main__":
    main()
