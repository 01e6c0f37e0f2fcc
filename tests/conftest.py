import struct

import pytest

from tes3pack.esm.records import write_records


def build_bsa(files):
    """Assemble a TES3 BSA image from a {name: data} mapping."""
    names = list(files)
    name_blob = b""
    name_offsets = []
    for name in names:
        name_offsets.append(len(name_blob))
        name_blob += name.encode("ascii") + b"\x00"

    data_blob = b""
    pairs = []
    for name in names:
        pairs.append((len(files[name]), len(data_blob)))
        data_blob += files[name]

    table = b"".join(struct.pack("<II", size, offset) for size, offset in pairs)
    table += b"".join(struct.pack("<I", offset) for offset in name_offsets)
    hash_offset = len(table) + len(name_blob)
    header = struct.pack("<III", 0x100, hash_offset, len(names))
    return header + table + name_blob + bytes(8 * len(names)) + data_blob


@pytest.fixture
def make_bsa(tmp_path):
    def _make(name, files):
        path = tmp_path / name
        path.write_bytes(build_bsa(files))
        return path
    return _make


@pytest.fixture
def make_plugin(tmp_path):
    def _make(name, records):
        path = tmp_path / name
        with open(path, "wb") as f:
            write_records(f, records)
        return path
    return _make
