import struct

import pytest

from tes3pack.bsa.reader import BSAError, BSAReader


def test_index_and_extract(make_bsa):
    path = make_bsa("Test.bsa", {
        "Textures\\Tx_Sky.dds": b"sky",
        "meshes\\x\\Chair.nif": b"chair-data",
    })
    reader = BSAReader(path)
    assert [e.name for e in reader.entries] == ["textures/tx_sky.dds", "meshes/x/chair.nif"]
    entry = reader.get("MESHES/X/CHAIR.NIF")
    assert entry.size == 10
    assert reader.extract_file(entry) == b"chair-data"
    assert reader.read_file("textures\\tx_sky.dds") == b"sky"


def test_missing_file(make_bsa):
    reader = BSAReader(make_bsa("Test.bsa", {"a.txt": b"a"}))
    assert reader.get("b.txt") is None
    with pytest.raises(FileNotFoundError):
        reader.read_file("b.txt")


def test_bad_version(tmp_path):
    path = tmp_path / "bad.bsa"
    path.write_bytes(struct.pack("<III", 0x415342, 0, 1))
    with pytest.raises(BSAError):
        BSAReader(path)


def test_empty_archive(make_bsa):
    reader = BSAReader(make_bsa("empty.bsa", {}))
    assert reader.entries == []
    assert reader.get("a.txt") is None


def test_unreasonable_file_count(tmp_path):
    path = tmp_path / "huge.bsa"
    path.write_bytes(struct.pack("<III", 0x100, 0, 300000))
    with pytest.raises(BSAError, match="Unreasonable"):
        BSAReader(path)


def test_truncated_data(make_bsa):
    path = make_bsa("Test.bsa", {"a.txt": b"abcdef"})
    path.write_bytes(path.read_bytes()[:-2])
    with pytest.raises(BSAError):
        BSAReader(path)


def test_truncated_header(tmp_path):
    path = tmp_path / "short.bsa"
    path.write_bytes(b"\x00\x01")
    with pytest.raises(BSAError):
        BSAReader(path)
