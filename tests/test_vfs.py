import pytest

from tes3pack.vfs import DataFiles


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def test_highest_priority_loose_file_wins(tmp_path):
    low, high = tmp_path / "low", tmp_path / "high"
    _write(low / "textures" / "a.dds", b"low")
    _write(high / "textures" / "a.dds", b"high")
    assert DataFiles([low, high]).read_file("textures/a.dds") == b"high"
    assert DataFiles([high, low]).read_file("textures/a.dds") == b"low"


def test_loose_lookup_ignores_case(tmp_path):
    _write(tmp_path / "data" / "Textures" / "Tx_Sky.DDS", b"sky")
    assert DataFiles([tmp_path / "data"]).read_file("textures\\tx_sky.dds") == b"sky"


def test_loose_files_beat_archives(tmp_path, make_bsa):
    archive = make_bsa("a.bsa", {"textures/a.dds": b"packed"})
    _write(tmp_path / "data" / "textures" / "a.dds", b"loose")
    files = DataFiles([tmp_path / "data"], [archive])
    assert files.read_file("textures/a.dds") == b"loose"


def test_last_archive_wins(make_bsa):
    first = make_bsa("first.bsa", {"a.txt": b"first", "only.txt": b"only"})
    second = make_bsa("second.bsa", {"a.txt": b"second"})
    files = DataFiles([], [first, second])
    assert files.read_file("a.txt") == b"second"
    assert files.read_file("ONLY.TXT") == b"only"


def test_archive_index_is_cached(make_bsa):
    archive = make_bsa("a.bsa", {"a.txt": b"a"})
    files = DataFiles([], [archive])
    files.read_file("a.txt")
    reader = files._indices[archive]
    files.read_file("a.txt")
    assert files._indices[archive] is reader


def test_missing_everywhere(tmp_path, make_bsa):
    files = DataFiles([tmp_path], [make_bsa("a.bsa", {"a.txt": b"a"})])
    with pytest.raises(FileNotFoundError):
        files.read_file("b.txt")
