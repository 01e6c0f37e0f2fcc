import json
import struct

import pytest
from click.testing import CliRunner

from tes3pack.cli import cli, hex_rows
from tes3pack.esm.lua import LuaScripts
from tes3pack.esm.reader import parse_plugin_file
from tes3pack.esm.records import Record, Subrecord
from tes3pack.esm.tes3 import Tes3Header, new_tes3_record

SCRIPTS = "NPC: scripts/foo.lua\nGLOBAL: scripts/g.lua\n"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def scripts_file(tmp_path):
    path = tmp_path / "foo.omwscripts"
    path.write_text(SCRIPTS, encoding="utf-8")
    return path


def test_pack_creates_addon(runner, scripts_file):
    result = runner.invoke(cli, ["pack", str(scripts_file)])
    assert result.exit_code == 0, result.output

    records = parse_plugin_file(scripts_file.with_suffix(".omwaddon"))
    assert [r.tag for r in records] == ["TES3", "LUAL"]
    assert Tes3Header.from_record(records[0]).header.num_records == 1
    lual = LuaScripts.from_record(records[1])
    assert [s.path.value for s in lual.scripts] == ["scripts/foo.lua", "scripts/g.lua"]


def test_pack_replaces_scripts_in_existing_plugin(runner, scripts_file, make_plugin):
    out = make_plugin("existing.omwaddon", [
        new_tes3_record("author"),
        Record("LUAL", flags=0x2000, subrecords=[Subrecord("LUAS", b"old.lua"), Subrecord("LUAF", bytes(4))]),
        Record("GMST", subrecords=[Subrecord("NAME", b"sKeep")]),
        Record("LUAL", subrecords=[Subrecord("LUAS", b"old2.lua"), Subrecord("LUAF", bytes(4))]),
    ])
    result = runner.invoke(cli, ["pack", str(scripts_file), "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert "Backed up" in result.output

    records = parse_plugin_file(out)
    assert [r.tag for r in records] == ["TES3", "LUAL", "GMST"]
    assert records[1].flags == 0x2000
    tes3 = Tes3Header.from_record(records[0])
    assert tes3.header.name == "author"
    assert tes3.header.num_records == 2
    lual = LuaScripts.from_record(records[1])
    assert [s.path.value for s in lual.scripts] == ["scripts/foo.lua", "scripts/g.lua"]


def test_pack_reports_bad_scripts(runner, tmp_path):
    bad = tmp_path / "bad.omwscripts"
    bad.write_text("SPELL: a.lua\n", encoding="utf-8")
    result = runner.invoke(cli, ["pack", str(bad)])
    assert result.exit_code == 1
    assert "unknown attach key" in result.output
    assert not (tmp_path / "bad.omwaddon").exists()


def test_pack_missing_input(runner, tmp_path):
    result = runner.invoke(cli, ["pack", str(tmp_path / "nope.omwscripts")])
    assert result.exit_code == 2


def test_extract_round_trip(runner, scripts_file, tmp_path):
    assert runner.invoke(cli, ["pack", str(scripts_file)]).exit_code == 0
    out = tmp_path / "out.omwscripts"
    result = runner.invoke(cli, ["extract", str(scripts_file.with_suffix(".omwaddon")), "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert out.read_text(encoding="utf-8") == SCRIPTS


def test_extract_without_scripts(runner, make_plugin):
    plugin = make_plugin("plain.esp", [new_tes3_record()])
    result = runner.invoke(cli, ["extract", str(plugin)])
    assert result.exit_code == 1
    assert "No LUAL record" in result.output


def test_read_filters_records(runner, scripts_file):
    runner.invoke(cli, ["pack", str(scripts_file)])
    addon = scripts_file.with_suffix(".omwaddon")

    result = runner.invoke(cli, ["read", str(addon), "-r", "lual", "-s", "LUAS"])
    assert result.exit_code == 0, result.output
    assert "LUAL: (foo.omwaddon @ 324)" in result.output
    assert "LUAS:" in result.output
    assert "LUAF:" not in result.output
    assert "TES3:" not in result.output


def test_read_text_and_hex_filters(runner, scripts_file):
    runner.invoke(cli, ["pack", str(scripts_file)])
    addon = str(scripts_file.with_suffix(".omwaddon"))

    result = runner.invoke(cli, ["read", addon, "-f", "LUAS=foo"])
    assert "LUAL:" in result.output
    result = runner.invoke(cli, ["read", addon, "-f", "LUAS=nothere"])
    assert "LUAL:" not in result.output
    result = runner.invoke(cli, ["read", addon, "-f", "LUAF=0x4e50435f"])
    assert "LUAL:" in result.output
    result = runner.invoke(cli, ["read", addon, "-f", "LUAF=0xzz"])
    assert result.exit_code == 2


def test_read_json(runner, scripts_file):
    runner.invoke(cli, ["pack", str(scripts_file)])
    result = runner.invoke(cli, ["read", str(scripts_file.with_suffix(".omwaddon")), "--format", "json"])
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert [r["tag"] for r in data] == ["TES3", "LUAL"]
    assert data[1]["decoded"]["scripts"][0]["path"]["value"] == "scripts/foo.lua"


def test_read_json_reports_undecodable_record(runner, make_plugin):
    plugin = make_plugin("deleted.esp", [
        new_tes3_record(),
        Record("CELL", subrecords=[Subrecord("NAME", b"Balmora"), Subrecord("DELE", bytes(4))]),
    ])
    result = runner.invoke(cli, ["read", str(plugin), "--format", "json"])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "Failed decoding CELL in" in result.output
    assert "DELE" in result.output

    result = runner.invoke(cli, ["read", str(plugin)])
    assert result.exit_code == 0, result.output
    assert "DELE:" in result.output


def test_read_through_config(runner, scripts_file, tmp_path):
    runner.invoke(cli, ["pack", str(scripts_file)])
    cfg = tmp_path / "openmw.cfg"
    cfg.write_text(f"data={tmp_path}\ncontent=foo.omwaddon\n", encoding="utf-8")
    result = runner.invoke(cli, ["read", str(cfg), "-r", "LUAL"])
    assert result.exit_code == 0, result.output
    assert "LUAL: (foo.omwaddon" in result.output

    result = runner.invoke(cli, ["--cfg", str(cfg), "read", "-r", "TES3"])
    assert result.exit_code == 0, result.output
    assert "TES3: (foo.omwaddon" in result.output


def test_read_corrupt_plugin(runner, tmp_path):
    bad = tmp_path / "bad.esp"
    bad.write_bytes(b"TES3\xff\x00\x00\x00" + bytes(8))
    result = runner.invoke(cli, ["read", str(bad)])
    assert result.exit_code == 1
    assert "Failed parsing" in result.output


def test_fetch(runner, tmp_path, make_bsa):
    data = tmp_path / "data"
    (data / "textures").mkdir(parents=True)
    (data / "textures" / "loose.dds").write_bytes(b"loose")
    archive = make_bsa("packed.bsa", {"meshes\\chair.nif": b"nif"})
    cfg = tmp_path / "openmw.cfg"
    cfg.write_text(f"data={data}\nfallback-archive={archive}\n", encoding="utf-8")

    out = tmp_path / "out.dds"
    result = runner.invoke(cli, ["--cfg", str(cfg), "fetch", "textures/loose.dds", "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert out.read_bytes() == b"loose"

    out = tmp_path / "chair.nif"
    result = runner.invoke(cli, ["--cfg", str(cfg), "fetch", "Meshes/Chair.nif", "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert out.read_bytes() == b"nif"

    result = runner.invoke(cli, ["--cfg", str(cfg), "fetch", "missing.dds", "-o", str(out)])
    assert result.exit_code == 1


def test_terrain(runner, make_plugin):
    vhgt = struct.pack("<f", 0.0) + b"\x01" * (65 * 65) + bytes(3)
    plugin = make_plugin("land.esp", [
        new_tes3_record(),
        Record("LAND", subrecords=[
            Subrecord("INTV", struct.pack("<ii", 1, -2)),
            Subrecord("DATA", struct.pack("<I", 1)),
            Subrecord("VHGT", vhgt),
        ]),
        Record("LAND", subrecords=[Subrecord("INTV", struct.pack("<ii", 0, 0))]),
    ])
    result = runner.invoke(cli, ["terrain", str(plugin)])
    assert result.exit_code == 0, result.output
    assert "(1, -2)" in result.output
    assert "8.0" in result.output
    assert "1032.0" in result.output
    assert "no heights" in result.output
    assert "2 LAND record(s)" in result.output


def test_hex_rows():
    rows = hex_rows(b"AB\x00", 120)
    assert rows == [" A  B  . ", "41 42 00 "]
    assert len(hex_rows(bytes(100), 120)) == 8
    assert len(hex_rows(bytes(8), 0)) == 4
