import logging
import struct

import pytest

from tes3pack.esm.cell import Cell, FormReference, MovedReference
from tes3pack.esm.errors import TagMismatchError, UnknownSubrecordError
from tes3pack.esm.records import Record, Subrecord


def u32(value):
    return struct.pack("<I", value)


def position(*values):
    return struct.pack("<6f", *values)


NAME = Subrecord("NAME", b"Balmora")
DATA = Subrecord("DATA", struct.pack("<Iii", 0, -3, -2))


def test_trailing_lone_reference_is_dropped(caplog):
    rec = Record("CELL", subrecords=[
        NAME,
        DATA,
        Subrecord("FRMR", u32(1)),
        Subrecord("NAME", b"lantern_01"),
        Subrecord("FRMR", u32(1)),
    ])
    with caplog.at_level(logging.WARNING):
        cell = Cell.from_record(rec)

    assert cell.name.value == "Balmora"
    assert (cell.data.grid_x, cell.data.grid_y) == (-3, -2)
    assert len(cell.persistent_children) == 1
    ref = cell.persistent_children[0]
    assert ref.ref_id.value == 1
    assert ref.name.value == "lantern_01"
    assert ref.scale is None and ref.position is None and ref.faction is None
    assert cell.temporary_children == []
    assert cell.moved_references == []
    assert "no NAME" in caplog.text


def test_group_stops_at_second_id():
    subs = [
        Subrecord("FRMR", u32(1)),
        Subrecord("NAME", b"lantern_01"),
        Subrecord("FRMR", u32(2)),
    ]
    ref, consumed = FormReference.parse(subs, 0)
    assert consumed == 2
    assert ref.ref_id.value == 1


def test_group_stops_at_unknown_tag():
    subs = [
        Subrecord("FRMR", u32(1)),
        Subrecord("NAME", b"chair"),
        Subrecord("XSCL", struct.pack("<f", 2.0)),
        Subrecord("NAM0", u32(0)),
    ]
    ref, consumed = FormReference.parse(subs, 0)
    assert consumed == 3
    assert ref.scale.value == 2.0


def test_group_stops_at_repeated_tag():
    subs = [
        Subrecord("FRMR", u32(1)),
        Subrecord("NAME", b"a"),
        Subrecord("NAME", b"b"),
    ]
    _, consumed = FormReference.parse(subs, 0)
    assert consumed == 2


def test_group_must_start_with_id():
    _, consumed = FormReference.parse([Subrecord("NAME", b"a")], 0)
    assert consumed == 0


def test_back_to_back_groups():
    subs = [
        Subrecord("FRMR", u32(1)),
        Subrecord("NAME", b"a"),
        Subrecord("DATA", position(1, 2, 3, 0, 0, 0)),
        Subrecord("FRMR", u32(2)),
        Subrecord("NAME", b"b"),
        Subrecord("XSCL", struct.pack("<f", 0.5)),
    ]
    first, n1 = FormReference.parse(subs, 0)
    second, n2 = FormReference.parse(subs, n1)
    assert (n1, n2) == (3, 3)
    assert first.position.z == 3.0
    assert second.name.value == "b"
    assert second.scale.value == 0.5


def test_optional_fields_in_any_order():
    subs = [
        Subrecord("FRMR", u32(9)),
        Subrecord("NAME", b"door"),
        Subrecord("DNAM", b"Balmora, Guild of Mages"),
        Subrecord("DODT", position(1, 1, 1, 0, 0, 0)),
        Subrecord("FLTV", u32(50)),
        Subrecord("KNAM", b"key_x"),
        Subrecord("CNAM", b"Mages Guild"),
        Subrecord("INDX", u32(3)),
    ]
    ref, consumed = FormReference.parse(subs, 0)
    assert consumed == len(subs)
    assert ref.door_cell.value == "Balmora, Guild of Mages"
    assert ref.lock_level.value == 50
    assert ref.faction.value == "Mages Guild"
    assert ref.faction_rank.value == 3


def test_persistent_and_temporary_children_round_trip():
    subs = [
        NAME,
        DATA,
        Subrecord("FRMR", u32(1)),
        Subrecord("NAME", b"a"),
        Subrecord("NAM0", u32(1)),
        Subrecord("FRMR", u32(2)),
        Subrecord("NAME", b"b"),
        Subrecord("DATA", position(1, 2, 3, 0, 0, 1)),
    ]
    rec = Record("CELL", flags=0x400, subrecords=subs)
    cell = Cell.from_record(rec)

    assert [r.name.value for r in cell.persistent_children] == ["a"]
    assert [r.name.value for r in cell.temporary_children] == ["b"]
    assert cell.temporary_children[0].position.rot_z == 1.0
    assert cell.to_record() == rec


def test_temporary_count_is_recomputed():
    cell = Cell.from_record(Record("CELL", subrecords=[
        NAME,
        Subrecord("NAM0", u32(99)),
        Subrecord("FRMR", u32(2)),
        Subrecord("NAME", b"b"),
    ]))
    nam0 = [s for s in cell.subrecords() if s.tag == "NAM0"]
    assert nam0 == [Subrecord("NAM0", u32(1))]


def test_no_temporary_count_without_temporary_children():
    cell = Cell.from_record(Record("CELL", subrecords=[NAME, Subrecord("NAM0", u32(0))]))
    assert all(s.tag != "NAM0" for s in cell.subrecords())


def test_moved_reference():
    subs = [
        NAME,
        DATA,
        Subrecord("MVRF", u32(7)),
        Subrecord("CNAM", b"Vivec"),
        Subrecord("CNDT", struct.pack("<ii", 1, 2)),
        Subrecord("FRMR", u32(7)),
        Subrecord("NAME", b"chair"),
        Subrecord("FRMR", u32(8)),
        Subrecord("NAME", b"table"),
    ]
    rec = Record("CELL", subrecords=subs)
    cell = Cell.from_record(rec)

    assert len(cell.moved_references) == 1
    moved = cell.moved_references[0]
    assert moved.ref_id.value == 7
    assert moved.cell.value == "Vivec"
    assert (moved.grid.grid_x, moved.grid.grid_y) == (1, 2)
    assert moved.moved.name.value == "chair"
    assert [r.name.value for r in cell.persistent_children] == ["table"]
    assert cell.to_record() == rec


def test_moved_reference_consumed_count():
    subs = [
        Subrecord("MVRF", u32(7)),
        Subrecord("CNDT", struct.pack("<ii", 0, 0)),
        Subrecord("FRMR", u32(7)),
        Subrecord("NAME", b"chair"),
        Subrecord("MVRF", u32(8)),
    ]
    _, consumed = MovedReference.parse(subs, 0)
    assert consumed == 4


def test_cell_fields_write_order():
    subs = [
        Subrecord("AMBI", bytes(16)),
        Subrecord("WHGT", struct.pack("<f", -10.0)),
        Subrecord("RGNN", b"Bitter Coast Region"),
        DATA,
        NAME,
    ]
    cell = Cell.from_record(Record("CELL", subrecords=subs))
    assert [s.tag for s in cell.subrecords()] == ["NAME", "DATA", "RGNN", "WHGT", "AMBI"]
    assert cell.region.value == "Bitter Coast Region"


def test_unknown_cell_subrecord():
    with pytest.raises(UnknownSubrecordError):
        Cell.from_record(Record("CELL", subrecords=[NAME, Subrecord("XXXX", b"")]))


def test_duplicate_scalar_keeps_last(caplog):
    rec = Record("CELL", subrecords=[NAME, Subrecord("WHGT", struct.pack("<f", 1.0)),
                                     Subrecord("WHGT", struct.pack("<f", 2.0))])
    with caplog.at_level(logging.WARNING):
        cell = Cell.from_record(rec)
    assert cell.water_height.value == 2.0
    assert "duplicate CELL.WHGT" in caplog.text


def test_wrong_record_type():
    with pytest.raises(TagMismatchError):
        Cell.from_record(Record("LAND"))


def test_interior_flag():
    cell = Cell.from_record(Record("CELL", subrecords=[
        Subrecord("NAME", b"Balmora, Guild of Mages"),
        Subrecord("DATA", struct.pack("<Iii", 1, 0, 0)),
    ]))
    assert cell.data.is_interior
    assert cell.display_name == "'Balmora, Guild of Mages'"
