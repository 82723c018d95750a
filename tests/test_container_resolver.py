import json

import pytest

from printmeta.core.exceptions import (
    FileTooLargeError,
    InvalidArchiveError,
    MissingFileError,
    WrongExtensionError,
)
from printmeta.schemas.extraction import MaterialSource
from printmeta.services.logic.container_resolver import (
    ContainerResolver,
    EntryRole,
    classify_entry,
    decode_project_descriptor,
    decode_slice_report,
)
from printmeta.core.exceptions import MalformedStructuredData
from printmeta.services.logic.normalizer import Normalizer

SLICE_INFO = """<?xml version="1.0" encoding="UTF-8"?>
<config>
  <header>
    <header_item key="X-BBL-Client-Type" value="slicer"/>
  </header>
  <plate>
    <metadata key="index" value="1"/>
    <metadata key="prediction" value="3600"/>
    <metadata key="weight" value="10.50"/>
    <filament id="1" tray_info_idx="GFA00" type="PLA" color="#FFFFFF" used_m="3.40" used_g="10.50"/>
  </plate>
  <plate>
    <metadata key="index" value="2"/>
    <metadata key="prediction" value="1800"/>
    <metadata key="weight" value="4.50"/>
    <filament id="2" tray_info_idx="GFG00" type="PETG" color="#000000" used_m="1.40" used_g="4.50"/>
  </plate>
</config>
"""


# --- Classification ---

def test_classify_preview_names():
    assert EntryRole.PREVIEW_IMAGE in classify_entry("Metadata/thumbnail.png")
    assert EntryRole.PREVIEW_IMAGE in classify_entry("Metadata/cover.JPG")
    assert EntryRole.PREVIEW_IMAGE in classify_entry("Metadata/top_picture.webp")
    assert EntryRole.PREVIEW_IMAGE not in classify_entry("Auxiliaries/profile_picture.png")
    assert EntryRole.PREVIEW_IMAGE not in classify_entry("Metadata/thumbnail.bmp")


def test_classify_metadata_roles():
    assert classify_entry("3D/3dmodel.model") == {EntryRole.RELEVANT_METADATA, EntryRole.MODEL_DEFINITION}
    assert classify_entry("Metadata/slice_info.config") == {EntryRole.RELEVANT_METADATA, EntryRole.SLICE_REPORT}
    assert classify_entry("project.json") == {EntryRole.RELEVANT_METADATA, EntryRole.PROJECT_DESCRIPTOR}
    assert classify_entry("Metadata/3DBenchy.json") == {EntryRole.RELEVANT_METADATA, EntryRole.PROJECT_DESCRIPTOR}
    assert classify_entry("nested/inner.3mf") == {EntryRole.RELEVANT_METADATA}
    assert classify_entry("Metadata/plate_1.gcode") == {EntryRole.RELEVANT_METADATA}


def test_roles_are_not_exclusive():
    roles = classify_entry("Metadata/thumbnail.png")
    assert roles == {EntryRole.PREVIEW_IMAGE, EntryRole.RELEVANT_METADATA}


def test_irrelevant_entries():
    assert classify_entry("readme.txt") == frozenset()
    assert classify_entry("Auxiliaries/profile_picture.png") == frozenset()


# --- Validation ---

def test_missing_file():
    resolver = ContainerResolver()
    with pytest.raises(MissingFileError):
        resolver.resolve(None, None)
    with pytest.raises(MissingFileError):
        resolver.resolve(b"data", "")


def test_wrong_extension_reads_no_entries(make_3mf, monkeypatch):
    calls = []
    original = ContainerResolver._decode_entry

    def counting_decode(self, archive, info):
        calls.append(info.filename)
        return original(self, archive, info)

    monkeypatch.setattr(ContainerResolver, "_decode_entry", counting_decode)
    data = make_3mf({"Metadata/project.json": '{"print_time": 5400}'})

    with pytest.raises(WrongExtensionError) as exc:
        ContainerResolver().resolve(data, "project.zip")

    assert exc.value.status_code == 400
    assert ".3mf" in exc.value.detail
    assert calls == []

    # Same bytes under the right name are decoded
    ContainerResolver().resolve(data, "project.3mf")
    assert calls == ["Metadata/project.json"]


def test_too_large_is_rejected_before_opening():
    with pytest.raises(FileTooLargeError) as exc:
        ContainerResolver(max_bytes=10).resolve(b"x" * 11, "big.3mf")
    assert exc.value.status_code == 400


def test_unopenable_archive():
    with pytest.raises(InvalidArchiveError) as exc:
        ContainerResolver().resolve(b"definitely not a zip", "broken.3mf")
    assert exc.value.status_code == 400


# --- Resolution ---

def test_descriptor_print_time_seconds_to_minutes(benchy_3mf):
    raw = ContainerResolver().resolve(benchy_3mf, "benchy.3mf")

    assert raw.name == "3DBenchy"
    assert raw.duration_minutes == 90
    assert raw.weight_grams == 15.2
    assert [(m.slot_index, m.material_kind, m.source) for m in raw.materials] == [
        (0, "PLA", MaterialSource.STRUCTURED)
    ]


def test_source_trace_lists_every_file_entry_once(benchy_3mf):
    raw = ContainerResolver().resolve(benchy_3mf, "benchy.3mf")

    assert raw.source_trace == [
        "[Content_Types].xml",
        "Metadata/project.json",
        "Metadata/thumbnail.png",
        "3D/3dmodel.model",
    ]
    assert "Metadata/" not in raw.source_trace


def test_weight_matches_within_one_entry_are_summed(make_3mf):
    data = make_3mf({"Metadata/plate_1.gcode": "; filament used: 10g\n" * 3})
    raw = ContainerResolver().resolve(data, "plate.3mf")
    assert raw.weight_grams == 30.0


def test_first_entry_to_set_a_field_wins(make_3mf):
    data = make_3mf({
        "Metadata/plate_1.json": '{"print_time": 600}',
        "Metadata/plate_2.json": '{"print_time": 9000}',
    })
    raw = ContainerResolver().resolve(data, "plates.3mf")
    assert raw.duration_minutes == 600


def test_structured_decode_beats_pattern_within_entry(make_3mf):
    # Pattern scan reads 600 as minutes; the descriptor schema says seconds.
    data = make_3mf({"project.json": '{"print_time": 600}'})
    raw = ContainerResolver().resolve(data, "small.3mf")
    assert raw.duration_minutes == 10


def test_undecodable_entry_does_not_abort_the_run(make_3mf):
    data = make_3mf({
        "Metadata/broken.config": b"\xff\xfe\x00\x81 not utf-8",
        "Metadata/plate_1.json": '{"print_time": 5400, "filament_used_g": 12.5}',
    })
    raw = ContainerResolver().resolve(data, "mixed.3mf")

    assert raw.duration_minutes == 90
    assert raw.weight_grams == 12.5
    assert raw.decoded_entries == 1
    assert "Metadata/broken.config" in raw.source_trace


def test_malformed_descriptor_falls_back_to_pattern_scan(make_3mf):
    data = make_3mf({"Metadata/project.json": '{"print_time": 5400, "name": "Broken", '})
    raw = ContainerResolver().resolve(data, "malformed.3mf")

    assert raw.duration_minutes == 90
    assert raw.name is None


def test_numeric_filament_labels_are_kept_as_text(make_3mf):
    data = make_3mf({"Metadata/project.json": json.dumps({
        "print_time": 5400,
        "filament_used_g": 12.0,
        "filaments": [{"id": 0, "type": 1, "color": 255, "color_hex": 16711680, "used_g": 12.0}],
    })})
    raw = ContainerResolver().resolve(data, "numeric.3mf")

    assert raw.duration_minutes == 90
    assert raw.weight_grams == 12.0
    assert [(m.material_kind, m.color_label, m.color_hex) for m in raw.materials] == [("1", "255", "16711680")]


def test_overflowing_descriptor_numbers_are_ignored(make_3mf):
    data = make_3mf({"Metadata/project.json": '{"print_time": 1e999, "filament_used_g": 12.0, '
                                              '"filaments": [{"id": 1e999, "used_g": 12.0}]}'})
    raw = ContainerResolver().resolve(data, "overflow.3mf")

    assert raw.decoded_entries == 1
    assert raw.weight_grams == 12.0
    assert [m.slot_index for m in raw.materials] == [0]


def test_unusable_descriptor_values_keep_the_pattern_scan(make_3mf, monkeypatch):
    def explode(entry_name, text):
        raise ValueError("unexpected shape")

    monkeypatch.setattr("printmeta.services.logic.container_resolver.decode_project_descriptor", explode)
    data = make_3mf({"Metadata/project.json": "; estimated printing time = 1h 30m\n; filament used: 7.5g\n"})
    raw = ContainerResolver().resolve(data, "odd.3mf")

    assert raw.duration_minutes == 90
    assert raw.weight_grams == 7.5
    assert raw.decoded_entries == 1


def test_first_preview_wins_and_mime_follows_extension(make_3mf):
    data = make_3mf({
        "Auxiliaries/profile_picture.png": b"\x89PNG profile",
        "Metadata/cover.jpg": b"\xff\xd8\xff jpeg",
        "Metadata/thumbnail.png": b"\x89PNG thumb",
    })
    raw = ContainerResolver().resolve(data, "pictures.3mf")

    assert raw.preview.entry_name == "Metadata/cover.jpg"
    assert raw.preview.mime_type == "image/jpeg"
    assert raw.preview.to_data_uri().startswith("data:image/jpeg;base64,")


def test_structured_slot_replaces_pattern_slot_in_place(make_3mf):
    data = make_3mf({
        "Metadata/plate_1.json": json.dumps([
            {"filament_id": "0", "filament_type": "PLA", "filament_color": "FF0000", "used_g": "5"},
            {"filament_id": "1", "filament_type": "PLA", "filament_color": "0000FF", "used_g": "3"},
        ]),
        "Metadata/project.json": json.dumps({
            "filaments": [{"id": 0, "type": "PETG", "color": "Orange", "color_hex": "#FF6600", "used_g": 7}],
        }),
    })
    raw = ContainerResolver().resolve(data, "slots.3mf")

    assert [(m.slot_index, m.material_kind, m.source) for m in raw.materials] == [
        (0, "PETG", MaterialSource.STRUCTURED),
        (1, "PLA", MaterialSource.PATTERN),
    ]


def test_later_pattern_discovery_of_a_slot_is_ignored(make_3mf):
    data = make_3mf({
        "Metadata/plate_1.json": '{"filament_id": "0", "filament_type": "PLA", "filament_color": "FF0000", "used_g": "5"}',
        "Metadata/plate_2.json": '{"filament_id": "0", "filament_type": "ABS", "filament_color": "000000", "used_g": "9"}',
    })
    raw = ContainerResolver().resolve(data, "dupes.3mf")

    assert len(raw.materials) == 1
    assert raw.materials[0].material_kind == "PLA"
    assert raw.materials[0].weight_grams == 5.0


def test_slice_report_is_decoded_across_plates(make_3mf):
    data = make_3mf({"Metadata/slice_info.config": SLICE_INFO})
    raw = ContainerResolver().resolve(data, "bambu.3mf")

    assert raw.duration_minutes == 90
    assert raw.weight_grams == 15.0
    assert [(m.slot_index, m.material_kind, m.color_hex, m.weight_grams) for m in raw.materials] == [
        (1, "PLA", "#FFFFFF", 10.5),
        (2, "PETG", "#000000", 4.5),
    ]
    assert all(m.source == MaterialSource.STRUCTURED for m in raw.materials)


def test_extraction_is_idempotent(benchy_3mf):
    resolver, normalizer = ContainerResolver(), Normalizer()

    first = normalizer.normalize(resolver.resolve(benchy_3mf, "benchy.3mf"), "benchy.3mf")
    second = normalizer.normalize(resolver.resolve(benchy_3mf, "benchy.3mf"), "benchy.3mf")

    assert first == second
    assert first.preview_image is not None
    assert first.model_dump_json() == second.model_dump_json()

    dumped = json.loads(first.model_dump_json())
    assert isinstance(dumped["preview_image"]["data"], str)
    assert dumped["preview_image"]["mime_type"] == "image/png"


# --- Structured Decoders ---

def test_decode_project_descriptor_fields():
    fields = decode_project_descriptor("project.json", json.dumps({
        "name": " Gear ",
        "estimated_time": "3600",
        "total_weight": 20,
        "filaments": [
            {"type": "PLA", "color_hex": "FFFFFF", "used_g": 12},
            {"type": "PLA", "used_g": 0},
            "garbage",
        ],
    }))

    assert fields.name == "Gear"
    assert fields.duration_minutes == 60
    assert fields.weight_grams == 20.0
    assert [(m.slot_index, m.color_hex) for m in fields.materials] == [(0, "FFFFFF")]


def test_decode_project_descriptor_rejects_non_objects():
    with pytest.raises(MalformedStructuredData):
        decode_project_descriptor("project.json", "[1, 2, 3]")
    with pytest.raises(MalformedStructuredData):
        decode_project_descriptor("project.json", "{not json")


def test_decode_slice_report_rejects_bad_xml():
    with pytest.raises(MalformedStructuredData):
        decode_slice_report("Metadata/slice_info.config", "<config><plate>")


def test_decode_slice_report_sums_a_filament_across_plates():
    xml = (
        "<config>"
        '<plate><filament id="1" type="PLA" color="#FFFFFF" used_g="2.5"/></plate>'
        '<plate><filament id="1" type="PLA" color="#FFFFFF" used_g="1.5"/></plate>'
        "</config>"
    )
    fields = decode_slice_report("Metadata/slice_info.config", xml)

    assert len(fields.materials) == 1
    assert fields.materials[0].weight_grams == 4.0
    assert fields.duration_minutes is None
