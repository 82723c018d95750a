import re

from printmeta.services.logic.pattern_library import (
    DURATION_RULES,
    PatternRule,
    RuleShape,
    first_duration,
    material_slots,
    parse_duration_text,
    print_settings,
    slicer_identity,
    weight_total,
)


def test_parse_duration_text():
    assert parse_duration_text("2h 45m") == 165
    assert parse_duration_text("1d 2h 3m 4s") == 1563
    assert parse_duration_text("45m 30s") == 46
    assert parse_duration_text("90") == 90
    # Bare number above 1000 is seconds
    assert parse_duration_text("6150") == 103
    assert parse_duration_text("soon") is None
    assert parse_duration_text("   ") is None


def test_estimated_printing_time_comment():
    text = "; estimated printing time (normal mode) = 2h 45m\n"
    assert first_duration(text) == 165


def test_descriptor_print_time_seconds():
    assert first_duration('{"print_time": 5400}') == 90


def test_small_number_is_minutes():
    assert first_duration('{"estimated_time": 600}') == 600


def test_zero_duration_is_rejected_and_scanning_continues():
    text = '{"print_time": 0, "estimated_time": 75}'
    assert first_duration(text) == 75


def test_tag_and_camel_case_durations():
    assert first_duration("<time>45</time>") == 45
    assert first_duration("<print_time>7200</print_time>") == 120
    assert first_duration("PrintTime=30") == 30


def test_cura_time_is_always_seconds():
    assert first_duration(";FLAVOR:Marlin\n;TIME:600\n") == 10


def test_free_form_hours_minutes():
    assert first_duration("Print time: 2h 5m") == 125


def test_no_duration():
    assert first_duration("G28\nG1 X0 Y0\n") is None


def test_appending_a_rule_extends_the_library():
    custom = PatternRule("druckzeit", re.compile(r"druckzeit=(\d+)"), RuleShape.AUTO)
    text = "druckzeit=42"
    assert first_duration(text) is None
    assert first_duration(text, DURATION_RULES + [custom]) == 42


def test_weight_matches_are_summed():
    text = "; filament used: 10g\n" * 3
    assert weight_total(text) == 30.0


def test_weight_first_match_without_accumulation():
    text = "; filament used: 10g\n" * 3
    assert weight_total(text, accumulate=False) == 10.0


def test_weight_per_extruder_list_is_summed():
    assert weight_total("; filament used [g] = 12.5, 3.5\n", accumulate=False) == 16.0


def test_weight_generic_and_tags():
    assert weight_total("weight: 12.5 g") == 12.5
    assert weight_total("<filament_used_g>8.25</filament_used_g>") == 8.25
    assert weight_total('<metadata key="weight" value="4.75"/>') == 4.75
    assert weight_total("no grams here") is None


def test_material_slots_from_json_fragments():
    text = (
        '[{"filament_id": "1", "filament_type": "PLA", "filament_color": "FF0000", "used_g": "12.5"},'
        ' {"filament_id": "2", "filament_type": "PETG", "filament_color": "#00FF00", "used_g": 0}]'
    )
    slots = material_slots(text)

    assert len(slots) == 1
    assert slots[0].slot_index == 1
    assert slots[0].material_kind == "PLA"
    assert slots[0].color_hex == "FF0000"
    assert slots[0].weight_grams == 12.5


def test_material_slots_from_slice_info_filaments():
    text = '<filament id="1" tray_info_idx="GFA00" type="PLA" color="#FFFFFF" used_m="4.2" used_g="12.34"/>'
    slots = material_slots(text)

    assert [(s.slot_index, s.material_kind, s.color_hex, s.weight_grams) for s in slots] == [
        (1, "PLA", "#FFFFFF", 12.34)
    ]


def test_slicer_identity():
    assert slicer_identity("; generated by PrusaSlicer 2.7.1+win64 on 2024-01-05\n") == ("PrusaSlicer", "2.7.1+win64")
    assert slicer_identity("; BambuStudio 01.08.00.62\n") == ("BambuStudio", "01.08.00.62")
    assert slicer_identity(";Generated with Cura_SteamEngine 5.4.0\n") == ("Cura", "5.4.0")
    assert slicer_identity("G28\n") == (None, None)


def test_print_settings_whitelist_first_occurrence_wins():
    text = "; layer_height = 0.2\n; nozzle_diameter = 0.4\n; secret_key = abc\n; layer_height = 0.3\n"
    assert print_settings(text) == {"layer_height": "0.2", "nozzle_diameter": "0.4"}
