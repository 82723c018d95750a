"""
Pattern Library - ordered, declarative matching rules for slicer metadata.

Slicers (Bambu Studio, OrcaSlicer, PrusaSlicer, Cura, ...) write the same facts in
many incompatible ways. Every known convention is one PatternRule in an ordered
table below; the interpreter functions at the bottom run a table with either
"first accepted match" or "accumulate and sum" semantics.

Supporting a new slicer convention means appending a rule to a table.
The interpreter never special-cases a slicer.
"""
import logging
import re
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from printmeta.schemas.extraction import MaterialSource, RawMaterial

logger = logging.getLogger("PatternLibrary")

_FLAGS = re.IGNORECASE
_LINE_FLAGS = re.IGNORECASE | re.MULTILINE

# A bare number above this is read as seconds, otherwise as minutes.
SECONDS_THRESHOLD = 1000


class RuleShape(str, Enum):
    """What the captured group(s) of a rule mean."""
    AUTO = "AUTO"                    # single number: seconds if > 1000, else minutes
    SECONDS = "SECONDS"              # single number, always seconds
    HOURS_MINUTES = "HOURS_MINUTES"  # group 1 hours, optional group 2 minutes
    DURATION_TEXT = "DURATION_TEXT"  # free text such as "1d 2h 45m 10s"
    GRAMS = "GRAMS"                  # one number or a comma separated list, summed


class PatternRule(NamedTuple):
    name: str
    pattern: re.Pattern
    shape: RuleShape
    accumulate: bool = False


class MaterialRule(NamedTuple):
    """Captures (slot id, material kind, color code, used grams) as groups 1-4."""
    name: str
    pattern: re.Pattern


class SlicerRule(NamedTuple):
    """If fixed_name is set, group 1 is the version; otherwise group 1 is the name and group 2 the version."""
    name: str
    pattern: re.Pattern
    fixed_name: Optional[str] = None


class ListRule(NamedTuple):
    """A header comment holding one value per extruder."""
    name: str
    pattern: re.Pattern
    separators: str


# =============================================================================
# Duration Family (first positive match wins)
# =============================================================================

DURATION_RULES: List[PatternRule] = [
    # Slicer comments
    PatternRule(
        "comment_estimated_printing_time",
        re.compile(r";\s*estimated printing time[^=\n]*=\s*([^\n;]+)", _FLAGS),
        RuleShape.DURATION_TEXT,
    ),
    PatternRule("comment_time", re.compile(r";\s*time\s*=\s*(\d+)", _FLAGS), RuleShape.AUTO),
    PatternRule("cura_time", re.compile(r";\s*TIME:\s*(\d+)", _FLAGS), RuleShape.SECONDS),

    # Descriptor key/value pairs (JSON / config)
    PatternRule("key_print_time", re.compile(r"print_time[\"\s:=]*(\d+)", _FLAGS), RuleShape.AUTO),
    PatternRule("key_estimated_time", re.compile(r"estimated_time[\"\s:=]*(\d+)", _FLAGS), RuleShape.AUTO),
    PatternRule(
        "key_normal_print_time",
        re.compile(r"normal_print_time[\"\s:=]*\"?(\d+\.?\d*)[hms]?\"?", _FLAGS),
        RuleShape.AUTO,
    ),
    PatternRule("json_time", re.compile(r"\"time\"[:\s]*(\d+)", _FLAGS), RuleShape.AUTO),

    # Tag-style fragments (Bambu Studio)
    PatternRule("tag_time", re.compile(r"<time>(\d+)</time>", _FLAGS), RuleShape.AUTO),
    PatternRule("tag_print_time", re.compile(r"<print_time>(\d+)</print_time>", _FLAGS), RuleShape.AUTO),
    PatternRule("key_print_time_camel", re.compile(r"PrintTime[:\s=]*(\d+)", _FLAGS), RuleShape.AUTO),
    PatternRule(
        "bambu_prediction",
        re.compile(r"key=\"prediction\"\s+value=\"(\d+)\"", _FLAGS),
        RuleShape.SECONDS,
    ),

    # Free form "2h 45m" next to the word time
    PatternRule(
        "free_hours_minutes",
        re.compile(r"time[^>\n]*>?\s*(\d+)\s*h\s*(\d+)?\s*m", _FLAGS),
        RuleShape.HOURS_MINUTES,
    ),
]


# =============================================================================
# Weight Family (archive: sum every match of a rule; toolpath: first match)
# =============================================================================

WEIGHT_RULES: List[PatternRule] = [
    # Slicer comments
    PatternRule(
        "comment_filament_used_grams",
        re.compile(r"filament used\s*[=:]\s*(\d+\.?\d*)\s*g\b", _FLAGS),
        RuleShape.GRAMS, accumulate=True,
    ),
    PatternRule(
        "comment_filament_used_bracket_g",
        re.compile(r";\s*filament used \[g\]\s*[=:]\s*(\d+\.?\d*(?:\s*,\s*\d+\.?\d*)*)", _FLAGS),
        RuleShape.GRAMS, accumulate=True,
    ),
    PatternRule(
        "comment_total_filament",
        re.compile(r";\s*total filament (?:used|weight)\s*\[g\]\s*[=:]\s*(\d+\.?\d*)", _FLAGS),
        RuleShape.GRAMS, accumulate=True,
    ),

    # Descriptor key/value pairs
    PatternRule(
        "key_filament_used_g",
        re.compile(r"filament_used_g[\"\s:=]*\"?(\d+\.?\d*)\"?", _FLAGS),
        RuleShape.GRAMS, accumulate=True,
    ),
    PatternRule(
        "key_total_filament",
        re.compile(r"total_filament[\"\s:=]*\"?(\d+\.?\d*)\"?", _FLAGS),
        RuleShape.GRAMS, accumulate=True,
    ),
    PatternRule(
        "key_filament_weight",
        re.compile(r"filament_weight[\"\s:=]*\"?(\d+\.?\d*)\"?", _FLAGS),
        RuleShape.GRAMS, accumulate=True,
    ),
    PatternRule(
        "key_used_g",
        re.compile(r"used_g[\"\s:=]*\"?(\d+\.?\d*)\"?", _FLAGS),
        RuleShape.GRAMS, accumulate=True,
    ),

    # Tag-style fragments (Bambu Studio)
    PatternRule(
        "tag_filament_used_g",
        re.compile(r"<filament_used_g>(\d+\.?\d*)</filament_used_g>", _FLAGS),
        RuleShape.GRAMS, accumulate=True,
    ),
    PatternRule("tag_weight", re.compile(r"<weight>(\d+\.?\d*)</weight>", _FLAGS), RuleShape.GRAMS, accumulate=True),
    PatternRule(
        "key_total_filament_camel",
        re.compile(r"TotalFilament[:\s=]*(\d+\.?\d*)", _FLAGS),
        RuleShape.GRAMS, accumulate=True,
    ),
    PatternRule(
        "bambu_weight",
        re.compile(r"key=\"weight\"\s+value=\"(\d+\.?\d*)\"", _FLAGS),
        RuleShape.GRAMS, accumulate=True,
    ),

    # Generic "weight: 12.5 g"
    PatternRule(
        "generic_weight",
        re.compile(r"weight[\"\s:=]*(\d+\.?\d*)\s*g\b", _FLAGS),
        RuleShape.GRAMS, accumulate=True,
    ),
]


# =============================================================================
# Material Slot Family (first rule producing a usable slot wins)
# =============================================================================

MATERIAL_RULES: List[MaterialRule] = [
    MaterialRule(
        "json_ams_slot",
        re.compile(
            r"\"filament_id\"[:\s]*\"(\d+)\"[^}]*"
            r"\"filament_type\"[:\s]*\"([^\"]+)\"[^}]*"
            r"\"filament_color\"[:\s]*\"([^\"]+)\"[^}]*"
            r"\"used_g\"[:\s]*\"?(\d+\.?\d*)\"?",
            _FLAGS,
        ),
    ),
    MaterialRule(
        "slice_info_filament",
        re.compile(
            r"<filament\s+id=\"(\d+)\"[^>]*?\btype=\"([^\"]*)\""
            r"[^>]*?\bcolor=\"([^\"]*)\"[^>]*?\bused_g=\"(\d+\.?\d*)\"",
            _FLAGS,
        ),
    ),
]


# =============================================================================
# Toolpath Header Families
# =============================================================================

SLICER_RULES: List[SlicerRule] = [
    SlicerRule(
        "generated_by_known",
        re.compile(
            r"^;\s*generated by\s+(PrusaSlicer|SuperSlicer|OrcaSlicer|BambuStudio|Slic3r(?:\s?PE)?)\s+v?([\w.\-+]+)",
            _LINE_FLAGS,
        ),
    ),
    SlicerRule("bambu_header", re.compile(r"^;\s*(BambuStudio|OrcaSlicer)\s+v?([\d.]+)", _LINE_FLAGS)),
    SlicerRule("cura_engine", re.compile(r"^;\s*Generated with Cura_SteamEngine\s+([\w.\-]+)", _LINE_FLAGS), "Cura"),
    SlicerRule(
        "simplify3d",
        re.compile(r"^;\s*G-Code generated by Simplify3D\(R\) Version\s+([\d.]+)", _LINE_FLAGS),
        "Simplify3D",
    ),
    SlicerRule("ideamaker", re.compile(r"^;\s*Sliced by ideaMaker\s+([\d.]+)", _LINE_FLAGS), "ideaMaker"),
    SlicerRule(
        "generated_by_generic",
        re.compile(r"^;\s*generated (?:by|with)\s+([A-Za-z][\w\-]*)(?:\s+v?(\d[\w.\-+]*))?", _LINE_FLAGS),
    ),
]

TOOLPATH_LIST_RULES: Dict[str, ListRule] = {
    "material_kind": ListRule(
        "filament_type", re.compile(r"^;\s*filament_type\s*=\s*(.+?)\s*$", _LINE_FLAGS), ";,"
    ),
    "color": ListRule(
        "filament_colour", re.compile(r"^;\s*filament_colou?r\s*=\s*(.+?)\s*$", _LINE_FLAGS), ";,"
    ),
    "weight_grams": ListRule(
        "filament_used_g", re.compile(r"^;\s*filament used \[g\]\s*[=:]\s*(.+?)\s*$", _LINE_FLAGS), ",;"
    ),
}

SETTING_LINE = re.compile(r"^;\s*([A-Za-z_][\w]*)\s*[=:]\s*(.*?)\s*$", re.MULTILINE)

PRINT_SETTING_KEYS = frozenset({
    "layer_height",
    "first_layer_height",
    "initial_layer_print_height",
    "nozzle_diameter",
    "fill_density",
    "sparse_infill_density",
    "infill_sparse_density",
    "fill_pattern",
    "sparse_infill_pattern",
    "perimeters",
    "wall_loops",
    "top_solid_layers",
    "bottom_solid_layers",
    "temperature",
    "nozzle_temperature",
    "first_layer_temperature",
    "bed_temperature",
    "first_layer_bed_temperature",
    "hot_plate_temp",
    "support_material",
    "enable_support",
    "brim_width",
    "skirts",
    "printer_model",
    "printer_settings_id",
    "print_settings_id",
    "filament_settings_id",
    "flavor",
})


# =============================================================================
# Interpreter
# =============================================================================

def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def _to_float(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def minutes_from_number(value: float) -> int:
    """A bare number: seconds if it is above the threshold, minutes otherwise."""
    if value > SECONDS_THRESHOLD:
        return _round_half_up(value / 60)
    return _round_half_up(value)


def parse_duration_text(raw: str) -> Optional[int]:
    """
    Parse duration text such as ``2h 45m``, ``1d 3h 2m 10s`` or ``6150`` into whole minutes.
    Returns None when nothing recognisable is present.
    """
    raw = raw.strip()
    if not raw:
        return None

    if re.fullmatch(r"\d+(?:\.\d+)?", raw):
        return minutes_from_number(float(raw))

    total_seconds = 0
    found = False
    for amount, unit in re.findall(r"(\d+)\s*([dhms])", raw, re.IGNORECASE):
        total_seconds += int(amount) * {"d": 86400, "h": 3600, "m": 60, "s": 1}[unit.lower()]
        found = True

    if not found:
        return None
    return _round_half_up(total_seconds / 60)


def duration_from_match(rule: PatternRule, match: "re.Match[str]") -> Optional[int]:
    """Convert one match of a duration rule into minutes according to the rule's shape."""
    if rule.shape == RuleShape.DURATION_TEXT:
        return parse_duration_text(match.group(1))

    if rule.shape == RuleShape.HOURS_MINUTES:
        hours = int(match.group(1))
        minutes = int(match.group(2)) if match.group(2) is not None else 0
        return hours * 60 + minutes

    value = _to_float(match.group(1))
    if value is None:
        return None
    if rule.shape == RuleShape.SECONDS:
        return _round_half_up(value / 60)
    return minutes_from_number(value)


def grams_from_match(match: "re.Match[str]") -> float:
    """Sum every number in the captured group (slicers list one value per extruder)."""
    return sum(float(n) for n in re.findall(r"\d+(?:\.\d+)?", match.group(1)))


def first_duration(text: str, rules: Iterable[PatternRule] = DURATION_RULES) -> Optional[int]:
    """
    Run the duration rules in order and return the first positive value in minutes.
    A computed zero is treated as no match and scanning continues.
    """
    for rule in rules:
        for match in rule.pattern.finditer(text):
            minutes = duration_from_match(rule, match)
            if minutes and minutes > 0:
                logger.debug(f"Duration {minutes} min via rule '{rule.name}': {match.group(0)[:80]!r}")
                return minutes
    return None


def weight_total(
    text: str,
    rules: Iterable[PatternRule] = WEIGHT_RULES,
    accumulate: bool = True,
) -> Optional[float]:
    """
    Run the weight rules in order.

    With accumulate=True, every match of an accumulating rule is summed and the first
    rule with a positive sum wins. With accumulate=False, the first positive single
    match wins.
    """
    for rule in rules:
        if accumulate and rule.accumulate:
            total = sum(grams_from_match(m) for m in rule.pattern.finditer(text))
            if total > 0:
                logger.debug(f"Weight {total:.2f} g (summed) via rule '{rule.name}'")
                return round(total, 4)
            continue

        for match in rule.pattern.finditer(text):
            grams = grams_from_match(match)
            if grams > 0:
                logger.debug(f"Weight {grams:.2f} g via rule '{rule.name}'")
                return round(grams, 4)
    return None


def material_slots(text: str, rules: Iterable[MaterialRule] = MATERIAL_RULES) -> List[RawMaterial]:
    """
    Apply the per-slot rules; the first rule yielding at least one entry with
    positive weight wins. Slot ids fall back to the match position when unparsable.
    """
    for rule in rules:
        found: List[RawMaterial] = []
        for position, match in enumerate(rule.pattern.finditer(text)):
            grams = _to_float(match.group(4))
            if grams is None or grams <= 0:
                continue
            try:
                slot = int(match.group(1))
            except (TypeError, ValueError):
                slot = position
            found.append(RawMaterial(
                slot_index=slot,
                material_kind=match.group(2) or None,
                color_hex=match.group(3) or None,
                weight_grams=grams,
                source=MaterialSource.PATTERN,
            ))
        if found:
            logger.debug(f"{len(found)} material slot(s) via rule '{rule.name}'")
            return found
    return []


def slicer_identity(text: str, rules: Iterable[SlicerRule] = SLICER_RULES) -> Tuple[Optional[str], Optional[str]]:
    """Return (slicer_name, slicer_version) from header comments; either may be None."""
    for rule in rules:
        match = rule.pattern.search(text)
        if not match:
            continue
        if rule.fixed_name:
            return rule.fixed_name, match.group(1)
        name = re.sub(r"\s+", "", match.group(1))
        version = match.group(2) if match.lastindex and match.lastindex >= 2 else None
        return name, version
    return None, None


def split_list_value(raw: str, separators: str) -> List[str]:
    parts = re.split("[" + re.escape(separators) + "]", raw)
    return [p.strip().strip('"') for p in parts]


def header_list(text: str, rule: ListRule) -> List[str]:
    match = rule.pattern.search(text)
    if not match:
        return []
    return split_list_value(match.group(1), rule.separators)


def print_settings(text: str, keys: frozenset = PRINT_SETTING_KEYS) -> Dict[str, str]:
    """Whitelisted ``; key = value`` header comments; the first occurrence of a key wins."""
    settings: Dict[str, str] = {}
    for match in SETTING_LINE.finditer(text):
        key = match.group(1).lower()
        if key in keys and key not in settings:
            settings[key] = match.group(2)
    return settings
