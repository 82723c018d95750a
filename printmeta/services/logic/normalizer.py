"""
Normalizer - turns one RawFieldSet (from any extraction path) into a
CanonicalExtractionRecord that satisfies the record invariants:

- materials have unique slot indices and positive weights
- one generic material is synthesized when only a total weight is known
- numeric fields are never negative (negative parse artifacts are dropped)
- the project name falls back to the uploaded file's base name
"""
import logging
from pathlib import PurePath
from typing import List, Optional, Set

from printmeta.core.config import settings
from printmeta.schemas.extraction import (
    CanonicalExtractionRecord,
    MaterialEntry,
    RawFieldSet,
    RawMaterial,
    VisionResult,
)
from printmeta.services.logic.color_namer import ColorNamer
from printmeta.utils.color_math import normalize_hex

logger = logging.getLogger("Normalizer")

DEFAULT_MATERIAL_KIND = "Unknown"
SYNTHESIZED_MATERIAL_KIND = "PLA"


def display_stem(display_name: str) -> str:
    """'uploads\\Benchy.3mf' -> 'Benchy'. Handles both path separators."""
    base = display_name.replace("\\", "/").rsplit("/", 1)[-1]
    return PurePath(base).stem or base


class Normalizer:
    def __init__(
        self,
        unknown_color_label: Optional[str] = None,
        fallback_color_hex: Optional[str] = None,
        color_namer: Optional[ColorNamer] = None,
    ):
        self.unknown_color_label = unknown_color_label or settings.UNKNOWN_COLOR_LABEL
        self.fallback_color_hex = normalize_hex(fallback_color_hex or settings.FALLBACK_COLOR_HEX) or "#CCCCCC"
        self.color_namer = color_namer or ColorNamer(max_delta_e=settings.COLOR_NAME_MAX_DELTA_E)

    def normalize(self, raw: RawFieldSet, display_name: str) -> CanonicalExtractionRecord:
        duration = self._non_negative(raw.duration_minutes, "estimated_duration_minutes")
        weight = self._non_negative(raw.weight_grams, "total_material_weight_grams")

        materials = self._materials(raw.materials)
        if not materials and weight is not None and weight > 0:
            materials = [self._synthesized(weight)]
            logger.debug(f"Synthesized generic material entry with {weight} g")

        name = (raw.name or "").strip() or display_stem(display_name)

        return CanonicalExtractionRecord(
            project_name=name,
            estimated_duration_minutes=int(duration) if duration is not None else None,
            total_material_weight_grams=weight,
            materials=materials,
            preview_image=raw.preview,
            source_trace=list(raw.source_trace),
            slicer_name=raw.slicer_name,
            slicer_version=raw.slicer_version,
            print_settings=dict(raw.print_settings),
        )

    def normalize_vision(self, result: VisionResult, display_name: str) -> CanonicalExtractionRecord:
        """The vision collaborator reports hours and uses 0 for 'not found'."""
        raw = RawFieldSet()
        if result.total_time_hours > 0:
            raw.duration_minutes = int(result.total_time_hours * 60 + 0.5) or None
        if result.total_weight_grams > 0:
            raw.weight_grams = result.total_weight_grams
        for position, material in enumerate(result.materials):
            raw.materials.append(RawMaterial(
                slot_index=position,
                material_kind=material.name,
                color_label=material.color,
                weight_grams=material.weight_grams,
            ))
        return self.normalize(raw, display_name)

    # --- Helpers ---

    @staticmethod
    def _non_negative(value, field_name: str):
        if value is None:
            return None
        if value < 0:
            logger.warning(f"Discarding negative {field_name}: {value}")
            return None
        return value

    def _materials(self, raw_materials: List[RawMaterial]) -> List[MaterialEntry]:
        entries: List[MaterialEntry] = []
        seen: Set[int] = set()
        for raw in raw_materials:
            if raw.weight_grams is None or raw.weight_grams <= 0:
                continue
            if raw.slot_index in seen:
                continue
            seen.add(raw.slot_index)
            entries.append(self._material(raw))
        return entries

    def _material(self, raw: RawMaterial) -> MaterialEntry:
        color_hex = normalize_hex(raw.color_hex) or normalize_hex(raw.color_label)
        label = (raw.color_label or "").strip()

        if not label or normalize_hex(label) is not None:
            # No human name given: derive one from the hex code.
            label = self.color_namer.label_for(color_hex) if color_hex else None
            if label is None:
                label = (raw.color_hex or "").strip() or self.unknown_color_label

        return MaterialEntry(
            slot_index=raw.slot_index,
            material_kind=(raw.material_kind or "").strip() or DEFAULT_MATERIAL_KIND,
            color_label=label,
            color_hex=color_hex or self.fallback_color_hex,
            weight_grams=raw.weight_grams,
        )

    def _synthesized(self, weight: float) -> MaterialEntry:
        return MaterialEntry(
            slot_index=0,
            material_kind=SYNTHESIZED_MATERIAL_KIND,
            color_label=self.unknown_color_label,
            color_hex=self.fallback_color_hex,
            weight_grams=weight,
        )
