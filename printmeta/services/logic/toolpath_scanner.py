"""
Toolpath Scanner - extracts print metadata from a single G-code document.

Only the slicer's comment annotations are read. No motion is simulated.
"""
import logging
from typing import List, Optional, Union

from printmeta.core.config import settings
from printmeta.core.exceptions import FileTooLargeError, MissingFileError, WrongExtensionError
from printmeta.schemas.extraction import MaterialSource, PartialExtractionFailure, RawFieldSet, RawMaterial
from printmeta.services.logic import pattern_library

logger = logging.getLogger("ToolpathScanner")

DURATION_NOT_FOUND = "estimated duration not found"
WEIGHT_NOT_FOUND = "total weight not found"


class ToolpathScanner:
    """
    Scans one toolpath document.

    Duration and weight both use "first positive match wins"; toolpath slicers emit
    one aggregate weight line, so matches are not summed here.

    This differs on purpose from ContainerResolver, which sums every weight match of
    an entry: three "filament used: 10g" lines give 10 here and 30 in an archive.
    """

    def __init__(self, toolpath_extension: Optional[str] = None, max_bytes: Optional[int] = None):
        self.toolpath_extension = (toolpath_extension or settings.TOOLPATH_EXTENSION).lower()
        self.max_bytes = max_bytes if max_bytes is not None else settings.MAX_UPLOAD_BYTES

    def validate(self, data: Optional[bytes], filename: Optional[str]) -> None:
        if data is None or not filename:
            raise MissingFileError()
        if not filename.lower().endswith(self.toolpath_extension):
            raise WrongExtensionError(self.toolpath_extension)
        if len(data) > self.max_bytes:
            raise FileTooLargeError(len(data), self.max_bytes)

    def scan_bytes(self, data: Optional[bytes], filename: Optional[str]) -> Union[RawFieldSet, PartialExtractionFailure]:
        self.validate(data, filename)
        return self.scan(data.decode("utf-8", errors="replace"))

    def scan(self, text: str) -> Union[RawFieldSet, PartialExtractionFailure]:
        duration = pattern_library.first_duration(text)
        weight = pattern_library.weight_total(text, accumulate=False)

        if duration is None and weight is None:
            logger.info("No duration or weight annotations found in toolpath")
            return PartialExtractionFailure(errors=[DURATION_NOT_FOUND, WEIGHT_NOT_FOUND])

        slicer_name, slicer_version = pattern_library.slicer_identity(text)
        fields = RawFieldSet(
            duration_minutes=duration,
            weight_grams=weight,
            materials=self._materials(text),
            slicer_name=slicer_name,
            slicer_version=slicer_version,
            print_settings=pattern_library.print_settings(text),
        )
        logger.info(
            f"Scanned toolpath: slicer={slicer_name} {slicer_version or ''}, "
            f"duration={duration} min, weight={weight} g, {len(fields.materials)} material(s)"
        )
        return fields

    @staticmethod
    def _materials(text: str) -> List[RawMaterial]:
        """Zip the per-extruder header lists; the list position is the slot."""
        rules = pattern_library.TOOLPATH_LIST_RULES
        weights = pattern_library.header_list(text, rules["weight_grams"])
        kinds = pattern_library.header_list(text, rules["material_kind"])
        colors = pattern_library.header_list(text, rules["color"])

        materials: List[RawMaterial] = []
        for slot, raw_weight in enumerate(weights):
            try:
                grams = float(raw_weight)
            except ValueError:
                continue
            if grams <= 0:
                continue
            materials.append(RawMaterial(
                slot_index=slot,
                material_kind=kinds[slot] if slot < len(kinds) and kinds[slot] else None,
                color_hex=colors[slot] if slot < len(colors) and colors[slot] else None,
                weight_grams=grams,
                source=MaterialSource.PATTERN,
            ))
        return materials
