"""
Container Resolver - extracts print metadata from a 3MF project archive.

A 3MF file is a zip bundling the model (3D/3dmodel.model) with slicer sidecar files
(Metadata/slice_info.config, Metadata/plate_*.json, project.json, thumbnails ...).
No single entry is authoritative, so every entry is classified by name into roles
and each relevant entry contributes a partial field set:

1. Pattern scan of the entry's text (Pattern Library).
2. Structured decode, if the entry is a project descriptor (JSON) or a slice report (XML).

Within an entry the structured decode beats the pattern scan. Across the archive the
first entry to set a field wins. One unreadable entry never aborts the run.
"""
import io
import json
import logging
import math
import xml.etree.ElementTree as ET
import zipfile
import zlib
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Dict, FrozenSet, Optional

from printmeta.core.config import settings
from printmeta.core.exceptions import (
    EntryDecodeError,
    FileTooLargeError,
    InvalidArchiveError,
    MalformedStructuredData,
    MissingFileError,
    WrongExtensionError,
)
from printmeta.schemas.extraction import MaterialSource, PreviewImage, RawFieldSet, RawMaterial
from printmeta.services.logic import pattern_library

logger = logging.getLogger("ContainerResolver")


class EntryRole(str, Enum):
    PREVIEW_IMAGE = "PREVIEW_IMAGE"
    RELEVANT_METADATA = "RELEVANT_METADATA"
    PROJECT_DESCRIPTOR = "PROJECT_DESCRIPTOR"
    SLICE_REPORT = "SLICE_REPORT"
    MODEL_DEFINITION = "MODEL_DEFINITION"


PREVIEW_EXTENSIONS = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}
METADATA_NAME_MARKERS = ("metadata", "config", "plate_", "slice_info", "3dmodel.model")
METADATA_EXTENSIONS = {".json", ".xml", ".gcode"}
DESCRIPTOR_BASENAMES = {"project.json", "3dbenchy.json"}
SLICE_REPORT_BASENAME = "slice_info.config"
MODEL_DEFINITION_SUFFIX = "3dmodel.model"

# Failures of a single entry read: corrupt member, unsupported compression, encryption, bad text.
_ENTRY_READ_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    NotImplementedError,
    RuntimeError,
    OSError,
    EOFError,
    UnicodeDecodeError,
)


def classify_entry(name: str, container_extension: Optional[str] = None) -> FrozenSet[EntryRole]:
    """
    Roles of one archive entry, judged on its lower-cased name only.
    Roles are independent; an empty set means the entry is irrelevant.
    """
    container_extension = (container_extension or settings.CONTAINER_EXTENSION).lower()
    lowered = name.lower()
    basename = lowered.rsplit("/", 1)[-1]
    extension = PurePosixPath(basename).suffix
    roles = set()

    is_preview_name = (
        "thumbnail" in lowered
        or "cover" in lowered
        or ("picture" in lowered and "profile" not in lowered)
    )
    if is_preview_name and extension in PREVIEW_EXTENSIONS:
        roles.add(EntryRole.PREVIEW_IMAGE)

    if any(marker in lowered for marker in METADATA_NAME_MARKERS) or extension in METADATA_EXTENSIONS \
            or extension == container_extension:
        roles.add(EntryRole.RELEVANT_METADATA)

    if basename in DESCRIPTOR_BASENAMES or basename.endswith("project.json"):
        roles.add(EntryRole.PROJECT_DESCRIPTOR)
    if basename == SLICE_REPORT_BASENAME:
        roles.add(EntryRole.SLICE_REPORT)
    if lowered.endswith(MODEL_DEFINITION_SUFFIX):
        roles.add(EntryRole.MODEL_DEFINITION)

    return frozenset(roles)


# --- Structured Decoders ---

def _positive_number(value: Any) -> Optional[float]:
    """Numbers in slicer descriptors arrive as int, float or numeric strings."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number if number > 0 else None


def _text(value: Any) -> Optional[str]:
    """Descriptor labels are usually strings, but numeric codes (e.g. "color": 255) also appear."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _seconds_to_minutes(seconds: Optional[float]) -> Optional[int]:
    if seconds is None:
        return None
    minutes = int(seconds / 60 + 0.5)
    return minutes or None


def _slot_from(raw_id: Any, position: int) -> int:
    try:
        return int(raw_id)
    except (TypeError, ValueError, OverflowError):
        return position


def decode_project_descriptor(entry_name: str, text: str) -> RawFieldSet:
    """
    Schema-aware decode of a project descriptor JSON.

    Reads name, print_time / estimated_time (seconds), filament_used_g / total_weight
    and the filaments[] list. Raises MalformedStructuredData if the text is not a JSON object.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedStructuredData(entry_name, f"invalid JSON ({e.msg} at line {e.lineno})") from e
    if not isinstance(data, dict):
        raise MalformedStructuredData(entry_name, f"expected a JSON object, got {type(data).__name__}")

    fields = RawFieldSet()

    name = data.get("name")
    if isinstance(name, str) and name.strip():
        fields.name = name.strip()

    fields.duration_minutes = _seconds_to_minutes(
        _positive_number(data.get("print_time")) or _positive_number(data.get("estimated_time"))
    )
    fields.weight_grams = _positive_number(data.get("filament_used_g")) or _positive_number(data.get("total_weight"))

    filaments = data.get("filaments")
    if isinstance(filaments, list):
        for position, filament in enumerate(filaments):
            if not isinstance(filament, dict):
                continue
            grams = _positive_number(filament.get("used_g"))
            if grams is None:
                continue
            fields.materials.append(RawMaterial(
                slot_index=_slot_from(filament.get("id"), position),
                material_kind=_text(filament.get("type")),
                color_label=_text(filament.get("color")),
                color_hex=_text(filament.get("color_hex")),
                weight_grams=grams,
                source=MaterialSource.STRUCTURED,
            ))

    return fields


def decode_slice_report(entry_name: str, text: str) -> RawFieldSet:
    """
    Schema-aware decode of Bambu Studio's Metadata/slice_info.config.

    <config>
      <plate>
        <metadata key="prediction" value="5400"/>   seconds
        <metadata key="weight" value="12.34"/>      grams
        <filament id="1" type="PLA" color="#FFFFFF" used_m="4.1" used_g="12.34"/>
      </plate>
    </config>

    Multi-plate projects are summed across plates; filament usage is summed per id.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise MalformedStructuredData(entry_name, f"invalid XML ({e})") from e

    plates = root.findall("plate") or [root]

    total_seconds = 0.0
    total_grams = 0.0
    slots: Dict[int, RawMaterial] = {}

    for plate in plates:
        for meta in plate.findall("metadata"):
            key = meta.get("key")
            if key == "prediction":
                total_seconds += _positive_number(meta.get("value")) or 0.0
            elif key == "weight":
                total_grams += _positive_number(meta.get("value")) or 0.0

        for position, filament in enumerate(plate.findall("filament")):
            grams = _positive_number(filament.get("used_g"))
            if grams is None:
                continue
            slot = _slot_from(filament.get("id"), position)
            if slot in slots:
                slots[slot].weight_grams = round(slots[slot].weight_grams + grams, 4)
                continue
            slots[slot] = RawMaterial(
                slot_index=slot,
                material_kind=_text(filament.get("type")),
                color_hex=_text(filament.get("color")),
                weight_grams=grams,
                source=MaterialSource.STRUCTURED,
            )

    return RawFieldSet(
        duration_minutes=_seconds_to_minutes(total_seconds or None),
        weight_grams=round(total_grams, 4) if total_grams > 0 else None,
        materials=list(slots.values()),
    )


def merge_entry_fields(pattern: RawFieldSet, structured: Optional[RawFieldSet]) -> RawFieldSet:
    """Field-level merge for one entry: a value from the structured decode beats the pattern scan."""
    if structured is None:
        return pattern
    return RawFieldSet(
        name=structured.name or pattern.name,
        duration_minutes=structured.duration_minutes or pattern.duration_minutes,
        weight_grams=structured.weight_grams or pattern.weight_grams,
        # Slot precedence (structured over pattern) is applied when folding into the run.
        materials=pattern.materials + structured.materials,
    )


class ContainerResolver:
    """
    Resolves one 3MF archive into a RawFieldSet.

    Usage:
        resolver = ContainerResolver()
        raw = resolver.resolve(data, "benchy.3mf")

    Stateless between calls; safe to share across threads.
    """

    def __init__(self, container_extension: Optional[str] = None, max_bytes: Optional[int] = None):
        self.container_extension = (container_extension or settings.CONTAINER_EXTENSION).lower()
        self.max_bytes = max_bytes if max_bytes is not None else settings.MAX_UPLOAD_BYTES

    def validate(self, data: Optional[bytes], filename: Optional[str]) -> None:
        """Admission checks. Nothing is opened or decoded before these pass."""
        if data is None or not filename:
            raise MissingFileError()
        if not filename.lower().endswith(self.container_extension):
            raise WrongExtensionError(self.container_extension)
        if len(data) > self.max_bytes:
            raise FileTooLargeError(len(data), self.max_bytes)

    def resolve(self, data: Optional[bytes], filename: Optional[str]) -> RawFieldSet:
        self.validate(data, filename)

        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, zlib.error, ValueError, OSError) as e:
            raise InvalidArchiveError(filename, str(e)) from e

        run = RawFieldSet()
        slots: Dict[int, RawMaterial] = {}

        with archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                if info.filename not in run.source_trace:
                    run.source_trace.append(info.filename)

                roles = classify_entry(info.filename, self.container_extension)

                if EntryRole.PREVIEW_IMAGE in roles and run.preview is None:
                    try:
                        run.preview = self._read_preview(archive, info)
                    except EntryDecodeError as e:
                        logger.warning(f"Skipping unreadable preview: {e.message}")

                if EntryRole.RELEVANT_METADATA not in roles:
                    continue

                try:
                    text = self._decode_entry(archive, info)
                except EntryDecodeError as e:
                    logger.debug(f"Skipping entry: {e.message}")
                    continue
                run.decoded_entries += 1

                try:
                    entry_fields = self._resolve_entry(info.filename, text, roles, run)
                except Exception as e:
                    logger.warning(f"Pattern scan failed for {info.filename}: {e}", exc_info=True)
                    continue

                self._fold(run, entry_fields, slots, info.filename)

        run.materials = list(slots.values())
        logger.info(
            f"Resolved {filename}: {len(run.source_trace)} entries, {run.decoded_entries} decoded, "
            f"duration={run.duration_minutes} min, weight={run.weight_grams} g, "
            f"{len(run.materials)} material(s), preview={'yes' if run.preview else 'no'}"
        )
        return run

    # --- Per-Entry Work ---

    def _decode_entry(self, archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> str:
        try:
            return archive.read(info).decode("utf-8-sig")
        except _ENTRY_READ_ERRORS as e:
            raise EntryDecodeError(info.filename, str(e)) from e

    def _read_preview(self, archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> PreviewImage:
        extension = PurePosixPath(info.filename.lower()).suffix
        try:
            payload = archive.read(info)
        except _ENTRY_READ_ERRORS as e:
            raise EntryDecodeError(info.filename, str(e)) from e
        logger.debug(f"Preview image: {info.filename} ({len(payload)} bytes)")
        return PreviewImage(mime_type=PREVIEW_EXTENSIONS[extension], data=payload, entry_name=info.filename)

    def _resolve_entry(self, entry_name: str, text: str, roles: FrozenSet[EntryRole], run: RawFieldSet) -> RawFieldSet:
        # Families already accepted earlier in the run are not scanned again.
        pattern = RawFieldSet(
            duration_minutes=pattern_library.first_duration(text) if run.duration_minutes is None else None,
            weight_grams=pattern_library.weight_total(text, accumulate=True) if run.weight_grams is None else None,
            materials=pattern_library.material_slots(text),
        )

        structured = None
        try:
            if EntryRole.PROJECT_DESCRIPTOR in roles:
                structured = decode_project_descriptor(entry_name, text)
            elif EntryRole.SLICE_REPORT in roles:
                structured = decode_slice_report(entry_name, text)
        except MalformedStructuredData as e:
            logger.warning(f"Malformed structured data, using pattern scan only: {e.message}")
        except (ValueError, ArithmeticError) as e:
            malformed = MalformedStructuredData(entry_name, f"unusable field values ({e})")
            logger.warning(f"Malformed structured data, using pattern scan only: {malformed.message}")

        return merge_entry_fields(pattern, structured)

    def _fold(self, run: RawFieldSet, entry: RawFieldSet, slots: Dict[int, RawMaterial], entry_name: str) -> None:
        """First writer wins per field; structured material replaces a pattern material in its slot."""
        for field in ("name", "duration_minutes", "weight_grams"):
            value = getattr(entry, field)
            if value and getattr(run, field) is None:
                setattr(run, field, value)
                logger.debug(f"{field}={value!r} accepted from {entry_name}")

        for material in entry.materials:
            if material.weight_grams <= 0:
                continue
            existing = slots.get(material.slot_index)
            if existing is None:
                slots[material.slot_index] = material
            elif existing.source == MaterialSource.PATTERN and material.source == MaterialSource.STRUCTURED:
                slots[material.slot_index] = material
                logger.debug(f"Slot {material.slot_index} replaced by structured data from {entry_name}")
