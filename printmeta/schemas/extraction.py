"""
Extraction Schemas.

Two layers of models live here:
- Raw models (RawFieldSet, RawMaterial) produced by the Toolpath Scanner and the
  Container Resolver. They carry whatever the sources said, unrepaired.
- Canonical models (CanonicalExtractionRecord, MaterialEntry) produced by the
  Normalizer, plus the response DTOs the routers return.
"""
import base64
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MaterialSource(str, Enum):
    """Where a material entry was discovered. STRUCTURED outranks PATTERN for the same slot."""
    PATTERN = "PATTERN"
    STRUCTURED = "STRUCTURED"


class PreviewImage(BaseModel):
    model_config = ConfigDict(ser_json_bytes="base64")

    mime_type: str
    data: bytes
    entry_name: Optional[str] = None

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class RawMaterial(BaseModel):
    slot_index: int
    material_kind: Optional[str] = None
    color_label: Optional[str] = None
    color_hex: Optional[str] = None
    weight_grams: float
    source: MaterialSource = MaterialSource.PATTERN


class RawFieldSet(BaseModel):
    """Unreconciled output of one extraction path (or of one archive entry)."""
    name: Optional[str] = None
    duration_minutes: Optional[int] = None
    weight_grams: Optional[float] = None
    materials: List[RawMaterial] = Field(default_factory=list)
    preview: Optional[PreviewImage] = None
    source_trace: List[str] = Field(default_factory=list)
    slicer_name: Optional[str] = None
    slicer_version: Optional[str] = None
    print_settings: Dict[str, str] = Field(default_factory=dict)
    decoded_entries: int = 0


class PartialExtractionFailure(BaseModel):
    """Structured failure: the document was read but nothing useful could be determined."""
    success: bool = False
    errors: List[str] = Field(default_factory=list)


# --- Canonical Record ---

class MaterialEntry(BaseModel):
    slot_index: int
    material_kind: str = "Unknown"
    color_label: str = "Unknown"
    color_hex: str = "#CCCCCC"
    weight_grams: float = Field(gt=0)

    def to_response(self) -> "MaterialResponse":
        return MaterialResponse(
            slot_index=self.slot_index,
            material_type=self.material_kind,
            color_name=self.color_label,
            color_hex=self.color_hex,
            weight_grams=self.weight_grams,
        )


class CanonicalExtractionRecord(BaseModel):
    """The single output type of every extraction path."""
    project_name: str
    estimated_duration_minutes: Optional[int] = None
    total_material_weight_grams: Optional[float] = None
    materials: List[MaterialEntry] = Field(default_factory=list)
    preview_image: Optional[PreviewImage] = None
    source_trace: List[str] = Field(default_factory=list)
    slicer_name: Optional[str] = None
    slicer_version: Optional[str] = None
    print_settings: Dict[str, str] = Field(default_factory=dict)

    def to_container_response(self) -> "ContainerExtractionResponse":
        return ContainerExtractionResponse(
            name=self.project_name,
            estimated_time_minutes=self.estimated_duration_minutes,
            total_weight_grams=self.total_material_weight_grams,
            materials=[m.to_response() for m in self.materials],
            thumbnail_base64=self.preview_image.to_data_uri() if self.preview_image else None,
            debug=DebugInfo(files=list(self.source_trace)),
        )

    def to_toolpath_response(self) -> "ToolpathExtractionResponse":
        return ToolpathExtractionResponse(
            name=self.project_name,
            estimated_time_minutes=self.estimated_duration_minutes,
            total_weight_grams=self.total_material_weight_grams,
            materials=[m.to_response() for m in self.materials],
            print_settings=dict(self.print_settings),
            slicer_name=self.slicer_name,
            slicer_version=self.slicer_version,
        )


# --- Response DTOs ---

class MaterialResponse(BaseModel):
    slot_index: int
    material_type: str
    color_name: str
    color_hex: str
    weight_grams: float


class DebugInfo(BaseModel):
    files: List[str] = Field(default_factory=list)


class ContainerExtractionResponse(BaseModel):
    name: str
    estimated_time_minutes: Optional[int] = None
    total_weight_grams: Optional[float] = None
    materials: List[MaterialResponse] = Field(default_factory=list)
    thumbnail_base64: Optional[str] = None
    debug: DebugInfo = Field(default_factory=DebugInfo)


class ToolpathExtractionResponse(BaseModel):
    success: bool = True
    name: str
    estimated_time_minutes: Optional[int] = None
    total_weight_grams: Optional[float] = None
    materials: List[MaterialResponse] = Field(default_factory=list)
    print_settings: Dict[str, str] = Field(default_factory=dict)
    slicer_name: Optional[str] = None
    slicer_version: Optional[str] = None


# --- External Collaborator Shapes ---

class VisionMaterial(BaseModel):
    name: str = "PLA"
    color: str = "Unknown"
    weight_grams: float = 0.0


class VisionResult(BaseModel):
    """Answer shape of the image-based fallback classifier."""
    total_time_hours: float = 0.0
    total_weight_grams: float = 0.0
    materials: List[VisionMaterial] = Field(default_factory=list)
    notes: str = ""


class MakerTipResponse(BaseModel):
    tip: str
    cached: bool = False
    fallback: bool = False
