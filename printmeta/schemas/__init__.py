from .extraction import (
    CanonicalExtractionRecord,
    ContainerExtractionResponse,
    MakerTipResponse,
    MaterialEntry,
    MaterialSource,
    PartialExtractionFailure,
    PreviewImage,
    RawFieldSet,
    RawMaterial,
    ToolpathExtractionResponse,
    VisionMaterial,
    VisionResult,
)

__all__ = [
    "CanonicalExtractionRecord",
    "ContainerExtractionResponse",
    "MakerTipResponse",
    "MaterialEntry",
    "MaterialSource",
    "PartialExtractionFailure",
    "PreviewImage",
    "RawFieldSet",
    "RawMaterial",
    "ToolpathExtractionResponse",
    "VisionMaterial",
    "VisionResult",
]
