import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from printmeta.core.config import settings
from printmeta.core.exceptions import ExtractionValidationError, FileTooLargeError, MissingFileError
from printmeta.routers.extraction import read_upload
from printmeta.schemas.extraction import ContainerExtractionResponse
from printmeta.services.logic.normalizer import Normalizer
from printmeta.services.vision_client import VisionFallbackClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vision", tags=["Vision"])

_normalizer = Normalizer()


def get_vision_client() -> VisionFallbackClient:
    return VisionFallbackClient()


@router.post("/extract", response_model=ContainerExtractionResponse)
async def extract_from_screenshot(
    file: Optional[UploadFile] = File(None),
    client: VisionFallbackClient = Depends(get_vision_client),
):
    """
    Fallback for image-only inputs (slicer screenshots).
    The external classifier answers in hours; the result is normalized like any other source.
    """
    data, filename = await read_upload(file)
    if data is None:
        raise MissingFileError()

    mime_type = file.content_type or "image/png"
    if not mime_type.startswith("image/"):
        raise ExtractionValidationError("File must be an image (PNG/JPG).")
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise FileTooLargeError(len(data), settings.MAX_UPLOAD_BYTES)

    result = await client.classify(data, mime_type)
    if result.notes:
        logger.info(f"Vision notes for {filename}: {result.notes}")

    record = _normalizer.normalize_vision(result, filename)
    return record.to_container_response()
