import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from printmeta.core.config import settings
from printmeta.core.exceptions import FileTooLargeError, PrintMetaException
from printmeta.schemas.extraction import (
    ContainerExtractionResponse,
    PartialExtractionFailure,
    ToolpathExtractionResponse,
)
from printmeta.services.extraction_service import ExtractionService, extraction_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Extraction"])


def get_extraction_service() -> ExtractionService:
    return extraction_service


async def read_upload(file: Optional[UploadFile]) -> Tuple[Optional[bytes], Optional[str]]:
    """
    (bytes, filename) of a multipart upload; (None, None) when nothing was sent.
    An upload whose declared size is already over the ceiling is refused without reading it.
    """
    if file is None or not file.filename:
        return None, None
    if file.size is not None and file.size > settings.MAX_UPLOAD_BYTES:
        raise FileTooLargeError(file.size, settings.MAX_UPLOAD_BYTES)
    return await file.read(), file.filename


@router.post("/3mf/extract", response_model=ContainerExtractionResponse)
async def extract_container(
    file: Optional[UploadFile] = File(None),
    service: ExtractionService = Depends(get_extraction_service),
):
    """
    Extract print time, weight, materials and thumbnail from a .3mf project.
    debug.files lists every archive entry that was inspected.
    """
    data, filename = await read_upload(file)
    try:
        record = await service.extract_container_async(data, filename)
    except PrintMetaException:
        raise
    except Exception as e:
        logger.error(f"3MF extraction failed for {filename}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail={"error": "Failed to process 3MF file", "details": str(e)})

    return record.to_container_response()


@router.post("/gcode/extract", response_model=ToolpathExtractionResponse)
async def extract_toolpath(
    file: Optional[UploadFile] = File(None),
    service: ExtractionService = Depends(get_extraction_service),
):
    """Extract print time, weight, materials, slicer and settings from a .gcode file."""
    data, filename = await read_upload(file)
    try:
        result = await service.extract_toolpath_async(data, filename)
    except PrintMetaException:
        raise
    except Exception as e:
        logger.error(f"G-code extraction failed for {filename}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail={"error": "Failed to process G-code file", "details": str(e)})

    if isinstance(result, PartialExtractionFailure):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Could not extract print metadata from the G-code file",
                "errors": result.errors,
            },
        )
    return result.to_toolpath_response()
