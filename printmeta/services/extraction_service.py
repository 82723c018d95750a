import asyncio
import logging
from typing import Optional, Union

from printmeta.schemas.extraction import CanonicalExtractionRecord, PartialExtractionFailure
from printmeta.services.logic.container_resolver import ContainerResolver
from printmeta.services.logic.normalizer import Normalizer
from printmeta.services.logic.toolpath_scanner import ToolpathScanner

logger = logging.getLogger("ExtractionService")


class ExtractionService:
    """
    Entry point of the extraction engine: raw bytes + file name in, canonical record out.
    Follows the "Async Iron Law": zip and regex work is offloaded to a thread.
    """

    def __init__(
        self,
        resolver: Optional[ContainerResolver] = None,
        scanner: Optional[ToolpathScanner] = None,
        normalizer: Optional[Normalizer] = None,
    ):
        self.resolver = resolver or ContainerResolver()
        self.scanner = scanner or ToolpathScanner()
        self.normalizer = normalizer or Normalizer()

    # --- Sync Core ---

    def extract_container(self, data: Optional[bytes], filename: Optional[str]) -> CanonicalExtractionRecord:
        raw = self.resolver.resolve(data, filename)
        return self.normalizer.normalize(raw, filename)

    def extract_toolpath(
        self, data: Optional[bytes], filename: Optional[str]
    ) -> Union[CanonicalExtractionRecord, PartialExtractionFailure]:
        raw = self.scanner.scan_bytes(data, filename)
        if isinstance(raw, PartialExtractionFailure):
            logger.info(f"Toolpath {filename} yielded no usable metadata: {raw.errors}")
            return raw
        return self.normalizer.normalize(raw, filename)

    # --- Async Wrappers ---

    async def extract_container_async(self, data: Optional[bytes], filename: Optional[str]) -> CanonicalExtractionRecord:
        return await asyncio.to_thread(self.extract_container, data, filename)

    async def extract_toolpath_async(
        self, data: Optional[bytes], filename: Optional[str]
    ) -> Union[CanonicalExtractionRecord, PartialExtractionFailure]:
        return await asyncio.to_thread(self.extract_toolpath, data, filename)


extraction_service = ExtractionService()
