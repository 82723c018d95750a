from fastapi import HTTPException, status


class PrintMetaException(HTTPException):
    """Base exception for PrintMeta errors surfaced to HTTP callers."""
    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)


class ExtractionValidationError(PrintMetaException):
    """
    Raised before extraction starts when the upload itself is unacceptable.
    No archive entry is read and no text is scanned once this is raised.
    """
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class MissingFileError(ExtractionValidationError):
    def __init__(self):
        super().__init__("No file supplied.")


class WrongExtensionError(ExtractionValidationError):
    def __init__(self, expected_extension: str):
        self.expected_extension = expected_extension
        super().__init__(f"File must have the {expected_extension} extension.")


class FileTooLargeError(ExtractionValidationError):
    def __init__(self, size_bytes: int, max_bytes: int):
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        super().__init__(
            f"File too large: {size_bytes} bytes (maximum {max_bytes // (1024 * 1024)}MB)."
        )


class InvalidArchiveError(ExtractionValidationError):
    """The container could not be opened as an archive at all."""
    def __init__(self, filename: str, reason: str):
        super().__init__(f"Could not open {filename} as a project archive: {reason}")


class ExternalServiceError(PrintMetaException):
    """An external collaborator (vision model, tip generator) failed or is unconfigured."""
    def __init__(self, detail: str, status_code: int = status.HTTP_502_BAD_GATEWAY):
        super().__init__(status_code=status_code, detail=detail)


class EntryDecodeError(Exception):
    """
    One archive entry could not be read or decoded as text.
    NOT an HTTP exception - caught inside the entry loop, logged and skipped.
    """
    def __init__(self, entry_name: str, reason: str):
        self.entry_name = entry_name
        self.message = f"{entry_name}: {reason}"
        super().__init__(self.message)


class MalformedStructuredData(Exception):
    """
    A descriptor entry is not valid structured data (JSON/XML).
    Pattern-based extraction still applies to that entry's raw text.
    """
    def __init__(self, entry_name: str, reason: str):
        self.entry_name = entry_name
        self.message = f"{entry_name}: {reason}"
        super().__init__(self.message)
