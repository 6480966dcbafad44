# scanocr/exceptions.py
from typing import Optional


class ScanOCRError(Exception):
    """Base exception for the scanocr library."""
    pass


class InputError(ScanOCRError):
    """Raised when the submitted document or language is unusable. No workspace is touched."""
    pass


class MalformedDocumentError(InputError):
    """Raised when the bytes cannot be opened as a PDF or the page count is unknown."""
    pass


class WorkspaceError(ScanOCRError):
    """Raised when the scratch area for a job cannot be managed."""
    pass


class WorkspaceCreationError(WorkspaceError):
    pass


class PageError(ScanOCRError):
    """A failure confined to a single page."""

    def __init__(self, page_number: int, cause: object):
        self.page_number = page_number
        self.cause = cause
        super().__init__(f"Page {page_number}: {cause}")

    @property
    def detail(self) -> str:
        return str(self.cause)


class PageConversionError(PageError):
    """Raised when one page cannot be rasterized."""
    pass


class RecognitionError(PageError):
    """Raised when OCR fails for one page."""
    pass


class ExtractionTimeoutError(ScanOCRError, TimeoutError):
    """Raised when a job exceeds its wall-clock deadline."""

    def __init__(self, timeout_seconds: float, completed_pages: int = 0, total_pages: Optional[int] = None):
        self.timeout_seconds = timeout_seconds
        self.completed_pages = completed_pages
        self.total_pages = total_pages
        progress = f", {completed_pages}/{total_pages} pages done" if total_pages is not None else ""
        super().__init__(f"Extraction exceeded the {timeout_seconds:g}s deadline{progress}")


class ExtractionCancelledError(ScanOCRError):
    """Raised when a running job is cancelled before all pages resolved."""
    pass
