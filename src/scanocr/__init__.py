# scanocr/__init__.py
"""Page-parallel OCR for scanned PDF documents."""

from . import logger  # noqa: F401, registers the PROGRESS level
from .aggregator import PageResultCollector, aggregate, format_page
from .config import ExtractionConfig
from .exceptions import (
    ExtractionCancelledError,
    ExtractionTimeoutError,
    InputError,
    MalformedDocumentError,
    PageConversionError,
    RecognitionError,
    ScanOCRError,
    WorkspaceCreationError,
    WorkspaceError,
)
from .models import ExtractionReport, Job, OCROptions, PageResult, PageStatus, PageTask, ProgressEntry
from .ocr_pool import OCRWorkerPool, TaskState
from .pipeline import ExtractionRunner, extract_document, extract_file
from .workspace import Workspace, WorkspaceManager

__version__ = "1.0.0"

__all__ = [
    "ExtractionConfig",
    "ExtractionReport",
    "ExtractionRunner",
    "Job",
    "OCROptions",
    "OCRWorkerPool",
    "PageResult",
    "PageResultCollector",
    "PageStatus",
    "PageTask",
    "ProgressEntry",
    "TaskState",
    "Workspace",
    "WorkspaceManager",
    "aggregate",
    "extract_document",
    "extract_file",
    "format_page",
    "ScanOCRError",
    "InputError",
    "MalformedDocumentError",
    "WorkspaceError",
    "WorkspaceCreationError",
    "PageConversionError",
    "RecognitionError",
    "ExtractionTimeoutError",
    "ExtractionCancelledError",
]
