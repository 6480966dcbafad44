# scanocr/models.py
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class PageStatus(str, Enum):
    OK = "ok"
    CONVERSION_FAILED = "conversion_failed"
    RECOGNITION_FAILED = "recognition_failed"


@dataclass
class Job:
    """One extraction request. Owns exactly one workspace while it runs."""
    document: bytes
    language: str
    filename: str = "document.pdf"
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def size_kb(self) -> float:
        return len(self.document) / 1024


@dataclass(frozen=True)
class OCROptions:
    """Options handed to the OCR engine for every page of a job."""
    language: str = "eng"
    engine_mode: int = 1
    segmentation_mode: int = 3
    timeout: Optional[float] = None

    def tesseract_config(self) -> str:
        return f"--oem {int(self.engine_mode)} --psm {int(self.segmentation_mode)}"


@dataclass(frozen=True)
class PageTask:
    """Represents a single page to be recognized."""
    page_number: int          # 1-indexed
    total_pages: int
    document_path: Path
    image_path: Path          # assigned up front, materialized by the rasterizer
    attempt: int = 1

    def retry(self) -> "PageTask":
        return PageTask(
            page_number=self.page_number,
            total_pages=self.total_pages,
            document_path=self.document_path,
            image_path=self.image_path,
            attempt=self.attempt + 1,
        )


@dataclass(frozen=True)
class PageResult:
    """Outcome of one page. `text` is set iff the page succeeded, `error` iff it failed."""
    page_number: int
    status: PageStatus
    text: Optional[str] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0
    attempts: int = 1

    def __post_init__(self):
        if self.page_number < 1:
            raise ValueError(f"page_number must be >= 1, got {self.page_number}")
        if self.status is PageStatus.OK:
            if self.text is None or self.error is not None:
                raise ValueError("An OK page result carries text and no error")
        elif self.text is not None or not self.error:
            raise ValueError("A failed page result carries an error and no text")

    @classmethod
    def ok(cls, page_number: int, text: str, duration_seconds: float = 0.0, attempts: int = 1) -> "PageResult":
        return cls(page_number, PageStatus.OK, text=text or "",
                   duration_seconds=duration_seconds, attempts=attempts)

    @classmethod
    def conversion_failed(cls, page_number: int, error: object, duration_seconds: float = 0.0) -> "PageResult":
        return cls(page_number, PageStatus.CONVERSION_FAILED, error=str(error) or "conversion failed",
                   duration_seconds=duration_seconds, attempts=0)

    @classmethod
    def recognition_failed(cls, page_number: int, error: object, duration_seconds: float = 0.0,
                           attempts: int = 1) -> "PageResult":
        return cls(page_number, PageStatus.RECOGNITION_FAILED, error=str(error) or "recognition failed",
                   duration_seconds=duration_seconds, attempts=attempts)

    @property
    def succeeded(self) -> bool:
        return self.status is PageStatus.OK

    @property
    def detail(self) -> Optional[str]:
        return self.error


@dataclass(frozen=True)
class ProgressEntry:
    """One line of the progress trail, recorded when a page resolves."""
    page: int
    total_pages: int
    status: PageStatus
    elapsed_seconds: float
    detail: Optional[str] = None

    @property
    def message(self) -> str:
        verb = "Completed" if self.status is PageStatus.OK else "Failed"
        return f"{verb} page {self.page}"

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "currentPage": self.page,
            "totalPages": self.total_pages,
            "status": self.message,
            "pageStatus": self.status.value,
            "elapsedSeconds": round(self.elapsed_seconds, 3),
        }
        if self.detail:
            d["detail"] = self.detail
        return d


@dataclass(frozen=True)
class ExtractionReport:
    """Final product of a job: page-ordered text plus per-page status and timing."""
    text: str
    page_count: int
    elapsed_seconds: float
    language: str
    pages: Tuple[PageResult, ...] = ()
    progress: Tuple[ProgressEntry, ...] = ()
    job_id: Optional[str] = None
    filename: Optional[str] = None
    file_size_kb: Optional[float] = None
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def succeeded_pages(self) -> int:
        return sum(1 for p in self.pages if p.succeeded)

    @property
    def failed_pages(self) -> List[int]:
        return [p.page_number for p in self.pages if not p.succeeded]

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_pages)

    def per_page_status(self) -> List[Dict[str, Any]]:
        out = []
        for p in self.pages:
            entry: Dict[str, Any] = {"page": p.page_number, "status": p.status.value}
            if p.error:
                entry["detail"] = p.error
            out.append(entry)
        return out

    def to_dict(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "jobId": self.job_id,
            "fileName": self.filename,
            "recognizedPages": f"{self.succeeded_pages}/{self.page_count}",
            "timings": dict(self.timings),
        }
        if self.file_size_kb is not None:
            metadata["fileSize"] = f"{self.file_size_kb:.2f} KB"
        return {
            "text": self.text,
            "pageCount": self.page_count,
            "elapsedSeconds": round(self.elapsed_seconds, 3),
            "languageUsed": self.language,
            "perPageStatus": self.per_page_status(),
            "progress": [e.to_dict() for e in self.progress],
            "metadata": metadata,
        }
