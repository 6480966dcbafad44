# src/scanocr/aggregator.py
from __future__ import annotations

import threading
import time
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

from .models import ExtractionReport, PageResult, PageStatus, ProgressEntry

PAGE_SEPARATOR = "\n\n"


def page_header(page_number: int) -> str:
    return f"--- Page {page_number} ---"


def format_page(result: PageResult) -> str:
    """Render one page section; failed pages keep their slot with a bracketed marker."""
    if result.status is PageStatus.OK:
        body = (result.text or "").strip()
    elif result.status is PageStatus.CONVERSION_FAILED:
        body = f"[Conversion Error] {result.error}" if result.error else "[Conversion Error]"
    else:
        body = f"[Error: {result.error}]"
    return f"{page_header(result.page_number)}\n{body}" if body else page_header(result.page_number)


class PageResultCollector:
    """
    One write-once slot per page number, safe to fill from several threads.
    Remembers the order in which pages resolved for the progress trail.
    """

    def __init__(self, total: int, started_at: Optional[float] = None):
        if total < 0:
            raise ValueError(f"total must be >= 0, got {total}")
        self.total = total
        self._started_at = time.perf_counter() if started_at is None else started_at
        self._lock = threading.Lock()
        self._slots: Dict[int, PageResult] = {}
        self._progress: List[ProgressEntry] = []

    def put(self, result: PageResult) -> ProgressEntry:
        n = result.page_number
        if not 1 <= n <= self.total:
            raise ValueError(f"Page {n} is outside 1..{self.total}")
        with self._lock:
            if n in self._slots:
                raise ValueError(f"Page {n} already has a result")
            self._slots[n] = result
            entry = ProgressEntry(
                page=n,
                total_pages=self.total,
                status=result.status,
                elapsed_seconds=time.perf_counter() - self._started_at,
                detail=result.error,
            )
            self._progress.append(entry)
            return entry

    def __contains__(self, page_number: int) -> bool:
        with self._lock:
            return page_number in self._slots

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    @property
    def complete(self) -> bool:
        return len(self) == self.total

    def missing(self) -> List[int]:
        with self._lock:
            return [n for n in range(1, self.total + 1) if n not in self._slots]

    def results(self) -> List[PageResult]:
        with self._lock:
            return [self._slots[n] for n in sorted(self._slots)]

    @property
    def progress(self) -> List[ProgressEntry]:
        with self._lock:
            return list(self._progress)


def _check_coverage(total: int, results: Sequence[PageResult]) -> None:
    counts = Counter(r.page_number for r in results)
    duplicates = sorted(n for n, c in counts.items() if c > 1)
    outside = sorted(n for n in counts if not 1 <= n <= total)
    missing = [n for n in range(1, total + 1) if n not in counts]
    problems = []
    if missing:
        problems.append(f"missing pages {missing}")
    if duplicates:
        problems.append(f"duplicate pages {duplicates}")
    if outside:
        problems.append(f"pages outside 1..{total} {outside}")
    if problems:
        raise ValueError("Cannot aggregate, " + ", ".join(problems))


def aggregate(
    total: int,
    results: Iterable[PageResult],
    *,
    language: str = "",
    elapsed_seconds: float = 0.0,
    progress: Sequence[ProgressEntry] = (),
    job_id: Optional[str] = None,
    filename: Optional[str] = None,
    file_size_kb: Optional[float] = None,
    timings: Optional[Dict[str, float]] = None,
) -> ExtractionReport:
    """
    Assemble the report in page order, whatever order the pages finished in.
    Requires exactly one result for every page in 1..total.
    """
    results = list(results)
    _check_coverage(total, results)
    ordered = sorted(results, key=lambda r: r.page_number)
    text = PAGE_SEPARATOR.join(format_page(r) for r in ordered)
    return ExtractionReport(
        text=text,
        page_count=total,
        elapsed_seconds=elapsed_seconds,
        language=language,
        pages=tuple(ordered),
        progress=tuple(progress),
        job_id=job_id,
        filename=filename,
        file_size_kb=file_size_kb,
        timings=dict(timings or {}),
    )
