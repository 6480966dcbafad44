# scanocr/pipeline.py
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, wait
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from tqdm import tqdm

from . import logger as _progress_level  # noqa: F401, registers Logger.progress
from .aggregator import PageResultCollector, aggregate
from .config import ExtractionConfig
from .exceptions import ExtractionCancelledError, ExtractionTimeoutError, PageConversionError
from .models import ExtractionReport, Job, OCROptions, PageResult, PageTask, ProgressEntry
from .ocr_backends import BaseOCREngine, load_engine
from .ocr_pool import OCRWorkerPool
from .pdf_processor import BasePDFProcessor, get_pdf_processor
from .utils import normalize_language, validate_document
from .workspace import Workspace, WorkspaceManager

logger = logging.getLogger("scanocr")

# How often the result wait wakes up to look at the cancel flag
_POLL_SECONDS = 0.25

ProgressCallback = Callable[[ProgressEntry], None]
Pending = Dict[Future, PageTask]


class PerformanceTracker:
    def __init__(self, started_at: Optional[float] = None):
        self.started_at = time.perf_counter() if started_at is None else started_at
        self.rasterize_seconds = 0.0
        self.ocr_seconds = 0.0
        self.ocr_calls = 0

    def add_render_time(self, duration: float):
        self.rasterize_seconds += duration

    def add_ocr_time(self, duration: float):
        self.ocr_seconds += duration
        self.ocr_calls += 1

    def elapsed(self) -> float:
        return time.perf_counter() - self.started_at

    def get_final_metrics(self) -> Dict[str, float]:
        return {
            "wall_clock_total_seconds": round(self.elapsed(), 4),
            "rasterize_total_seconds": round(self.rasterize_seconds, 4),
            "ocr_work_seconds": round(self.ocr_seconds, 4),
            "ocr_avg_sec_per_page": round(self.ocr_seconds / self.ocr_calls, 4) if self.ocr_calls else 0,
        }


class ExtractionRunner:
    """
    Drives one job end to end: validate, count pages, rasterize, fan OCR out
    over the worker pool, wait for every page, aggregate. The job's workspace
    is released before `run` returns or raises.
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        *,
        pdf_processor: Optional[BasePDFProcessor] = None,
        engine: Union[BaseOCREngine, Callable, None] = None,
        workspace_manager: Optional[WorkspaceManager] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.config = config or ExtractionConfig()
        self.pdf_processor = pdf_processor or get_pdf_processor(self.config.pdf_engine)
        self.workspaces = workspace_manager or WorkspaceManager(self.config.scratch_root)
        self.progress_callback = progress_callback
        self._engine = engine
        self._cancel = threading.Event()

    @property
    def engine(self):
        if self._engine is None:
            self._engine = load_engine(self.config.ocr_backend, self.config.ocr_backend_kwargs)
        return self._engine

    def cancel(self) -> None:
        """Ask the running job to stop. Safe to call from a signal handler or another thread."""
        if not self._cancel.is_set():
            logger.warning("Cancellation requested, aborting outstanding pages.")
        self._cancel.set()

    def _options(self, language: str) -> OCROptions:
        return OCROptions(
            language=language,
            engine_mode=self.config.engine_mode,
            segmentation_mode=self.config.segmentation_mode,
            timeout=self.config.page_timeout_seconds,
        )

    # -----------------------------
    # Abort checks
    # -----------------------------
    def _check_abort(self, deadline: Optional[float], collector: PageResultCollector) -> None:
        if self._cancel.is_set():
            raise ExtractionCancelledError(
                f"Extraction cancelled, {len(collector)}/{collector.total} pages done"
            )
        if deadline is not None and time.perf_counter() >= deadline:
            raise ExtractionTimeoutError(self.config.timeout_seconds, len(collector), collector.total)

    @staticmethod
    def _remaining(deadline: Optional[float]) -> float:
        if deadline is None:
            return _POLL_SECONDS
        return max(0.0, min(_POLL_SECONDS, deadline - time.perf_counter()))

    # -----------------------------
    # Result bookkeeping
    # -----------------------------
    def _record(self, result: PageResult, collector: PageResultCollector, pbar: tqdm) -> None:
        entry = collector.put(result)
        pbar.update(1)
        if result.succeeded:
            logger.info("Page %d done", result.page_number)
        else:
            logger.error("Page %d failed, %s", result.page_number, result.error)
        logger.progress(
            entry.message,
            extra={
                "phase": "ocr",
                "page": result.page_number,
                "status": result.status.value,
                "current": len(collector),
                "total": collector.total,
            },
        )
        if self.progress_callback:
            try:
                self.progress_callback(entry)
            except Exception:
                logger.exception("Progress callback failed on page %d", result.page_number)

    def _collect_done(self, pool: OCRWorkerPool, pending: Pending, collector: PageResultCollector,
                      tracker: PerformanceTracker, pbar: tqdm, deadline: Optional[float],
                      timeout: float) -> None:
        if not pending:
            return
        done, _ = wait(list(pending), timeout=timeout, return_when=FIRST_COMPLETED)
        # pages cut short by the deadline must not pass for a finished job
        self._check_abort(deadline, collector)
        for fut in done:
            task = pending.pop(fut)
            try:
                result = fut.result()
            except Exception as e:
                logger.exception("OCR task for page %d crashed", task.page_number)
                result = PageResult.recognition_failed(task.page_number, e, attempts=task.attempt)
            tracker.add_ocr_time(result.duration_seconds)

            in_time = deadline is None or time.perf_counter() < deadline
            if not result.succeeded and task.attempt <= self.config.max_retries and in_time and not pool.aborted:
                retry = task.retry()
                logger.warning("Retrying OCR on page %d, attempt %d", task.page_number, retry.attempt)
                pending[pool.submit(retry)] = retry
                continue
            self._record(result, collector, pbar)

    # -----------------------------
    # Stage 1. Rasterize and submit
    # -----------------------------
    def _submit(self, pool: OCRWorkerPool, pending: Pending, page_number: int, total: int,
                document_path: Path, image_path: Path) -> None:
        task = PageTask(page_number=page_number, total_pages=total,
                        document_path=document_path, image_path=image_path)
        pending[pool.submit(task)] = task

    def _conversion_failed(self, error: Exception, page_number: int, collector: PageResultCollector,
                           pbar: tqdm, duration: float = 0.0) -> None:
        logger.error("Could not convert page %d to an image, %s", page_number, error)
        detail = error.detail if isinstance(error, PageConversionError) else str(error)
        self._record(PageResult.conversion_failed(page_number, detail, duration), collector, pbar)

    def _rasterize_pipelined(self, pool, pending, collector, tracker, pbar, ws: Workspace,
                             document_path: Path, deadline: Optional[float]) -> None:
        total = collector.total
        for n in range(1, total + 1):
            self._check_abort(deadline, collector)
            logger.info("Converting page %d/%d to image", n, total)
            start = time.perf_counter()
            try:
                image_path = self.pdf_processor.rasterize(
                    document_path, n, ws, dpi=self.config.dpi, fmt=self.config.image_format
                )
            except Exception as e:
                self._conversion_failed(e, n, collector, pbar, time.perf_counter() - start)
                continue
            finally:
                tracker.add_render_time(time.perf_counter() - start)
            self._submit(pool, pending, n, total, document_path, image_path)
            # pick up pages that already finished so the progress trail stays in completion order
            self._collect_done(pool, pending, collector, tracker, pbar, deadline, timeout=0)

    def _rasterize_batch(self, pool, pending, collector, tracker, pbar, ws: Workspace,
                         document_path: Path, deadline: Optional[float]) -> None:
        total = collector.total
        self._check_abort(deadline, collector)
        logger.info("Converting all %d pages to images", total)
        start = time.perf_counter()
        try:
            images = self.pdf_processor.rasterize_all(
                document_path, range(1, total + 1), ws, dpi=self.config.dpi, fmt=self.config.image_format
            )
        except Exception as e:
            logger.error("Batch conversion failed, %s", e)
            images = {n: PageConversionError(n, e) for n in range(1, total + 1)}
        tracker.add_render_time(time.perf_counter() - start)
        self._check_abort(deadline, collector)

        for n in range(1, total + 1):
            outcome = images.get(n)
            if outcome is None:
                outcome = PageConversionError(n, "image not found after rendering")
            if isinstance(outcome, Exception):
                self._conversion_failed(outcome, n, collector, pbar)
            else:
                self._submit(pool, pending, n, total, document_path, Path(outcome))

    # -----------------------------
    # Stage 2. Wait for every page
    # -----------------------------
    def _await_all(self, pool, pending, collector, tracker, pbar, deadline: Optional[float]) -> None:
        while pending:
            self._check_abort(deadline, collector)
            self._collect_done(pool, pending, collector, tracker, pbar, deadline,
                               timeout=self._remaining(deadline))

    # -----------------------------
    # Public entry point
    # -----------------------------
    def run(self, job: Job) -> ExtractionReport:
        tracker = PerformanceTracker()
        self._cancel.clear()

        # Input checks happen before any workspace exists
        validate_document(job.document, job.filename)
        language = normalize_language(job.language or self.config.language)
        logger.info("Uploaded, %s (%.2f KB)", job.filename, job.size_kb)

        total = self.pdf_processor.count_pages(job.document)
        logger.info("Total pages, %d", total)

        report_meta = dict(language=language, job_id=job.job_id, filename=job.filename,
                           file_size_kb=round(job.size_kb, 2))
        if total == 0:
            logger.info("Document has no pages, nothing to recognize")
            return aggregate(0, [], elapsed_seconds=tracker.elapsed(),
                             timings=tracker.get_final_metrics(), **report_meta)

        deadline = None
        if self.config.timeout_seconds is not None:
            deadline = tracker.started_at + float(self.config.timeout_seconds)

        with self.workspaces.scoped(job.job_id) as ws:
            document_path = ws.write_document(job.document, job.filename)
            collector = PageResultCollector(total, started_at=tracker.started_at)
            pending: Pending = {}
            pool = OCRWorkerPool(self.engine, self._options(language), max_workers=self.config.max_workers,
                                 deadline=deadline)
            pbar = tqdm(total=total, desc="OCR pages", unit="page", disable=not self.config.show_progress)
            logger.progress("rasterize start", extra={"phase": "rasterize", "current": 0, "total": total})
            try:
                if self.config.render_mode == "batch":
                    self._rasterize_batch(pool, pending, collector, tracker, pbar, ws, document_path, deadline)
                else:
                    self._rasterize_pipelined(pool, pending, collector, tracker, pbar, ws, document_path, deadline)
                self._await_all(pool, pending, collector, tracker, pbar, deadline)
            except BaseException:
                pool.abort()
                raise
            else:
                pool.shutdown(wait=True)
            finally:
                pbar.close()

            report = aggregate(
                total,
                collector.results(),
                elapsed_seconds=tracker.elapsed(),
                progress=collector.progress,
                timings=tracker.get_final_metrics(),
                **report_meta,
            )

        logger.info("OCR extraction completed in %.2fs, %d/%d pages recognized",
                    report.elapsed_seconds, report.succeeded_pages, total)
        logger.progress("done", extra={"phase": "done", "current": total, "total": total})
        return report


def extract_document(
    data: bytes,
    language: Optional[str] = None,
    *,
    filename: str = "document.pdf",
    config: Optional[ExtractionConfig] = None,
    **runner_kwargs,
) -> ExtractionReport:
    """Run a single extraction job over in-memory PDF bytes."""
    config = config or ExtractionConfig()
    job = Job(document=data, language=language or config.language, filename=filename)
    return ExtractionRunner(config, **runner_kwargs).run(job)


def extract_file(
    path: Union[str, Path],
    language: Optional[str] = None,
    *,
    config: Optional[ExtractionConfig] = None,
    **runner_kwargs,
) -> ExtractionReport:
    """Run a single extraction job over a PDF on disk."""
    path = Path(path)
    return extract_document(path.read_bytes(), language, filename=path.name, config=config, **runner_kwargs)
