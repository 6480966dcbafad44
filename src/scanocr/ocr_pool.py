# src/scanocr/ocr_pool.py
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from enum import Enum
from typing import Callable, Dict, Optional, Set, Tuple, Union

from .exceptions import RecognitionError
from .models import OCROptions, PageResult, PageTask
from .ocr_backends.base import BaseOCREngine, ImageRef

logger = logging.getLogger("scanocr")

Recognizer = Callable[[ImageRef, OCROptions], str]


class TaskState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"


_NEXT_STATE = {
    TaskState.PENDING: TaskState.RUNNING,
    TaskState.RUNNING: TaskState.DONE,
}


class OCRWorkerPool:
    """
    Bounded set of OCR worker threads.

    At most `max_workers` recognitions run at once; further submissions wait
    in FIFO order. Tesseract runs as an external process, so threads are
    enough for real parallelism. Engine failures are returned as
    RECOGNITION_FAILED results, the futures never raise for them.

    With a `deadline` (a time.perf_counter() value) every recognition gets at
    most the time left until it as its engine timeout, so nothing keeps
    running once the job has expired.
    """

    def __init__(self, engine: Union[BaseOCREngine, Recognizer], options: OCROptions,
                 max_workers: int = 3, thread_name_prefix: str = "scanocr-ocr",
                 deadline: Optional[float] = None):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._recognize: Recognizer = engine.recognize if isinstance(engine, BaseOCREngine) else engine
        self.options = options
        self.max_workers = max_workers
        self.deadline = deadline

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self._slots = threading.BoundedSemaphore(max_workers)
        self._lock = threading.Lock()
        self._aborted = threading.Event()
        self._running = 0
        self._peak_running = 0
        self._states: Dict[Tuple[int, int], TaskState] = {}
        self._futures: Set[Future] = set()

    # -----------------------------
    # Introspection
    # -----------------------------
    @property
    def running(self) -> int:
        with self._lock:
            return self._running

    @property
    def peak_running(self) -> int:
        with self._lock:
            return self._peak_running

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def state(self, page_number: int, attempt: Optional[int] = None) -> Optional[TaskState]:
        """State of the given attempt, or of the latest attempt for the page."""
        with self._lock:
            if attempt is not None:
                return self._states.get((page_number, attempt))
            attempts = [a for (p, a) in self._states if p == page_number]
            return self._states[(page_number, max(attempts))] if attempts else None

    def _transition(self, key: Tuple[int, int], new_state: TaskState) -> None:
        with self._lock:
            current = self._states.get(key)
            if _NEXT_STATE.get(current) is not new_state:
                raise RuntimeError(f"Illegal task transition for page {key[0]}, {current} -> {new_state}")
            self._states[key] = new_state
            if new_state is TaskState.RUNNING:
                self._running += 1
                self._peak_running = max(self._peak_running, self._running)
            else:
                self._running -= 1

    # -----------------------------
    # Submission
    # -----------------------------
    def submit(self, task: PageTask) -> "Future[PageResult]":
        if self._aborted.is_set():
            raise RuntimeError("OCR pool has been aborted")
        key = (task.page_number, task.attempt)
        with self._lock:
            if key in self._states:
                raise ValueError(f"Page {task.page_number} attempt {task.attempt} was already submitted")
            self._states[key] = TaskState.PENDING
        fut = self._executor.submit(self._run, task)
        with self._lock:
            self._futures.add(fut)
        fut.add_done_callback(self._forget)
        return fut

    def _forget(self, fut: Future) -> None:
        with self._lock:
            self._futures.discard(fut)

    def _options_now(self) -> Optional[OCROptions]:
        """Options for a recognition starting now, None once the deadline has passed."""
        if self.deadline is None:
            return self.options
        remaining = self.deadline - time.perf_counter()
        if remaining <= 0:
            return None
        if self.options.timeout is not None and self.options.timeout <= remaining:
            return self.options
        return replace(self.options, timeout=remaining)

    def _run(self, task: PageTask) -> PageResult:
        key = (task.page_number, task.attempt)
        with self._slots:
            self._transition(key, TaskState.RUNNING)
            start = time.perf_counter()
            try:
                if self._aborted.is_set():
                    return PageResult.recognition_failed(task.page_number, "job aborted before OCR started",
                                                         attempts=task.attempt)
                options = self._options_now()
                if options is None:
                    return PageResult.recognition_failed(task.page_number, "job deadline passed before OCR started",
                                                         attempts=task.attempt)
                logger.info("Running OCR on page %d/%d", task.page_number, task.total_pages)
                text = self._recognize(task.image_path, options)
                duration = time.perf_counter() - start
                logger.info("Page %d OCR done in %.2fs", task.page_number, duration)
                return PageResult.ok(task.page_number, text, duration_seconds=duration, attempts=task.attempt)
            except Exception as e:
                duration = time.perf_counter() - start
                failure = RecognitionError(task.page_number, str(e) or type(e).__name__)
                logger.error("OCR failed on page %d, %s", task.page_number, failure.detail)
                return PageResult.recognition_failed(task.page_number, failure.detail,
                                                     duration_seconds=duration, attempts=task.attempt)
            finally:
                self._transition(key, TaskState.DONE)

    # -----------------------------
    # Shutdown
    # -----------------------------
    def abort(self) -> int:
        """Cancel every queued task and stop accepting work. Returns how many were cancelled."""
        self._aborted.set()
        with self._lock:
            pending = list(self._futures)
        cancelled = sum(1 for f in pending if f.cancel())
        self._executor.shutdown(wait=False, cancel_futures=True)
        if cancelled:
            logger.warning("Aborted OCR pool, %d queued pages cancelled", cancelled)
        return cancelled

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "OCRWorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.shutdown(wait=True)
