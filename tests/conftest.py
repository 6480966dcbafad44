from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, Optional

import fitz
import pytest

from scanocr.exceptions import MalformedDocumentError, PageConversionError
from scanocr.models import OCROptions
from scanocr.pdf_processor import BasePDFProcessor
from scanocr.workspace import Workspace


def make_pdf(pages: int) -> bytes:
    """Build a real PDF with one line of text per page."""
    doc = fitz.open()
    for n in range(1, pages + 1):
        page = doc.new_page(width=300, height=200)
        page.insert_text((40, 100), f"Hello page {n}", fontsize=18)
    try:
        return doc.tobytes()
    finally:
        doc.close()


FAKE_PDF = b"%PDF-1.4\n% fake document for tests\n"


class FakeRasterizer(BasePDFProcessor):
    """Writes a tiny text file per page; the 'image' content names the page."""

    def __init__(self, pages: int = 3, fail_pages: Iterable[int] = (), delay: float = 0.0):
        self.pages = pages
        self.fail_pages = set(fail_pages)
        self.delay = delay
        self.calls = []
        self.batch_calls = 0

    def count_pages(self, document: bytes) -> int:
        if b"broken" in document:
            raise MalformedDocumentError("cannot count pages")
        return self.pages

    def rasterize(self, document_path: Path, page_number: int, workspace: Workspace,
                  *, dpi: int = 300, fmt: str = "png") -> Path:
        self.calls.append(page_number)
        if self.delay:
            time.sleep(self.delay)
        if page_number in self.fail_pages:
            raise PageConversionError(page_number, "image not found after rendering")
        out = workspace.page_image_path(page_number, fmt)
        out.write_text(f"page-{page_number}", encoding="utf-8")
        return out

    def rasterize_all(self, document_path, page_numbers, workspace, *, dpi=300, fmt="png"):
        self.batch_calls += 1
        return super().rasterize_all(document_path, page_numbers, workspace, dpi=dpi, fmt=fmt)


class FakeEngine:
    """
    Callable OCR engine. Reads the fake image, sleeps per page if asked,
    fails for selected pages, and records peak concurrency.
    """

    def __init__(self, delays: Optional[Dict[int, float]] = None, fail_pages: Iterable[int] = (),
                 default_delay: float = 0.0, fail_times: Optional[Dict[int, int]] = None):
        self.delays = delays or {}
        self.default_delay = default_delay
        self.fail_pages = set(fail_pages)
        self.fail_times = dict(fail_times or {})
        self.active = 0
        self.peak = 0
        self.seen_paths = []
        self.options_seen = []
        self._lock = threading.Lock()

    def __call__(self, image_path, options: OCROptions) -> str:
        path = Path(image_path)
        page = int(path.read_text(encoding="utf-8").split("-")[1])
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.seen_paths.append(path)
            self.options_seen.append(options)
        try:
            delay = self.delays.get(page, self.default_delay)
            if options.timeout and delay > options.timeout:
                # pytesseract kills the process and raises this on timeout
                time.sleep(options.timeout)
                raise RuntimeError("Tesseract process timeout")
            time.sleep(delay)
            if page in self.fail_pages:
                raise RuntimeError(f"engine crashed on page {page}")
            with self._lock:
                remaining = self.fail_times.get(page, 0)
                if remaining:
                    self.fail_times[page] = remaining - 1
                    raise RuntimeError("transient engine failure")
            return f"text of page {page}\n"
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture(autouse=True)
def _restore_scanocr_logger():
    logger = logging.getLogger("scanocr")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def scratch_root(tmp_path: Path) -> Path:
    return tmp_path / "scratch"
