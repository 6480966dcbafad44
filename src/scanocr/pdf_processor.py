# src/scanocr/pdf_processor.py
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, Union

import fitz  # PyMuPDF
from pdf2image import convert_from_path, pdfinfo_from_bytes

from .exceptions import MalformedDocumentError, PageConversionError
from .workspace import Workspace

logger = logging.getLogger("scanocr")

PageImages = Dict[int, Union[Path, PageConversionError]]


# --- Step 1, interface ---
class BasePDFProcessor(ABC):
    """
    Interface for any PDF rasterization engine.
    Page numbers are 1-indexed throughout.
    """

    @abstractmethod
    def count_pages(self, document: bytes) -> int:
        """Return the page count, raise MalformedDocumentError when it cannot be determined."""
        raise NotImplementedError

    @abstractmethod
    def rasterize(self, document_path: Path, page_number: int, workspace: Workspace,
                  *, dpi: int = 300, fmt: str = "png") -> Path:
        """Render one page into the workspace, raise PageConversionError on failure."""
        raise NotImplementedError

    def rasterize_all(self, document_path: Path, page_numbers: Iterable[int], workspace: Workspace,
                      *, dpi: int = 300, fmt: str = "png") -> PageImages:
        """
        Batch variant. Each page maps to its image path or to the error that
        stopped it; one bad page never hides its siblings.
        """
        out: PageImages = {}
        for n in page_numbers:
            try:
                out[n] = self.rasterize(document_path, n, workspace, dpi=dpi, fmt=fmt)
            except PageConversionError as e:
                out[n] = e
        return out


# --- Step 2, concrete implementation with PyMuPDF ---
class PyMuPDFProcessor(BasePDFProcessor):
    """PDF processor that uses PyMuPDF, one page per call."""

    def count_pages(self, document: bytes) -> int:
        try:
            with fitz.open(stream=document, filetype="pdf") as doc:
                return doc.page_count
        except Exception as e:
            raise MalformedDocumentError(f"Could not read the PDF page count, {e}") from e

    def rasterize(self, document_path: Path, page_number: int, workspace: Workspace,
                  *, dpi: int = 300, fmt: str = "png") -> Path:
        out_path = workspace.page_image_path(page_number, fmt)
        try:
            # Prefer matrix-based scaling (consistent across PyMuPDF versions)
            zoom = dpi / 72.0
            with fitz.open(document_path) as doc:
                if not 1 <= page_number <= doc.page_count:
                    raise IndexError(f"page {page_number} out of range 1..{doc.page_count}")
                page = doc.load_page(page_number - 1)
                pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
                pix.save(str(out_path))
        except Exception as e:
            raise PageConversionError(page_number, e) from e
        if not out_path.exists():
            raise PageConversionError(page_number, "image not found after rendering")
        return out_path


# --- Step 3, poppler through pdf2image ---
_PPM_PAGE = re.compile(r"-(\d+)\.[A-Za-z]+$")


class Pdf2ImageProcessor(BasePDFProcessor):
    """
    PDF processor that shells out to poppler's pdftoppm. `rasterize_all`
    converts every page with a single external process.
    """

    def __init__(self, poppler_path: Union[str, Path, None] = None, thread_count: int = 1):
        self.poppler_path = str(poppler_path) if poppler_path else None
        self.thread_count = max(1, int(thread_count))

    def count_pages(self, document: bytes) -> int:
        try:
            info = pdfinfo_from_bytes(document, poppler_path=self.poppler_path)
            return int(info["Pages"])
        except Exception as e:
            raise MalformedDocumentError(f"Could not read the PDF page count, {e}") from e

    def _convert(self, document_path: Path, workspace: Workspace, dpi: int, fmt: str, **kwargs):
        return convert_from_path(
            str(document_path),
            dpi=dpi,
            fmt=fmt,
            output_folder=str(workspace.path),
            output_file="page",
            paths_only=True,
            thread_count=self.thread_count,
            poppler_path=self.poppler_path,
            **kwargs,
        )

    def rasterize(self, document_path: Path, page_number: int, workspace: Workspace,
                  *, dpi: int = 300, fmt: str = "png") -> Path:
        try:
            paths = self._convert(document_path, workspace, dpi, fmt,
                                  first_page=page_number, last_page=page_number)
        except Exception as e:
            raise PageConversionError(page_number, e) from e
        found = _index_page_files(paths).get(page_number)
        if found is None or not found.exists():
            raise PageConversionError(page_number, "image not found after rendering")
        return found

    def rasterize_all(self, document_path: Path, page_numbers: Iterable[int], workspace: Workspace,
                      *, dpi: int = 300, fmt: str = "png") -> PageImages:
        wanted = sorted(set(page_numbers))
        if not wanted:
            return {}
        try:
            paths = self._convert(document_path, workspace, dpi, fmt,
                                  first_page=wanted[0], last_page=wanted[-1])
        except Exception as e:
            logger.warning("Batch rasterization of %s failed, %s", document_path.name, e)
            return {n: PageConversionError(n, e) for n in wanted}

        by_page = _index_page_files(paths)
        out: PageImages = {}
        for n in wanted:
            p = by_page.get(n)
            if p is not None and p.exists():
                out[n] = p
            else:
                logger.error("Image not found for page %d", n)
                out[n] = PageConversionError(n, "image not found after rendering")
        return out


def _index_page_files(paths) -> Dict[int, Path]:
    """pdftoppm names its output '<prefix>-<page>.<ext>', with the page zero padded."""
    index: Dict[int, Path] = {}
    for p in paths or []:
        m = _PPM_PAGE.search(str(p))
        if m:
            index[int(m.group(1))] = Path(p)
    return index


# --- Step 4, factory ---
def get_pdf_processor(engine_name: str = "pymupdf", **kwargs) -> BasePDFProcessor:
    """
    Create a PDF processor by name.
    """
    name = (engine_name or "").lower()
    if name == "pymupdf":
        return PyMuPDFProcessor()
    if name == "pdf2image":
        return Pdf2ImageProcessor(**kwargs)
    raise ValueError(f"Unknown PDF engine, '{engine_name}'. Supported engines, ['pymupdf', 'pdf2image']")
