# scanocr/ocr_backends/__init__.py
from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, Optional

from .base import BaseOCREngine

logger = logging.getLogger("scanocr")

TESSERACT_BACKEND = "scanocr.ocr_backends.tesseract_backend.TesseractOCREngine"
EASYOCR_BACKEND = "scanocr.ocr_backends.easyocr_backend.EasyOCREngine"

_ALIASES = {
    "tess": TESSERACT_BACKEND,
    "tesseract": TESSERACT_BACKEND,
    "pytesseract": TESSERACT_BACKEND,
    "easy": EASYOCR_BACKEND,
    "easyocr": EASYOCR_BACKEND,
}


def normalize_backend_alias(name: str) -> str:
    """
    Allow short aliases (case-insensitive) and module-only shorthands.
    Returns a fully qualified dotted path 'module.Class'.
    """
    if not name:
        return name
    original = name.strip().strip('"\'')
    alias = original.lower()
    if alias in _ALIASES:
        return _ALIASES[alias]
    if alias.endswith(".tesseract_backend"):
        return TESSERACT_BACKEND
    if alias.endswith(".easyocr_backend"):
        return EASYOCR_BACKEND
    return original


def import_backend(dotted: str):
    mod_path, _, attr = normalize_backend_alias(dotted).rpartition(".")
    if not mod_path or not attr:
        raise ImportError(f"Invalid backend path, {dotted}")
    mod = importlib.import_module(mod_path)
    try:
        return getattr(mod, attr)
    except AttributeError as e:
        raise ImportError(f"Backend class not found, {dotted}") from e


def load_engine(dotted: str, kwargs: Optional[Dict[str, Any]] = None) -> BaseOCREngine:
    """Import the backend class by dotted path (or alias) and build one engine instance."""
    engine_cls = import_backend(dotted)
    engine = engine_cls(**(kwargs or {}))
    logger.info("OCR backend ready, %s", engine_cls.__name__)
    return engine


__all__ = ["BaseOCREngine", "load_engine", "import_backend", "normalize_backend_alias",
           "TESSERACT_BACKEND", "EASYOCR_BACKEND"]
