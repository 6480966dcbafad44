# src/scanocr/utils.py
from __future__ import annotations

import logging
import re
from typing import List

from slugify import slugify

from .exceptions import InputError

logger = logging.getLogger("scanocr")

PDF_MAGIC = b"%PDF-"

# eng, hin, chi_sim, osd ...
_LANG_CODE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


def looks_like_pdf(data: bytes) -> bool:
    """
    PDF readers tolerate a little garbage before the header, so only the
    first kilobyte is searched for the magic marker.
    """
    return bool(data) and PDF_MAGIC in data[:1024]


def validate_document(data: bytes, filename: str = "") -> None:
    """Raise InputError unless `data` is a non-empty PDF byte stream."""
    if not data:
        raise InputError("No file uploaded, the document is empty")
    if filename and not filename.lower().endswith(".pdf"):
        raise InputError(f"Only PDF files are supported, got '{filename}'")
    if not looks_like_pdf(data):
        raise InputError("Only PDF files are supported, the upload has no PDF header")


def split_languages(language: str) -> List[str]:
    """Split a '+'-joined language configuration into its codes."""
    return [code.strip() for code in (language or "").split("+") if code.strip()]


def normalize_language(language: str) -> str:
    """
    Validate a language configuration such as 'eng' or 'eng+hin' and return
    it with whitespace removed. Raises InputError on anything else.
    """
    codes = split_languages(language)
    if not codes:
        raise InputError("A language configuration is required, e.g. 'eng' or 'eng+hin'")
    bad = [c for c in codes if not _LANG_CODE.match(c)]
    if bad:
        raise InputError(f"Invalid OCR language code(s), {bad}")
    return "+".join(codes)


def safe_fname(name: str, fallback: str = "file") -> str:
    """
    Create a filesystem safe name, preserve extension when present.
    """
    name = (name or "").strip() or fallback
    if "." in name:
        base, ext = name.rsplit(".", 1)
        base = slugify(base)[:100] or fallback
        return f"{base}.{slugify(ext)[:10] or 'bin'}"
    return slugify(name)[:100] or fallback
