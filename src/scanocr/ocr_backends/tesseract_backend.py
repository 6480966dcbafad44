# scanocr/ocr_backends/tesseract_backend.py
from __future__ import annotations

from typing import Any, List, Optional
import logging
import os
import platform
import re
import shutil
from pathlib import Path

from PIL import Image
import pytesseract as pt

from ..models import OCROptions
from .base import BaseOCREngine, ImageRef

logger = logging.getLogger("scanocr")

# Install locations checked when tesseract is not on PATH
_KNOWN_BINARIES = {
    "Windows": (
        r"C:\Program Files\Tesseract-OCR\tesseract.exe",
        r"C:\Program Files (x86)\Tesseract-OCR\tesseract.exe",
    ),
    "Darwin": ("/opt/homebrew/bin/tesseract", "/usr/local/bin/tesseract"),
}
_DEFAULT_BINARIES = ("/usr/bin/tesseract", "/usr/local/bin/tesseract", "/snap/bin/tesseract")


def _int_option(value, default: int) -> int:
    """Accept 6, "6" or leftovers of a sloppy CLI dict such as "6}"."""
    try:
        return int(str(value).strip().rstrip(",}] "))
    except ValueError:
        found = re.search(r"-?\d+", str(value))
        return int(found.group()) if found else default


def find_tesseract() -> Optional[str]:
    """$TESSERACT_CMD first, then PATH, then the usual install locations for this OS."""
    env_cmd = os.getenv("TESSERACT_CMD")
    if env_cmd and Path(env_cmd).exists():
        return env_cmd
    on_path = shutil.which("tesseract")
    if on_path:
        return on_path
    for candidate in _KNOWN_BINARIES.get(platform.system(), _DEFAULT_BINARIES):
        if Path(candidate).exists():
            return candidate
    return None


_found = find_tesseract()
if _found:
    pt.pytesseract.tesseract_cmd = _found


# Two-letter codes people type, mapped to traineddata names
_TESS_LANG_MAP = {
    "en": "eng",
    "hi": "hin",
    "vi": "vie",
    "fr": "fra",
    "de": "deu",
    "es": "spa",
    "it": "ita",
    "pt": "por",
    "nl": "nld",
}


def to_tesseract_lang(language: str) -> str:
    """'en+hi' -> 'eng+hin'. Order is kept, it sets the primary language."""
    codes: List[str] = []
    for code in (language or "").split("+"):
        code = code.strip()
        if not code:
            continue
        mapped = _TESS_LANG_MAP.get(code.lower(), code)
        if mapped not in codes:
            codes.append(mapped)
    return "+".join(codes) or "eng"


class TesseractOCREngine(BaseOCREngine):
    """
    Recognizes page images with the tesseract binary through pytesseract.

    Optional kwargs:
      - tesseract_cmd: explicit path to the binary
      - tessdata_prefix: directory holding the traineddata files
      - oem / psm: fixed engine and segmentation modes, ignoring the job's
      - preserve_interword_spaces: keep runs of spaces in the output
      - extra_config: raw flags appended to the tesseract config
    """

    def __init__(self, **kwargs: Any):
        opts = dict(kwargs)

        binary = opts.pop("tesseract_cmd", None) or opts.pop("tesseract_path", None)
        if binary:
            if not Path(binary).exists():
                raise RuntimeError(f"Tesseract binary not found at {binary}")
            pt.pytesseract.tesseract_cmd = str(binary)

        tessdata = opts.pop("tessdata_prefix", None)
        if tessdata:
            os.environ["TESSDATA_PREFIX"] = str(tessdata)

        oem, psm = opts.pop("oem", None), opts.pop("psm", None)
        self._oem: Optional[int] = None if oem is None else _int_option(oem, 1)
        self._psm: Optional[int] = None if psm is None else _int_option(psm, 3)
        self._preserve_spaces = bool(opts.pop("preserve_interword_spaces", False))
        self._extra_cfg = str(opts.pop("extra_config", "")).strip()

        if opts:
            logger.debug("Ignoring unsupported Tesseract kwargs, %s", sorted(opts))

    def build_config(self, options: OCROptions) -> str:
        oem = options.engine_mode if self._oem is None else self._oem
        psm = options.segmentation_mode if self._psm is None else self._psm
        flags = [f"--oem {int(oem)}", f"--psm {int(psm)}"]
        if self._preserve_spaces:
            flags.append("-c preserve_interword_spaces=1")
        if self._extra_cfg:
            flags.append(self._extra_cfg)
        return " ".join(flags)

    def recognize(self, image_path: ImageRef, options: OCROptions) -> str:
        with Image.open(image_path) as im:
            return pt.image_to_string(
                im,
                lang=to_tesseract_lang(options.language),
                config=self.build_config(options),
                timeout=options.timeout or 0,
            )

    @staticmethod
    def version() -> str:
        return str(pt.get_tesseract_version())

    @staticmethod
    def available_languages() -> List[str]:
        return sorted(pt.get_languages(config=""))
