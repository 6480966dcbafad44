# scanocr/ocr_backends/easyocr_backend.py
from __future__ import annotations

from typing import Dict, Any, Tuple
import logging
import threading
import warnings

import numpy as np
from PIL import Image

import easyocr

from ..models import OCROptions
from .base import BaseOCREngine, ImageRef

logger = logging.getLogger("scanocr")


# -----------------------------
# Helpers
# -----------------------------

def _as_bool(x, default=True) -> bool:
    if isinstance(x, bool):
        return x
    if isinstance(x, str):
        s = x.strip().lower()
        if s in ("true", "1", "yes", "y", "on"):
            return True
        if s in ("false", "0", "no", "n", "off"):
            return False
    return default


# Tesseract traineddata names -> EasyOCR codes
_EASYOCR_LANG_MAP = {
    "eng": "en",
    "hin": "hi",
    "vie": "vi",
    "fra": "fr",
    "deu": "de",
    "spa": "es",
    "ita": "it",
    "por": "pt",
    "nld": "nl",
    "chi_sim": "ch_sim",
    "chi_tra": "ch_tra",
}


def to_easyocr_langs(language: str) -> Tuple[str, ...]:
    codes = []
    for code in (language or "").split("+"):
        code = code.strip().lower()
        if code:
            mapped = _EASYOCR_LANG_MAP.get(code, code)
            if mapped not in codes:
                codes.append(mapped)
    return tuple(codes or ["en"])


def _load_rgb(image_path: ImageRef) -> np.ndarray:
    with Image.open(image_path) as im:
        return np.array(im.convert("RGB"))


def _torch_cuda_available() -> bool:
    try:
        import torch
        return bool(torch.cuda.is_available())
    except ImportError:
        return False


# -----------------------------
# Backend
# -----------------------------

class EasyOCREngine(BaseOCREngine):
    """
    EasyOCR adapter.

    Supported kwargs (all optional):
      - gpu / use_gpu: bool (defaults to True if CUDA is available, else False)
      - model_storage_directory: str
      - download_enabled: bool (default True)
      - decoder: 'greedy' or 'beamsearch', beam_width: int

    One Reader is built per language set and shared by all worker threads.
    """

    def __init__(self, **kwargs: Dict[str, Any]):
        k = dict(kwargs)
        want_gpu = _as_bool(k.pop("gpu", k.pop("use_gpu", True)), True)
        self._use_gpu = bool(want_gpu and _torch_cuda_available())
        self._model_dir = k.pop("model_storage_directory", None)
        self._download_enabled = _as_bool(k.pop("download_enabled", True), True)

        decoder = str(k.pop("decoder", "greedy")).strip().lower()
        self._decoder = decoder if decoder in ("greedy", "beamsearch") else "greedy"
        try:
            beam_width = int(k.pop("beam_width", 10))
        except (TypeError, ValueError):
            beam_width = 10
        self._beam_width = max(1, min(beam_width, 20))

        self._readers: Dict[Tuple[str, ...], Any] = {}
        self._lock = threading.Lock()

    def _reader(self, language: str):
        langs = to_easyocr_langs(language)
        with self._lock:
            reader = self._readers.get(langs)
            if reader is None:
                logger.info("Loading EasyOCR reader for %s (gpu=%s)", "+".join(langs), self._use_gpu)
                reader = easyocr.Reader(
                    list(langs),
                    gpu=self._use_gpu,
                    model_storage_directory=self._model_dir,
                    download_enabled=self._download_enabled,
                    verbose=False,
                )
                self._readers[langs] = reader
            return reader

    def recognize(self, image_path: ImageRef, options: OCROptions) -> str:
        reader = self._reader(options.language)
        rgb = _load_rgb(image_path)
        with np.errstate(over="ignore", invalid="ignore"):
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", category=RuntimeWarning)
                lines = reader.readtext(
                    rgb,
                    detail=0,
                    paragraph=True,
                    decoder=self._decoder,
                    beamWidth=self._beam_width,
                )
        if isinstance(lines, (list, tuple)):
            return "\n".join(str(x) for x in lines if x)
        return str(lines) if lines else ""
