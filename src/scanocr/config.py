# scanocr/config.py
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Any, Optional
import tempfile

DEFAULT_OCR_BACKEND = "scanocr.ocr_backends.tesseract_backend.TesseractOCREngine"
RENDER_MODES = ("pipelined", "batch")
PDF_ENGINES = ("pymupdf", "pdf2image")


@dataclass
class ExtractionConfig:
    """Configuration for a scanocr extraction job."""
    scratch_root: Path = Path(tempfile.gettempdir()) / "scanocr_jobs"

    # Rasterization
    dpi: int = 300
    image_format: str = "png"
    render_mode: str = "pipelined"     # "pipelined" or "batch"
    pdf_engine: str = "pymupdf"

    # OCR
    language: str = "eng"
    engine_mode: int = 1               # tesseract --oem
    segmentation_mode: int = 3         # tesseract --psm
    ocr_backend: str = DEFAULT_OCR_BACKEND
    ocr_backend_kwargs: Dict[str, Any] = field(default_factory=dict)

    # Scheduling
    max_workers: int = 3
    max_retries: int = 0
    timeout_seconds: Optional[float] = 300.0
    page_timeout_seconds: Optional[float] = None

    show_progress: bool = False

    def __post_init__(self):
        self.scratch_root = Path(self.scratch_root)
        if int(self.max_workers) < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if int(self.dpi) <= 0:
            raise ValueError(f"dpi must be positive, got {self.dpi}")
        if int(self.max_retries) < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.render_mode not in RENDER_MODES:
            raise ValueError(f"Unknown render_mode '{self.render_mode}'. Supported modes, {list(RENDER_MODES)}")
        if (self.pdf_engine or "").lower() not in PDF_ENGINES:
            raise ValueError(f"Unknown PDF engine, '{self.pdf_engine}'. Supported engines, {list(PDF_ENGINES)}")
        for key in ("timeout_seconds", "page_timeout_seconds"):
            value = getattr(self, key)
            if value is not None and float(value) <= 0:
                raise ValueError(f"{key} must be positive or None, got {value}")

    def to_dict(self):
        """Converts config to a plain dictionary (paths as strings)."""
        d = asdict(self)
        for key, value in d.items():
            if isinstance(value, Path):
                d[key] = str(value)
        return d

    @classmethod
    def from_dict(cls, config_dict: dict):
        d = dict(config_dict)

        if isinstance(d.get("scratch_root"), str):
            d["scratch_root"] = Path(d["scratch_root"])

        # allow explicit None to mean use default
        for key in ["scratch_root", "dpi", "max_workers", "max_retries", "language",
                    "engine_mode", "segmentation_mode", "render_mode", "pdf_engine", "ocr_backend"]:
            if d.get(key) is None:
                d.pop(key, None)

        known = set(cls.__dataclass_fields__)
        unknown = sorted(k for k in d if k not in known)
        if unknown:
            raise ValueError(f"Unknown config keys, {unknown}")
        return cls(**d)
