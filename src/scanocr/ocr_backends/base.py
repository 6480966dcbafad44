# scanocr/ocr_backends/base.py
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Sequence, Tuple, Union

from ..models import OCROptions

ImageRef = Union[str, Path]


class BaseOCREngine(ABC):
    @abstractmethod
    def recognize(self, image_path: ImageRef, options: OCROptions) -> str:
        """Return the text of one page image. Raise on any engine failure."""
        pass

    def read_batch(self, images: Sequence[ImageRef], options: OCROptions) -> Tuple[List[str], float]:
        """Return list of texts and total duration in seconds."""
        start = time.perf_counter()
        texts = [self.recognize(p, options) for p in images]
        return texts, time.perf_counter() - start
