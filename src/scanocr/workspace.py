# src/scanocr/workspace.py
from __future__ import annotations

import logging
import shutil
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Union

from .exceptions import WorkspaceCreationError, WorkspaceError
from .utils import safe_fname

logger = logging.getLogger("scanocr")


@dataclass
class Workspace:
    """Scratch directory exclusively owned by one job."""
    job_id: str
    path: Path
    released: bool = False

    def document_path(self, filename: str) -> Path:
        return self.path / safe_fname(filename or "document.pdf", fallback="document")

    def page_image_path(self, page_number: int, fmt: str = "png") -> Path:
        return self.path / f"page-{page_number:04d}.{fmt}"

    def write_document(self, data: bytes, filename: str) -> Path:
        target = self.document_path(filename)
        try:
            target.write_bytes(data)
        except OSError as e:
            raise WorkspaceError(f"Cannot write the document into workspace {self.path}, {e}") from e
        return target


class WorkspaceManager:
    """
    Allocates one directory per job under `root` and removes it again.
    `release` never raises; use `scoped` so it runs on every exit path.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def acquire(self, job_id: str) -> Workspace:
        if not job_id or Path(job_id).name != job_id:
            raise WorkspaceCreationError(f"Invalid job id for a workspace, {job_id!r}")
        path = self.root / job_id
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceCreationError(f"Cannot create scratch root {self.root}, {e}") from e
        try:
            path.mkdir(exist_ok=False)
        except FileExistsError as e:
            raise WorkspaceCreationError(f"Workspace already exists for job {job_id}") from e
        except OSError as e:
            raise WorkspaceCreationError(f"Cannot create workspace {path}, {e}") from e
        logger.debug("Workspace acquired, %s", path)
        return Workspace(job_id=job_id, path=path)

    def release(self, workspace: Workspace) -> bool:
        """Remove the workspace tree. Idempotent; failures are logged and reported as False."""
        if workspace.released and not workspace.path.exists():
            return True
        try:
            shutil.rmtree(workspace.path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception("Failed to clean up workspace %s", workspace.path)
            return False
        workspace.released = True
        logger.debug("Cleaned up workspace %s", workspace.path)
        return True

    @contextmanager
    def scoped(self, job_id: str) -> Iterator[Workspace]:
        workspace = self.acquire(job_id)
        try:
            yield workspace
        finally:
            self.release(workspace)
