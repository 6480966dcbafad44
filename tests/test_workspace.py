from __future__ import annotations

import logging
import shutil
from pathlib import Path

import pytest

from scanocr.exceptions import WorkspaceCreationError, WorkspaceError
from scanocr.workspace import WorkspaceManager


def test_acquire_creates_fresh_empty_directory(scratch_root: Path):
    manager = WorkspaceManager(scratch_root)

    ws = manager.acquire("job-1")

    assert ws.path == scratch_root / "job-1"
    assert ws.path.is_dir()
    assert list(ws.path.iterdir()) == []


def test_two_jobs_never_share_a_workspace(scratch_root: Path):
    manager = WorkspaceManager(scratch_root)
    a = manager.acquire("job-a")
    b = manager.acquire("job-b")

    assert a.path != b.path
    with pytest.raises(WorkspaceCreationError):
        manager.acquire("job-a")


def test_acquire_fails_when_root_is_a_file(tmp_path: Path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(WorkspaceCreationError):
        WorkspaceManager(blocker).acquire("job-1")


def test_acquire_rejects_path_like_job_ids(scratch_root: Path):
    with pytest.raises(WorkspaceCreationError):
        WorkspaceManager(scratch_root).acquire("../escape")


def test_release_removes_tree_and_is_idempotent(scratch_root: Path):
    manager = WorkspaceManager(scratch_root)
    ws = manager.acquire("job-1")
    (ws.path / "nested").mkdir()
    (ws.path / "nested" / "page-0001.png").write_bytes(b"png")
    ws.write_document(b"%PDF-1.4", "Scan Report.pdf")

    assert manager.release(ws) is True
    assert not ws.path.exists()
    assert manager.release(ws) is True


def test_release_failure_is_logged_not_raised(scratch_root: Path, monkeypatch, caplog):
    manager = WorkspaceManager(scratch_root)
    ws = manager.acquire("job-1")

    def boom(path, *args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr(shutil, "rmtree", boom)
    with caplog.at_level(logging.ERROR, logger="scanocr"):
        assert manager.release(ws) is False

    assert "Failed to clean up workspace" in caplog.text
    assert ws.released is False


def test_scoped_releases_on_error(scratch_root: Path):
    manager = WorkspaceManager(scratch_root)

    with pytest.raises(RuntimeError):
        with manager.scoped("job-1") as ws:
            ws.write_document(b"%PDF-1.4", "doc.pdf")
            raise RuntimeError("stage failed")

    assert not (scratch_root / "job-1").exists()


def test_document_and_page_paths_stay_inside_workspace(scratch_root: Path):
    ws = WorkspaceManager(scratch_root).acquire("job-1")

    doc = ws.write_document(b"%PDF-1.4", "../../My Scan (final).PDF")

    assert doc.parent == ws.path
    assert doc.name == "my-scan-final.pdf"
    assert ws.page_image_path(7).name == "page-0007.png"


def test_document_name_falls_back_when_nothing_survives_slugify(scratch_root: Path):
    ws = WorkspaceManager(scratch_root).acquire("job-1")

    assert ws.document_path("???.pdf").name == "document.pdf"
    assert ws.document_path("").name == "document.pdf"


def test_failed_document_write_is_a_workspace_error(scratch_root: Path, monkeypatch):
    ws = WorkspaceManager(scratch_root).acquire("job-1")

    def denied(self, data):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(Path, "write_bytes", denied)
    with pytest.raises(WorkspaceError) as excinfo:
        ws.write_document(b"%PDF-1.4", "doc.pdf")

    assert isinstance(excinfo.value.__cause__, PermissionError)
