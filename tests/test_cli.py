from __future__ import annotations

import json
from pathlib import Path

import pytest

import scanocr.cli as cli
from conftest import FAKE_PDF, FakeEngine, FakeRasterizer
from scanocr.pipeline import ExtractionRunner


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('{"oem": 1, "psm": 6}', {"oem": 1, "psm": 6}),
        ("'{\"psm\": 6}'", {"psm": 6}),
        ("{'preserve_interword_spaces': True}", {"preserve_interword_spaces": True}),
        ("psm=6;preserve-interword-spaces=true", {"psm": 6, "preserve_interword_spaces": True}),
        ("", {}),
    ],
)
def test_parse_backend_kwargs(raw, expected):
    assert cli._parse_backend_kwargs(raw) == expected


def test_parse_backend_kwargs_rejects_nonsense():
    with pytest.raises(SystemExit):
        cli._parse_backend_kwargs("just words")


@pytest.fixture
def fake_runner(monkeypatch):
    built = []

    def make_runner(config):
        runner = ExtractionRunner(config, pdf_processor=FakeRasterizer(pages=3, fail_pages=[2]),
                                  engine=FakeEngine())
        built.append(runner)
        return runner

    monkeypatch.setattr(cli, "ExtractionRunner", make_runner)
    monkeypatch.setattr(cli, "_install_cancel_handlers", lambda runner: None)
    return built


def test_extract_writes_report_and_text(tmp_path: Path, fake_runner):
    pdf = tmp_path / "scan.pdf"
    pdf.write_bytes(FAKE_PDF)
    out, txt = tmp_path / "out" / "report.json", tmp_path / "out" / "scan.txt"

    code = cli.main(["extract", str(pdf), "-l", "eng+hin", "-o", str(out), "--txt", str(txt),
                     "-w", "2", "--scratch-root", str(tmp_path / "scratch"), "--no-progress"])

    assert code == 0
    report = json.loads(out.read_text(encoding="utf-8"))
    assert report["success"] is True
    assert report["pageCount"] == 3
    assert report["languageUsed"] == "eng+hin"
    assert [p["status"] for p in report["perPageStatus"]] == ["ok", "conversion_failed", "ok"]
    assert txt.read_text(encoding="utf-8") == report["text"]
    assert fake_runner[0].config.max_workers == 2
    assert list((tmp_path / "scratch").iterdir()) == []


def test_extract_rejects_non_pdf(tmp_path: Path, fake_runner):
    notes = tmp_path / "notes.txt"
    notes.write_text("hello", encoding="utf-8")
    out = tmp_path / "report.json"

    code = cli.main(["extract", str(notes), "-o", str(out), "--scratch-root", str(tmp_path / "scratch")])

    assert code == cli.EXIT_INPUT_ERROR
    report = json.loads(out.read_text(encoding="utf-8"))
    assert report["success"] is False
    assert "Only PDF files" in report["error"]


def test_extract_missing_file(tmp_path: Path, fake_runner):
    out = tmp_path / "report.json"

    code = cli.main(["extract", str(tmp_path / "missing.pdf"), "-o", str(out)])

    assert code == cli.EXIT_INPUT_ERROR
    assert "Cannot read" in json.loads(out.read_text(encoding="utf-8"))["error"]


def test_config_from_args_timeout_flags():
    args = cli._parse_args(["extract", "a.pdf", "--no-timeout", "--retries", "2", "--psm", "6"])
    cfg = cli._config_from_args(args)
    assert cfg.timeout_seconds is None
    assert cfg.max_retries == 2
    assert cfg.segmentation_mode == 6

    args = cli._parse_args(["extract", "a.pdf", "--timeout", "30"])
    assert cli._config_from_args(args).timeout_seconds == 30.0
    assert cli._config_from_args(cli._parse_args(["extract", "a.pdf"])).timeout_seconds == 300.0


def test_no_command_prints_usage(capsys):
    assert cli.main([]) == cli.EXIT_INPUT_ERROR
    assert "scanocr extract" in capsys.readouterr().out


def test_extract_reports_scratch_write_failure(tmp_path: Path, fake_runner, monkeypatch):
    pdf = tmp_path / "scan.pdf"
    pdf.write_bytes(FAKE_PDF)
    out = tmp_path / "report.json"

    def disk_full(self, data):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(Path, "write_bytes", disk_full)
    code = cli.main(["extract", str(pdf), "-o", str(out), "--scratch-root", str(tmp_path / "scratch"),
                     "--no-progress"])

    assert code == cli.EXIT_FAILURE
    report = json.loads(out.read_text(encoding="utf-8"))
    assert report["success"] is False
    assert "No space left" in report["error"]
    assert list((tmp_path / "scratch").iterdir()) == []
