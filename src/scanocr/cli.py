# src/scanocr/cli.py
from __future__ import annotations

import argparse
import ast
import json
import logging
import re
import signal
import sys
from pathlib import Path
from queue import Queue
from typing import List, Optional

from .config import ExtractionConfig, PDF_ENGINES, RENDER_MODES
from .exceptions import ExtractionCancelledError, ExtractionTimeoutError, InputError, ScanOCRError
from .logger import configure_queue_logging, setup_logging
from .models import Job
from .ocr_backends import import_backend, normalize_backend_alias
from .pipeline import ExtractionRunner

__all__ = ["main"]

logger = logging.getLogger("scanocr")

EXIT_FAILURE = 1
EXIT_INPUT_ERROR = 2
EXIT_ABORTED = 3

# Helper

def _parse_backend_kwargs(val) -> dict:
    """
    Accept several syntaxes for --ocr-backend-kwargs:
      1) JSON (double quotes)                      {"oem":1,"psm":6}
      2) JSON wrapped in single quotes             '{"oem":1,"psm":6}'
      3) Python-literal dict with single quotes    {'oem': 1, 'psm': 6}
      4) key=value pairs separated by , or ;       oem=1;psm=6
    """
    if isinstance(val, dict):
        return dict(val)
    if not isinstance(val, str):
        return {}

    s = val.strip()
    if not s:
        return {}
    # Strip outer quotes like '"{...}"' or "'{...}'"
    if len(s) >= 2 and s[0] in ("'", '"') and s[-1] == s[0]:
        s = s[1:-1].strip()

    try:
        parsed = json.loads(s)
        if isinstance(parsed, dict):
            return parsed
    except ValueError:
        pass

    try:
        lit = ast.literal_eval(s)
        if isinstance(lit, dict):
            return lit
    except (ValueError, SyntaxError):
        pass

    # Fallback: key=value pairs
    out: dict = {}
    for part in re.split(r"[;,]\s*", s):
        if not part:
            continue
        if "=" in part:
            k, v = part.split("=", 1)
        elif ":" in part:
            k, v = part.split(":", 1)
        else:
            continue

        k = k.strip().strip('"\'').lstrip("{[").rstrip("}]").strip()
        v = v.strip().strip('"\'').lstrip("{[").rstrip("}]").rstrip(",").strip()

        low = v.lower()
        if low in ("true", "false"):
            v = (low == "true")
        elif re.fullmatch(r"-?\d+", v):
            v = int(v)
        elif re.fullmatch(r"-?\d+\.\d*", v):
            v = float(v)

        out[k.lower().replace("-", "_")] = v

    if out:
        return out

    raise SystemExit(f"Invalid --ocr-backend-kwargs. Could not parse: {val!r}")


def _preflight_backend_import(dotted: str) -> None:
    """
    Import the backend class now so a typo fails fast with a clear message
    instead of on the first page.
    """
    try:
        import_backend(dotted)
    except ImportError as e:
        raise SystemExit(
            f"Cannot load OCR backend {dotted!r} ({e})\n"
            f"- For Tesseract use: --ocr-backend tesseract\n"
            f"- For EasyOCR use:   --ocr-backend easyocr  (pip install scanocr[easyocr])"
        )


def _emit(payload: dict, output_path: Optional[Path]) -> None:
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text + "\n", encoding="utf-8")
        logger.info("Report written to %s", output_path)
    else:
        sys.stdout.write(text + "\n")


def _install_cancel_handlers(runner: ExtractionRunner) -> None:
    """
    First SIGINT/SIGTERM cancels the job so the workspace is still cleaned
    up; a second one exits immediately.
    """
    state = {"requested": False}

    def _handler(signum, frame):
        if not state["requested"]:
            state["requested"] = True
            runner.cancel()
        else:
            logger.error("Second shutdown signal received! Forcing an immediate exit.")
            sys.exit(EXIT_ABORTED)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


# -------------------------------
# CLI parsing
# -------------------------------

def _build_extract_parser(subparsers: argparse._SubParsersAction) -> argparse.ArgumentParser:
    p = subparsers.add_parser("extract", help="Extract text from a scanned PDF")
    p.add_argument("input_pdf", type=Path, help="Path to the scanned PDF")
    p.add_argument("-l", "--language", default=None,
                   help="OCR language config, e.g. eng, hin or eng+hin (default: eng)")
    p.add_argument("-o", "--output", type=Path, help="Write the JSON report here instead of stdout")
    p.add_argument("--txt", type=Path, help="Also write the extracted text to this file")

    run_group = p.add_argument_group("Scheduling")
    run_group.add_argument("-w", "--workers", type=int, help="Maximum concurrent OCR pages (default: 3)")
    run_group.add_argument("--timeout", type=float, help="Job deadline in seconds (default: 300)")
    run_group.add_argument("--no-timeout", action="store_true", help="Disable the job deadline")
    run_group.add_argument("--page-timeout", type=float, help="Per-page OCR timeout in seconds")
    run_group.add_argument("--retries", type=int, help="Retries for a page whose OCR failed (default: 0)")
    run_group.add_argument("--scratch-root", type=Path, help="Directory under which job workspaces are created")

    render_group = p.add_argument_group("Rasterization")
    render_group.add_argument("-d", "--dpi", type=int, help="DPI used to render PDF pages (default: 300)")
    render_group.add_argument("--render-mode", choices=list(RENDER_MODES),
                              help="Render page by page while OCR runs, or all pages up front")
    render_group.add_argument("--pdf-engine", choices=list(PDF_ENGINES), help="Underlying rasterizer")

    ocr_group = p.add_argument_group("OCR")
    ocr_group.add_argument("--oem", type=int, help="Tesseract engine mode (default: 1)")
    ocr_group.add_argument("--psm", type=int, help="Tesseract page segmentation mode (default: 3)")
    ocr_group.add_argument("--ocr-backend", type=str, default="tesseract",
                           help="Backend alias (tesseract, easyocr) or dotted path to an engine class")
    ocr_group.add_argument(
        "--ocr-backend-kwargs",
        type=str,
        default="{}",
        help=('Backend init kwargs as JSON or key=value pairs, e.g. '
              '\'{"preserve_interword_spaces":true}\'  or  tessdata_prefix=/opt/tessdata'),
    )

    log_group = p.add_argument_group("Logging")
    log_group.add_argument("--log-file", type=Path, help="Also write a rotating log file")
    log_group.add_argument("--no-progress", action="store_true", help="Hide the page progress bar")
    log_group.add_argument("-v", "--verbose", action="store_true", help="Debug logging on the console")
    return p


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="scanocr", description="scanocr, page-parallel OCR for scanned PDFs")
    subparsers = parser.add_subparsers(dest="command")
    _build_extract_parser(subparsers)
    subparsers.add_parser("health", help="Report whether the OCR engine is usable")
    return parser.parse_args(argv)


def _config_from_args(args: argparse.Namespace) -> ExtractionConfig:
    backend = normalize_backend_alias(args.ocr_backend)
    _preflight_backend_import(backend)

    cfg_dict = {
        "language": args.language,
        "max_workers": args.workers,
        "max_retries": args.retries,
        "page_timeout_seconds": args.page_timeout,
        "scratch_root": args.scratch_root,
        "dpi": args.dpi,
        "render_mode": args.render_mode,
        "pdf_engine": args.pdf_engine,
        "engine_mode": args.oem,
        "segmentation_mode": args.psm,
        "ocr_backend": backend,
        "ocr_backend_kwargs": _parse_backend_kwargs(args.ocr_backend_kwargs),
        "show_progress": not args.no_progress,
    }
    if args.no_timeout:
        cfg_dict["timeout_seconds"] = None
    elif args.timeout is not None:
        cfg_dict["timeout_seconds"] = args.timeout
    cfg_dict = {k: v for k, v in cfg_dict.items() if v is not None or k == "timeout_seconds"}
    try:
        return ExtractionConfig.from_dict(cfg_dict)
    except ValueError as e:
        raise SystemExit(f"Invalid option, {e}")


# -------------------------------
# Entry points
# -------------------------------

def _run_extract(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    runner = ExtractionRunner(config)
    _install_cancel_handlers(runner)

    try:
        data = args.input_pdf.read_bytes()
    except OSError as e:
        _emit({"success": False, "error": f"Cannot read {args.input_pdf}, {e}"}, args.output)
        return EXIT_INPUT_ERROR

    job = Job(document=data, language=config.language, filename=args.input_pdf.name)
    try:
        report = runner.run(job)
    except InputError as e:
        logger.error("Rejected %s, %s", args.input_pdf.name, e)
        _emit({"success": False, "error": str(e)}, args.output)
        return EXIT_INPUT_ERROR
    except (ExtractionTimeoutError, ExtractionCancelledError) as e:
        logger.error("%s", e)
        _emit({"success": False, "error": str(e)}, args.output)
        return EXIT_ABORTED
    except ScanOCRError as e:
        logger.error("Error processing PDF, %s", e)
        _emit({"success": False, "error": str(e) or "Failed to process PDF"}, args.output)
        return EXIT_FAILURE

    if args.txt:
        args.txt.parent.mkdir(parents=True, exist_ok=True)
        args.txt.write_text(report.text, encoding="utf-8")
    _emit({"success": True, **report.to_dict()}, args.output)
    return 0


def _run_health() -> int:
    from .ocr_backends.tesseract_backend import TesseractOCREngine

    try:
        payload = {
            "status": "healthy",
            "tesseract": TesseractOCREngine.version(),
            "languages": TesseractOCREngine.available_languages(),
        }
    except Exception as e:
        payload = {"status": "degraded", "error": str(e)}
    _emit(payload, None)
    return 0 if payload["status"] == "healthy" else EXIT_FAILURE


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)

    if args.command == "health":
        return _run_health()

    if args.command != "extract":
        print("Usage:\n  scanocr extract <file.pdf> [-l eng+hin] [-o report.json] [options]\n  scanocr health")
        return EXIT_INPUT_ERROR

    log_queue: Queue = Queue(-1)
    configure_queue_logging(log_queue)
    listener = setup_logging(
        log_queue,
        level=logging.DEBUG if args.verbose else logging.INFO,
        file_path=args.log_file,
    )
    listener.start()
    try:
        return _run_extract(args)
    finally:
        listener.stop()


if __name__ == "__main__":
    sys.exit(main())
