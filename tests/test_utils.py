from __future__ import annotations

import pytest

from scanocr.exceptions import InputError
from scanocr.utils import looks_like_pdf, normalize_language, safe_fname, validate_document


def test_pdf_header_may_follow_leading_garbage():
    assert looks_like_pdf(b"%PDF-1.7\n")
    assert looks_like_pdf(b"\r\n\x00junk%PDF-1.4\n")
    assert not looks_like_pdf(b"PK\x03\x04 zip archive")
    assert not looks_like_pdf(b"")


def test_validate_document_accepts_pdf_bytes():
    validate_document(b"%PDF-1.4\n", "Scan.PDF")


@pytest.mark.parametrize(
    "data, filename, message",
    [
        (b"", "a.pdf", "empty"),
        (b"%PDF-1.4", "a.docx", "Only PDF files"),
        (b"GIF89a", "a.pdf", "no PDF header"),
    ],
)
def test_validate_document_rejects(data, filename, message):
    with pytest.raises(InputError, match=message):
        validate_document(data, filename)


def test_normalize_language():
    assert normalize_language(" eng + hin ") == "eng+hin"
    assert normalize_language("chi_sim") == "chi_sim"
    with pytest.raises(InputError):
        normalize_language("")
    with pytest.raises(InputError):
        normalize_language("eng+../../etc")


def test_safe_fname():
    assert safe_fname("../../My Scan (final).PDF") == "my-scan-final.pdf"
    assert safe_fname("", fallback="document.pdf") == "document.pdf"
