"""Tests for uploaded-file text extraction."""

import pytest

from ezstudy.files import extract_file_excerpt, extract_uploads, truncate
from ezstudy.models import FileKind


def test_truncate_is_safe_for_any_budget() -> None:
    assert truncate("abcdef", 3) == "abc"
    assert truncate("ab", 10) == "ab"
    assert truncate("abc", 0) == ""


def test_text_file_is_truncated_to_budget() -> None:
    data = ("é" * 5000).encode("utf-8")
    excerpt = extract_file_excerpt("notes.md", "text/markdown", data, 3000)

    assert excerpt.kind is FileKind.TEXT
    assert excerpt.text == "é" * 3000


def test_image_gets_placeholder_note() -> None:
    excerpt = extract_file_excerpt("diagram.png", "image/png", b"\x89PNG", 3000)
    assert excerpt.kind is FileKind.IMAGE
    assert excerpt.text is None
    assert "IMAGE UPLOADED" in excerpt.note


def build_pdf(pages: list) -> bytes:
    """Assemble a minimal PDF with one Helvetica text page per list of lines."""
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        None,
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
    ]
    kids = []
    for lines in pages:
        ops = ["BT", "/F1 12 Tf", "72 720 Td", "14 TL"]
        ops += [f"({line}) Tj T*" for line in lines]
        ops.append("ET")
        stream = "\n".join(ops).encode("latin-1")
        page_id = len(objects) + 1
        kids.append(f"{page_id} 0 R")
        objects.append(
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 3 0 R >> >> /Contents {page_id + 1} 0 R >>".encode()
        )
        objects.append(b"<< /Length %d >>\nstream\n%s\nendstream" % (len(stream), stream))
    objects[1] = f"<< /Type /Pages /Kids [{' '.join(kids)}] /Count {len(kids)} >>".encode()

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n%s\nendobj\n" % (number, body)
    xref = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(objects) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref)
    return bytes(out)


def test_pdf_text_is_extracted_within_budget() -> None:
    pages = [
        [f"Page {n} line {k}: chlorophyll absorbs light energy." for k in range(6)]
        for n in range(1, 4)
    ]
    data = build_pdf(pages)

    full = extract_file_excerpt("bio.pdf", "application/pdf", data, 10_000)
    assert full.kind is FileKind.PDF
    assert "Page 1 line 0" in full.text
    assert "Page 3 line 5" in full.text
    assert len(full.text) > 120

    excerpt = extract_file_excerpt("bio.pdf", "application/pdf", data, 120)
    assert excerpt.kind is FileKind.PDF
    assert excerpt.note is None
    assert "Page 1 line 0" in excerpt.text
    assert len(excerpt.text) <= 120
    assert "Page 2" not in excerpt.text


def test_broken_pdf_degrades_to_placeholder() -> None:
    excerpt = extract_file_excerpt("broken.pdf", "application/pdf", b"definitely not a pdf", 3000)
    assert excerpt.kind is FileKind.PDF
    assert excerpt.text is None
    assert excerpt.note == "[PDF FILE - Unable to parse, but available for context]"


def test_unknown_type_is_described() -> None:
    excerpt = extract_file_excerpt("archive.zip", "application/zip", b"PK", 3000)
    assert excerpt.kind is FileKind.OTHER
    assert excerpt.note == "[application/zip FILE]"


@pytest.mark.asyncio
async def test_extract_uploads_keeps_input_order() -> None:
    excerpts = await extract_uploads(
        [
            ("a.txt", "text/plain", b"first"),
            ("b.png", "image/png", b""),
            ("c.yaml", "application/x-yaml", b"key: value"),
        ],
        budget=100,
    )
    assert [e.filename for e in excerpts] == ["a.txt", "b.png", "c.yaml"]
    assert excerpts[0].text == "first"
    assert excerpts[2].text == "key: value"
