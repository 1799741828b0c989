import asyncio
import io
import logging
from typing import Iterable, List, Tuple

from pypdf import PdfReader

from .errors import FileProcessingError
from .models import FileExcerpt, FileKind

logger = logging.getLogger(__name__)

TEXT_CONTENT_TYPES = {
    "application/x-yaml",
    "application/yaml",
    "application/javascript",
    "application/json",
}


def truncate(text: str, budget: int) -> str:
    """Cut `text` to at most `budget` characters. Never raises."""
    if budget <= 0:
        return ""
    return text[:budget]


def classify_upload(content_type: str) -> FileKind:
    content_type = (content_type or "").lower()
    if content_type.startswith("image/"):
        return FileKind.IMAGE
    if content_type == "application/pdf":
        return FileKind.PDF
    if content_type.startswith("text/") or content_type in TEXT_CONTENT_TYPES:
        return FileKind.TEXT
    return FileKind.OTHER


def extract_pdf_text(data: bytes, budget: int) -> str:
    """Extract text page by page, stopping once `budget` characters are collected."""
    try:
        reader = PdfReader(io.BytesIO(data))
        parts = []
        collected = 0
        for page in reader.pages:
            page_text = page.extract_text() or ""
            parts.append(page_text)
            collected += len(page_text) + 1
            if collected >= budget:
                break
    except Exception as e:
        raise FileProcessingError(f"Unable to parse PDF: {e}") from e
    return truncate("\n".join(parts), budget)


def extract_plain_text(data: bytes, budget: int) -> str:
    # a UTF-8 character is at most 4 bytes, so decoding more is wasted work
    return truncate(data[: budget * 4].decode("utf-8", errors="replace"), budget)


def extract_file_excerpt(filename: str, content_type: str, data: bytes, budget: int) -> FileExcerpt:
    """Turn one uploaded file into prompt material.

    Extraction failures are logged and replaced by a placeholder note so a
    broken attachment never fails the chat request.
    """
    content_type = content_type or "application/octet-stream"
    kind = classify_upload(content_type)
    excerpt = FileExcerpt(filename=filename, content_type=content_type, kind=kind)

    if kind is FileKind.IMAGE:
        excerpt.note = "[IMAGE UPLOADED - Analyze visual content, diagrams, charts, text in images]"
    elif kind is FileKind.PDF:
        try:
            excerpt.text = extract_pdf_text(data, budget)
        except FileProcessingError as e:
            logger.warning("PDF extraction failed for %s: %s", filename, e)
            excerpt.note = "[PDF FILE - Unable to parse, but available for context]"
    elif kind is FileKind.TEXT:
        excerpt.text = extract_plain_text(data, budget)
    else:
        excerpt.note = f"[{content_type} FILE]"
    return excerpt


async def extract_uploads(files: Iterable[Tuple[str, str, bytes]], budget: int) -> List[FileExcerpt]:
    """Extract every (filename, content_type, data) upload concurrently, off the event loop."""
    files = list(files)
    tasks = [
        asyncio.to_thread(extract_file_excerpt, filename, content_type, data, budget)
        for filename, content_type, data in files
    ]
    results = await asyncio.gather(*tasks, return_exceptions=True)
    excerpts = []
    for (filename, content_type, _), result in zip(files, results):
        if isinstance(result, BaseException):
            logger.warning("Error processing file %s: %s", filename, result)
            excerpts.append(FileExcerpt(
                filename=filename,
                content_type=content_type or "application/octet-stream",
                kind=FileKind.OTHER,
                note=f"[Error processing file: {filename}]",
            ))
        else:
            excerpts.append(result)
    return excerpts
