"""
Document codecs — read a document's paragraphs and write edits back.

Two formats are supported:
    - plain text / markdown: blank-line separated paragraphs, `#` headings
    - .docx: python-docx body paragraphs, "Heading N" / "Title" styles

Edits never rebuild a document from scratch: `replace_spans` and
`rewrite_paragraphs` only touch the text they were asked to change.
"""

from __future__ import annotations

import io
import re
from abc import ABC, abstractmethod
from pathlib import PurePosixPath

import docx

from docpipeline.documents.structure import DocumentStructure, Paragraph
from docpipeline.pipeline.errors import ValidationError

DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_HEADING_RE = re.compile(r"(#{1,6})[ \t]+(.*)")
_HEADING_LINE_RE = re.compile(r"\s*#{1,6}[ \t]+[^\r\n]*(\r?\n)")
_BLOCK_SPLIT_RE = re.compile(r"(\r?\n[ \t]*(?:\r?\n)+)")
_NEWLINE_RE = re.compile(r"\r?\n")


def _find_free(text: str, original: str, claimed: list[tuple[int, int, str]]) -> int | None:
    """First occurrence of `original` that overlaps no claimed span."""
    start = text.find(original)
    while start != -1:
        end = start + len(original)
        if all(end <= s or start >= e for s, e, _ in claimed):
            return start
        start = text.find(original, start + 1)
    return None


def _apply_spans(text: str, spans: list[tuple[int, int, str]]) -> str:
    # Back to front so earlier offsets stay valid
    for start, end, proposed in sorted(spans, reverse=True):
        text = text[:start] + proposed + text[end:]
    return text


class DocumentCodec(ABC):
    """Narrow interface over one document format."""

    suffixes: tuple[str, ...] = ()
    content_type: str = "application/octet-stream"

    @abstractmethod
    def extract(self, data: bytes) -> DocumentStructure:
        ...

    @abstractmethod
    def replace_spans(self, data: bytes, replacements: list[tuple[str, str]]) -> tuple[bytes, int]:
        """
        Replace the first exact occurrence of each original text.

        Every span is located in the unmodified document, so one edit never
        lands on text another edit inserted; overlapping spans are dropped.
        Returns the new document and how many replacements matched;
        originals that are not found are skipped.
        """
        ...

    @abstractmethod
    def rewrite_paragraphs(self, data: bytes, texts: dict[int, str]) -> bytes:
        """Replace whole paragraphs by index (as numbered by `extract`)."""
        ...


class PlainTextCodec(DocumentCodec):
    suffixes = (".txt", ".md", ".markdown", "")
    content_type = "text/plain; charset=utf-8"

    def _blocks(self, text: str) -> list[str]:
        # Even positions hold paragraphs, odd positions hold separators
        blocks: list[str] = []
        for position, part in enumerate(_BLOCK_SPLIT_RE.split(text)):
            if position % 2:
                blocks.append(part)
                continue
            # A heading line is its own paragraph even without a blank line after it
            heading = _HEADING_LINE_RE.match(part)
            while heading and heading.end() < len(part):
                blocks += [part[:heading.start(1)], heading.group(1)]
                part = part[heading.end():]
                heading = _HEADING_LINE_RE.match(part)
            blocks.append(part)
        return blocks

    def extract(self, data: bytes) -> DocumentStructure:
        text = data.decode("utf-8")
        paragraphs: list[Paragraph] = []
        for block in self._blocks(text)[::2]:
            stripped = block.strip()
            if not stripped:
                continue
            heading = _HEADING_RE.fullmatch(stripped)
            if heading:
                paragraphs.append(Paragraph(
                    index=len(paragraphs),
                    text=heading.group(2).strip(),
                    is_heading=True,
                    level=len(heading.group(1)),
                ))
            else:
                paragraphs.append(Paragraph(index=len(paragraphs), text=stripped))
        return DocumentStructure.from_paragraphs(paragraphs)

    def replace_spans(self, data: bytes, replacements: list[tuple[str, str]]) -> tuple[bytes, int]:
        text = data.decode("utf-8")
        spans: list[tuple[int, int, str]] = []
        for original, proposed in replacements:
            if not original:
                continue
            start = _find_free(text, original, spans)
            if start is not None:
                spans.append((start, start + len(original), proposed))
        return _apply_spans(text, spans).encode("utf-8"), len(spans)

    def rewrite_paragraphs(self, data: bytes, texts: dict[int, str]) -> bytes:
        text = data.decode("utf-8")
        newline = "\r\n" if "\r\n" in text else "\n"
        parts = self._blocks(text)
        index = 0
        for position in range(0, len(parts), 2):
            block = parts[position]
            stripped = block.strip()
            if not stripped:
                continue
            if index in texts:
                heading = _HEADING_RE.fullmatch(stripped)
                replacement = _NEWLINE_RE.sub(newline, texts[index])
                if heading:
                    replacement = f"{heading.group(1)} {replacement}"
                parts[position] = block.replace(stripped, replacement, 1)
            index += 1
        return "".join(parts).encode("utf-8")


class DocxCodec(DocumentCodec):
    suffixes = (".docx",)
    content_type = DOCX_CONTENT_TYPE

    @staticmethod
    def _heading_level(paragraph) -> int:
        style = paragraph.style.name if paragraph.style is not None else ""
        if style == "Title":
            return 1
        if style.startswith("Heading"):
            digits = style.removeprefix("Heading").strip()
            return int(digits) if digits.isdigit() else 1
        return 0

    def extract(self, data: bytes) -> DocumentStructure:
        document = docx.Document(io.BytesIO(data))
        paragraphs: list[Paragraph] = []
        for position, para in enumerate(document.paragraphs):
            text = para.text.strip()
            if not text:
                continue
            level = self._heading_level(para)
            paragraphs.append(Paragraph(
                index=position,
                text=text,
                is_heading=level > 0,
                level=level,
            ))
        return DocumentStructure.from_paragraphs(paragraphs)

    @staticmethod
    def _set_text(paragraph, text: str) -> None:
        """Put `text` in the first run and empty the rest (keeps first run formatting)."""
        runs = paragraph.runs
        if not runs:
            paragraph.add_run(text)
            return
        runs[0].text = text
        for run in runs[1:]:
            run.text = ""

    @staticmethod
    def _save(document) -> bytes:
        buffer = io.BytesIO()
        document.save(buffer)
        return buffer.getvalue()

    @classmethod
    def _apply_to_runs(cls, paragraph, spans: list[tuple[int, int, str]]) -> None:
        """Apply paragraph-level spans run by run, so untouched runs keep their formatting."""
        runs = paragraph.runs
        bounds: list[tuple[int, int]] = []
        offset = 0
        for run in runs:
            bounds.append((offset, offset + len(run.text)))
            offset += len(run.text)

        per_run: dict[int, list[tuple[int, int, str]]] = {}
        for start, end, proposed in spans:
            owner = next((i for i, (s, e) in enumerate(bounds) if s <= start and end <= e), None)
            if owner is None:
                # Span crosses run boundaries
                cls._set_text(paragraph, _apply_spans("".join(r.text for r in runs), spans))
                return
            run_start = bounds[owner][0]
            per_run.setdefault(owner, []).append((start - run_start, end - run_start, proposed))

        for owner, run_spans in per_run.items():
            runs[owner].text = _apply_spans(runs[owner].text, run_spans)

    def replace_spans(self, data: bytes, replacements: list[tuple[str, str]]) -> tuple[bytes, int]:
        document = docx.Document(io.BytesIO(data))
        paragraphs = document.paragraphs
        texts = ["".join(run.text for run in para.runs) for para in paragraphs]
        claimed: dict[int, list[tuple[int, int, str]]] = {}
        for original, proposed in replacements:
            if not original:
                continue
            for position, text in enumerate(texts):
                start = _find_free(text, original, claimed.get(position, []))
                if start is not None:
                    claimed.setdefault(position, []).append((start, start + len(original), proposed))
                    break

        for position, spans in claimed.items():
            self._apply_to_runs(paragraphs[position], spans)
        return self._save(document), sum(len(spans) for spans in claimed.values())

    def rewrite_paragraphs(self, data: bytes, texts: dict[int, str]) -> bytes:
        document = docx.Document(io.BytesIO(data))
        paragraphs = document.paragraphs
        for index, text in texts.items():
            if 0 <= index < len(paragraphs):
                self._set_text(paragraphs[index], text)
        return self._save(document)


_CODECS: tuple[DocumentCodec, ...] = (DocxCodec(), PlainTextCodec())


def codec_for_path(path: str) -> DocumentCodec:
    """Pick the codec from the file suffix."""
    suffix = PurePosixPath(path).suffix.lower()
    for codec in _CODECS:
        if suffix in codec.suffixes:
            return codec
    raise ValidationError(f"Unsupported document format: '{suffix or path}'")
