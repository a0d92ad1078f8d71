"""Tests for documents/codecs.py and documents/structure.py."""

from __future__ import annotations

import io

import docx
import pytest

from docpipeline.documents.codecs import DocxCodec, PlainTextCodec, codec_for_path
from docpipeline.documents.structure import DocumentStructure, Paragraph
from docpipeline.pipeline.errors import ValidationError


MARKDOWN = b"""Preamble before any heading.

# Scope

First clause.

Second clause.

## Definitions

Third clause.
"""


def _docx_bytes() -> bytes:
    document = docx.Document()
    document.add_heading("Scope", level=1)
    document.add_paragraph("The supplier shall deliver the goods.")
    document.add_paragraph("")
    paragraph = document.add_paragraph("Payment within ")
    paragraph.add_run("thirty days.")
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


class TestCodecForPath:

    def test_picks_by_suffix(self):
        assert isinstance(codec_for_path("a/b/report.DOCX"), DocxCodec)
        assert isinstance(codec_for_path("notes.md"), PlainTextCodec)
        assert isinstance(codec_for_path("notes.txt"), PlainTextCodec)

    def test_rejects_unknown_suffix(self):
        with pytest.raises(ValidationError, match=".pdf"):
            codec_for_path("scan.pdf")


class TestPlainTextCodec:

    def test_extract_sections(self):
        structure = PlainTextCodec().extract(MARKDOWN)

        assert [p.text for p in structure.paragraphs] == [
            "Preamble before any heading.",
            "Scope",
            "First clause.",
            "Second clause.",
            "Definitions",
            "Third clause.",
        ]
        assert [(s.title, s.level) for s in structure.sections] == [("", 0), ("Scope", 1), ("Definitions", 2)]
        assert [p.text for p in structure.sections[1].body] == ["First clause.", "Second clause."]

    def test_replace_spans_skips_missing_originals(self):
        data, applied = PlainTextCodec().replace_spans(
            MARKDOWN,
            [("First clause.", "Clause one."), ("not in the text", "x"), ("", "y")],
        )

        assert applied == 1
        assert b"Clause one." in data
        assert b"First clause." not in data

    def test_replace_spans_first_occurrence_only(self):
        data, applied = PlainTextCodec().replace_spans(b"clause and clause", [("clause", "term")])

        assert applied == 1
        assert data == b"term and clause"

    def test_replace_spans_are_located_in_the_unmodified_text(self):
        data, applied = PlainTextCodec().replace_spans(
            b"Alpha one.\n\nBeta two.\n",
            [("Alpha one.", "Beta two. Alpha one."), ("Beta two.", "Gamma.")],
        )

        assert applied == 2
        assert data == b"Beta two. Alpha one.\n\nGamma.\n"

    def test_replace_spans_drops_overlapping_originals(self):
        data, applied = PlainTextCodec().replace_spans(
            b"Payment is due monthly.",
            [("due monthly", "due weekly"), ("is due", "falls due")],
        )

        assert applied == 1
        assert data == b"Payment is due weekly."

    def test_extract_crlf_document(self):
        structure = PlainTextCodec().extract(b"# Intro\r\n\r\nFirst paragraph.\r\n\r\nSecond paragraph.\r\n")

        assert [(p.text, p.is_heading) for p in structure.paragraphs] == [
            ("Intro", True),
            ("First paragraph.", False),
            ("Second paragraph.", False),
        ]
        assert [p.text for p in structure.sections[0].body] == ["First paragraph.", "Second paragraph."]

    def test_heading_line_followed_directly_by_text(self):
        structure = PlainTextCodec().extract(b"# Intro\nBody text.\n")

        assert [(p.text, p.is_heading) for p in structure.paragraphs] == [("Intro", True), ("Body text.", False)]

    def test_rewrite_crlf_document_keeps_line_endings(self):
        data = PlainTextCodec().rewrite_paragraphs(
            b"# Intro\r\n\r\nFirst paragraph.\r\n\r\nSecond paragraph.\r\n",
            {0: "Introdu\u00e7\u00e3o", 2: "Segundo\npar\u00e1grafo."},
        )

        assert data.decode("utf-8") == (
            "# Introdu\u00e7\u00e3o\r\n\r\nFirst paragraph.\r\n\r\nSegundo\r\npar\u00e1grafo.\r\n"
        )

    def test_rewrite_keeps_heading_markers_and_layout(self):
        codec = PlainTextCodec()
        data = codec.rewrite_paragraphs(MARKDOWN, {1: "Alcance", 5: "Terceira cláusula."})

        text = data.decode("utf-8")
        assert "# Alcance\n\nFirst clause." in text
        assert "## Definitions\n\nTerceira cláusula.\n" in text
        assert text.startswith("Preamble before any heading.\n\n")


class TestDocxCodec:

    def test_extract_skips_empty_paragraphs(self):
        structure = DocxCodec().extract(_docx_bytes())

        headings = [p for p in structure.paragraphs if p.is_heading]
        assert [(p.text, p.level) for p in headings] == [("Scope", 1)]
        assert [p.text for p in structure.body_paragraphs] == [
            "The supplier shall deliver the goods.",
            "Payment within thirty days.",
        ]
        # Indices are positions in the document, empty paragraph included
        assert [p.index for p in structure.paragraphs] == [0, 1, 3]

    def test_replace_span_inside_a_run(self):
        codec = DocxCodec()
        data, applied = codec.replace_spans(_docx_bytes(), [("shall deliver", "will deliver")])

        assert applied == 1
        assert "The supplier will deliver the goods." in [p.text for p in codec.extract(data).paragraphs]

    def test_replace_span_across_runs(self):
        codec = DocxCodec()
        data, applied = codec.replace_spans(_docx_bytes(), [("within thirty", "within sixty")])

        assert applied == 1
        assert "Payment within sixty days." in [p.text for p in codec.extract(data).paragraphs]

    def test_replace_spans_are_located_before_any_edit(self):
        codec = DocxCodec()
        data, applied = codec.replace_spans(
            _docx_bytes(),
            [
                ("The supplier", "Payment within the supplier"),
                ("Payment within", "Settlement within"),
            ],
        )

        assert applied == 2
        assert [p.text for p in codec.extract(data).body_paragraphs] == [
            "Payment within the supplier shall deliver the goods.",
            "Settlement within thirty days.",
        ]

    def test_rewrite_paragraphs_by_index(self):
        codec = DocxCodec()
        data = codec.rewrite_paragraphs(_docx_bytes(), {0: "Alcance", 3: "Pagamento em trinta dias."})

        texts = [p.text for p in codec.extract(data).paragraphs]
        assert texts == ["Alcance", "The supplier shall deliver the goods.", "Pagamento em trinta dias."]


class TestBatches:

    def _structure(self, sizes: list[int]) -> DocumentStructure:
        paragraphs: list[Paragraph] = []
        for number, size in enumerate(sizes, start=1):
            paragraphs.append(Paragraph(index=len(paragraphs), text=f"Section {number}", is_heading=True, level=1))
            for i in range(size):
                paragraphs.append(Paragraph(index=len(paragraphs), text=f"s{number}p{i}"))
        return DocumentStructure.from_paragraphs(paragraphs)

    def test_splits_sections_into_fixed_size_batches(self):
        batches = self._structure([5, 2]).batches(2)

        assert [(b.section_number, b.batch_number, b.batches_in_section) for b in batches] == [
            (1, 1, 3), (1, 2, 3), (1, 3, 3), (2, 1, 1),
        ]
        assert [len(b.paragraphs) for b in batches] == [2, 2, 1, 2]
        assert all(b.total_sections == 2 for b in batches)

    def test_empty_sections_are_not_counted(self):
        batches = self._structure([2, 0, 1]).batches(10)

        assert [b.section.title for b in batches] == ["Section 1", "Section 3"]
        assert all(b.total_sections == 2 for b in batches)

    def test_headings_included_on_request(self):
        batches = self._structure([1]).batches(10, include_headings=True)

        assert [p.text for p in batches[0].paragraphs] == ["Section 1", "s1p0"]
        assert batches[0].text == "Section 1\n\ns1p0"
