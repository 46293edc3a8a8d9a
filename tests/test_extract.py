"""Tests for text extraction."""

from __future__ import annotations

import io

import pytest

from docflow.errors import ExtractionError, ExtractionErrorKind
from docflow.extract import SUPPORTED_EXTENSIONS, can_extract, extract_document, extract_file


class TestPlainText:
    def test_text_is_stripped(self):
        doc = extract_document(b"\n  # Notes\n\nbody  \n\n", ".txt")
        assert doc.text == "# Notes\n\nbody"
        assert doc.page_count is None

    def test_markdown_without_dot(self):
        assert extract_document(b"# Title", "md").text == "# Title"

    def test_extension_case_insensitive(self):
        assert extract_document(b"x", ".TXT").text == "x"

    def test_byte_order_mark_removed(self):
        assert extract_document("\ufeffhello".encode("utf-8"), ".txt").text == "hello"

    def test_invalid_utf8_replaced(self):
        doc = extract_document(b"caf\xe9 ok", ".txt")
        assert doc.text == "caf\ufffd ok"


class TestErrors:
    @pytest.mark.parametrize("extension", [".exe", ".doc", ".png", ""])
    def test_unsupported_extension(self, extension):
        with pytest.raises(ExtractionError) as exc_info:
            extract_document(b"data", extension)
        assert exc_info.value.kind is ExtractionErrorKind.UNSUPPORTED_FORMAT
        assert not exc_info.value.retryable

    @pytest.mark.parametrize("extension", [".pdf", ".docx", ".pptx", ".xlsx"])
    def test_corrupt_document(self, extension):
        with pytest.raises(ExtractionError) as exc_info:
            extract_document(b"definitely not a document", extension)
        assert exc_info.value.kind is ExtractionErrorKind.MALFORMED_FILE

    def test_missing_file(self, tmp_path):
        with pytest.raises(ExtractionError):
            extract_file(tmp_path / "nope.txt")


def test_can_extract():
    assert SUPPORTED_EXTENSIONS == {".pdf", ".docx", ".pptx", ".xlsx", ".txt", ".md"}
    assert can_extract(".PDF")
    assert can_extract("docx")
    assert not can_extract(".odt")


def test_extract_file(tmp_path):
    path = tmp_path / "notes.md"
    path.write_text("# Heading\n\ntext\n", encoding="utf-8")
    assert extract_file(path).text == "# Heading\n\ntext"


class TestDocuments:
    def test_pdf(self):
        import fitz

        pdf = fitz.open()
        for text in ("First page", "Second page"):
            page = pdf.new_page()
            page.insert_text((72, 72), text)
        data = pdf.tobytes()
        pdf.close()

        doc = extract_document(data, ".pdf")
        assert doc.page_count == 2
        assert doc.text == "First page\n\nSecond page"

    def test_docx(self):
        from docx import Document

        document = Document()
        document.add_paragraph("Introduction")
        document.add_paragraph("   ")
        document.add_paragraph("Details here")
        table = document.add_table(rows=1, cols=2)
        table.rows[0].cells[0].text = "key"
        table.rows[0].cells[1].text = "value"
        buffer = io.BytesIO()
        document.save(buffer)

        doc = extract_document(buffer.getvalue(), ".docx")
        assert doc.text == "Introduction\n\nDetails here\n\nkey | value"

    def test_pptx(self):
        from pptx import Presentation

        prs = Presentation()
        for title, body in (("Intro", "first point"), ("Method", "second point")):
            slide = prs.slides.add_slide(prs.slide_layouts[1])
            slide.shapes.title.text = title
            slide.placeholders[1].text = body
        buffer = io.BytesIO()
        prs.save(buffer)

        doc = extract_document(buffer.getvalue(), ".pptx")
        assert doc.page_count == 2
        assert doc.text == "# Intro\nfirst point\n\n# Method\nsecond point"

    def test_xlsx(self):
        import openpyxl

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Grades"
        ws.append(["name", "score"])
        ws.append(["ada", 30])
        ws.append([None, None])
        wb.create_sheet("Empty")
        buffer = io.BytesIO()
        wb.save(buffer)

        doc = extract_document(buffer.getvalue(), ".xlsx")
        assert doc.page_count == 2
        assert doc.text == "# Grades\nname score\nada 30"
