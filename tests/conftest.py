"""
Shared fixtures: in-memory templates and data files.
"""

import datetime as dt
import io

import pytest
from openpyxl import Workbook
from pypdf import PdfReader
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas


def make_template_pdf(pages: int = 1, pagesize: tuple[float, float] = letter) -> bytes:
    """
    Build a small template PDF with a heading on each page.
    """
    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=pagesize)
    for page_number in range(pages):
        c.setFont("Times-Bold", 28)
        c.drawCentredString(pagesize[0] / 2.0, pagesize[1] - 120, "Certificate of Completion")
        c.setFont("Helvetica", 10)
        c.drawString(40, 40, f"Template page {page_number + 1}")
        c.showPage()
    c.save()
    return packet.getvalue()


def page_text(pdf_bytes: bytes, page_index: int = 0) -> str:
    return PdfReader(io.BytesIO(pdf_bytes)).pages[page_index].extract_text()


def page_content(pdf_bytes: bytes, page_index: int = 0) -> bytes:
    """
    Decoded content stream of one page.
    """
    return PdfReader(io.BytesIO(pdf_bytes)).pages[page_index].get_contents().get_data()


@pytest.fixture
def template_bytes() -> bytes:
    return make_template_pdf()


@pytest.fixture
def two_page_template_bytes() -> bytes:
    return make_template_pdf(pages=2)


@pytest.fixture
def csv_bytes() -> bytes:
    return "Name,Course,Score\nAlice,Physics,95\nBob,Chemistry,88\n".encode("utf-8")


@pytest.fixture
def xlsx_bytes() -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(["Name", "Score", "Issued"])
    ws.append(["Alice", 95.0, dt.date(2024, 5, 1)])
    ws.append([None, None, None])
    ws.append(["Bob", 88.5, dt.date(2024, 6, 15)])
    packet = io.BytesIO()
    wb.save(packet)
    return packet.getvalue()
