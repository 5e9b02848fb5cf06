import pytest

from exactedit.fonts import FontEncoding
from pdfs import PdfBuilder


@pytest.fixture
def builder():
    b = PdfBuilder()
    yield b
    b.doc.close()


@pytest.fixture
def latin1():
    return {"F1": FontEncoding.latin1("F1", "Helvetica")}


@pytest.fixture
def hello_pdf(builder):
    """Scenario page: one WinAnsi font, one Tj."""
    builder.add_page([b"BT /F1 12 Tf 100 700 Td (Hello) Tj ET"], {"F1": builder.simple_font()})
    return builder.tobytes()
