import io

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from form_fields import FieldDescriptor, FieldKind


def build_form_pdf() -> bytes:
    """A one-page form with one field of every supported kind."""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    c.drawString(72, 740, "Request for Taxpayer Identification Number")
    c.drawString(72, 700, "Name")

    form = c.acroForm
    form.textfield(name="full_name", tooltip="Full name", x=72, y=670, width=300, height=20, maxlen=20)
    form.textfield(name="address", tooltip="Address", x=72, y=630, width=300, height=20)
    form.checkbox(name="is_llc", tooltip="LLC", x=72, y=590, size=14, checked=False)
    form.radio(name="entity", tooltip="Entity", value="C", selected=False, x=72, y=550, size=14)
    form.radio(name="entity", tooltip="Entity", value="S", selected=False, x=100, y=550, size=14)
    form.radio(name="entity", tooltip="Entity", value="P", selected=True, x=128, y=550, size=14)
    form.choice(name="state", tooltip="State", value="CA", options=["CA", "NY", "TX"],
                x=72, y=500, width=100, height=20)

    c.showPage()
    c.save()
    return buffer.getvalue()


def build_plain_pdf() -> bytes:
    """A PDF with text but no form."""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    c.drawString(72, 740, "Just a letter, nothing to fill in")
    c.showPage()
    c.save()
    return buffer.getvalue()


@pytest.fixture
def form_pdf() -> bytes:
    return build_form_pdf()


@pytest.fixture
def plain_pdf() -> bytes:
    return build_plain_pdf()


@pytest.fixture
def sample_fields():
    return [
        FieldDescriptor(name="full_name", kind=FieldKind.TEXT, max_length=20),
        FieldDescriptor(name="is_llc", kind=FieldKind.CHECKBOX),
    ]
