import io

import challan_pdf
from challan_pdf import _wrap, draw_challan_pdf, pdf_filename
from i18n import Locale


def _data(n_plates=2):
    plates = [{"size": "2 X 3", "quantity": 10, "notes": "partner stock"},
              {"size": "પતરા", "quantity": 4, "notes": ""}][:n_plates]
    return {"type": "return", "challan_number": "7", "date": "2024-05-01",
            "client": {"id": "C2", "name": "Mehta", "site": "Anand", "mobile": "98"},
            "plates": plates, "total_quantity": sum(p["quantity"] for p in plates)}


def test_pdf_is_written():
    buf = io.BytesIO()
    draw_challan_pdf(buf, _data(), Locale("en"))
    pdf = buf.getvalue()
    assert pdf.startswith(b"%PDF")
    assert b"%%EOF" in pdf[-32:]

def test_pdf_with_no_plates_and_default_locale():
    buf = io.BytesIO()
    draw_challan_pdf(buf, _data(0))
    assert buf.getvalue().startswith(b"%PDF")

def test_wrap_splits_on_width():
    lines = _wrap("alpha beta gamma delta epsilon", 60)
    assert len(lines) > 1 and " ".join(lines) == "alpha beta gamma delta epsilon"
    assert _wrap("\n") == [""]

def test_pdf_filename():
    assert pdf_filename(_data()) == "return-challan-7.pdf"
    assert pdf_filename({"type": "issue", "challan_number": "A 1"}) == "issue-challan-A_1.pdf"

def test_helvetica_challan_is_drawn_in_english(monkeypatch):
    monkeypatch.setitem(challan_pdf._fonts, "names", ("Helvetica", "Helvetica-Bold"))
    t = challan_pdf.drawing_locale(Locale("gu"))
    assert t("Issue Challan") == "Issue Challan"
    assert t("પતરા") == "Patra"

def test_gujarati_font_keeps_gujarati_labels(monkeypatch):
    monkeypatch.setitem(challan_pdf._fonts, "names", ("ChallanFont", "ChallanFont"))
    assert challan_pdf.drawing_locale(Locale("gu"))("Issue Challan") == "ઉધાર ચલણ"
