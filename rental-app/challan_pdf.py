# Printable Udhar / Jama challan PDF (reportlab), office copy + client copy on one A4 page.
#
# Env: COMPANY_NAME, COMPANY_TAGLINE, COMPANY_ADDRESS, COMPANY_MOBILE,
#      CHALLAN_FONT_PATH (TTF with Gujarati glyphs; a system Noto/Lohit Gujarati font is
#      looked for next, and without one the challan is drawn in English with Helvetica)

import logging, os, re

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from i18n import Locale, gujarati_font_path
from ledger import ISSUE, PLATE_SIZES, format_date

log = logging.getLogger(__name__)

COMPANY_NAME    = os.getenv("COMPANY_NAME", "NO WERE TECH")
COMPANY_TAGLINE = os.getenv("COMPANY_TAGLINE", "Centering Plates Rental Service")
COMPANY_ADDRESS = os.getenv("COMPANY_ADDRESS", "")
COMPANY_MOBILE  = os.getenv("COMPANY_MOBILE", "")
FONT_PATH       = gujarati_font_path(os.getenv("CHALLAN_FONT_PATH", "").strip())

ROW_H = 14

_fonts = {}

def _font_names():
    """(regular, bold) font names; a configured TTF is used for both."""
    if "names" in _fonts:
        return _fonts["names"]
    names = ("Helvetica", "Helvetica-Bold")
    if FONT_PATH:
        try:
            pdfmetrics.registerFont(TTFont("ChallanFont", FONT_PATH))
            names = ("ChallanFont", "ChallanFont")
        except Exception as e:  # reportlab raises TTFError or plain IOError
            log.warning("PDF font %s not registered: %s", FONT_PATH, e)
    _fonts["names"] = names
    return names

def drawing_locale(locale=None):
    return (locale or Locale()).for_font(_font_names()[0] != "Helvetica")

def _wrap(text, max_width, font="Helvetica", size=9):
    text = (text or "").replace("\r", " ").replace("\n", " ").strip()
    if not text: return [""]
    words = text.split()
    lines, line = [], ""
    for w in words:
        test = (line + " " + w).strip()
        if pdfmetrics.stringWidth(test, font, size) <= max_width: line = test
        else:
            if line: lines.append(line)
            line = w
    if line: lines.append(line)
    return lines

def draw_challan_pdf(buf, data, locale=None):
    """Write a two-copy challan PDF for `data` (see ledger.challan_data) into buf."""
    t = drawing_locale(locale)
    regular, bold = _font_names()
    c = canvas.Canvas(buf, pagesize=A4)
    width, height = A4
    plates = data.get("plates") or []
    n_rows = max(len(PLATE_SIZES), len(plates))
    title = t("Issue Challan") if data.get("type") == ISSUE else t("Return Challan")
    client = data.get("client") or {}

    def one_copy(top_y, copy_label):
        L, R = 24, width-24
        T = top_y

        c.setLineWidth(0.7)
        c.setFillColorRGB(0.93, 0.93, 0.93)
        c.rect(L+1, T-22, R-L-2, 22, fill=1, stroke=1)
        c.setFillColor(colors.black)
        c.setFont(bold, 14)
        c.drawCentredString((L+R)/2, T-22+5, t(COMPANY_NAME))
        c.setFont(regular, 8)
        c.drawRightString(R-8, T-22+7, copy_label)

        y = T-22-6
        c.setFont(bold, 11)
        c.drawString(L+8, y-14, f"{title} - {t(COMPANY_TAGLINE)}")
        c.setFont(regular, 9)
        ay = y - 28
        if COMPANY_ADDRESS:
            for ln in _wrap(f"Address: {COMPANY_ADDRESS}", R-L-18, regular, 9)[:2]:
                c.drawString(L+8, ay, ln); ay -= 12
        if COMPANY_MOBILE:
            c.drawString(L+8, ay, f"{t('Mobile Number')}: {COMPANY_MOBILE}"); ay -= 12

        y = ay - 8
        part_h = 64
        left_w = (R - L - 2) / 2
        c.rect(L+1, y-part_h, left_w, part_h)
        c.rect(L+1+left_w, y-part_h, left_w, part_h)

        c.setFont(bold, 10)
        c.drawString(L+8, y-14, f"{t('Name')}: {client.get('name') or '—'}")
        c.setFont(regular, 9)
        c.drawString(L+8, y-28, f"{t('Client ID')}: {client.get('id') or ''}")
        site = _wrap(f"{t('Site')}: {client.get('site') or ''}", left_w-16, regular, 9)
        c.drawString(L+8, y-42, site[0])
        c.drawString(L+8, y-56, f"{t('Mobile Number')}: {client.get('mobile') or ''}")

        mx = L+10+left_w
        c.setFont(bold, 10); c.drawString(mx, y-14, title)
        c.setFont(regular, 9)
        c.drawString(mx, y-32, f"{t('Challan Number')}: {data.get('challan_number') or ''}")
        c.drawString(mx, y-48, f"{t('Date')}: {format_date(data.get('date'))}")

        ytbl = y-part_h-10
        table_w = (R-L-2)
        w_no, w_size, w_qty = 36, 130, 80
        w_note = table_w - (w_no + w_size + w_qty)
        widths  = [w_no, w_size, w_qty, w_note]
        headers = ["No.", t("Plate Size"), t("Quantity"), t("Notes")]
        total_h = 16 + n_rows*ROW_H
        c.rect(L+1, ytbl-total_h, table_w, total_h)

        x = L+1; c.setFont(bold, 9)
        for w, h in zip(widths, headers):
            c.rect(x, ytbl-16, w, 16); c.drawString(x+6, ytbl-12, h); x += w

        data_top_y = ytbl-16; data_h = n_rows*ROW_H
        x = L+1
        for w in widths[:-1]:
            x += w; c.line(x, data_top_y, x, data_top_y - data_h)

        c.setFont(regular, 9)
        for r in range(n_rows):
            if r >= len(plates): break
            p = plates[r]
            row_y = data_top_y - (r*ROW_H) - 10
            x = L+1
            c.drawRightString(x+w_no-6, row_y, str(r+1)); x += w_no
            c.drawString(x+6, row_y, t(p.get("size") or "")); x += w_size
            c.drawRightString(x+w_qty-6, row_y, str(p.get("quantity") or 0)); x += w_qty
            note = _wrap(p.get("notes") or "", w_note-12, regular, 9)[0]
            c.drawString(x+6, row_y, note)

        sub_y_top = data_top_y - data_h
        c.setFont(bold, 9)
        c.rect(L+1, sub_y_top-18, w_no + w_size, 18)
        c.drawString(L+7, sub_y_top-12, t("Total"))
        c.rect(L+1+w_no+w_size, sub_y_top-18, w_qty, 18)
        c.drawRightString(L+1+w_no+w_size+w_qty-6, sub_y_top-12, str(data.get("total_quantity") or 0))

        sig_top = sub_y_top - 22
        c.setFont(regular, 9)
        c.drawString(L+10, sig_top-22, "Receiver's Signature")
        c.drawRightString(R-10, sig_top-22, "Authorised Signatory")

        bottom_y = sig_top - 30
        c.rect(L, bottom_y, R-L, T - bottom_y)

    one_copy(height-24, "Office Copy")
    one_copy((height/2)-8, "Client Copy")
    c.save()

def pdf_filename(data):
    safe = re.sub(r"[^A-Za-z0-9_-]+", "_", str(data.get("challan_number") or "")).strip("_") or "0"
    return f"{data.get('type')}-challan-{safe}.pdf"
