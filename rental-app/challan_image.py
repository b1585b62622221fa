# Shareable JPEG challan: text drawn over the Udhar / Jama background template.
#
# Env: ISSUE_BG_URL, RETURN_BG_URL (http(s) URL or local path), CHALLAN_FONT_PATH (TTF with Gujarati glyphs;
#      without a usable Gujarati font the text is drawn in English)

import io, logging, os, re
from functools import lru_cache

import requests
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from i18n import Locale, gujarati_font_path
from ledger import ISSUE, RETURN, format_date

log = logging.getLogger(__name__)

BACKGROUNDS = {
    ISSUE:  os.getenv("ISSUE_BG_URL", "https://i.ibb.co/yBqbMV7M/udhar-bg.jpg"),
    RETURN: os.getenv("RETURN_BG_URL", "https://i.ibb.co/3ymhR5qp/jama-bg.jpg"),
}
FONT_PATH    = gujarati_font_path(os.getenv("CHALLAN_FONT_PATH", "").strip())
JPEG_QUALITY = 80

# (x, y) as fractions of the template width / height
POSITIONS = {
    "challan_number": (0.70, 0.15),
    "date":           (0.70, 0.20),
    "client_name":    (0.15, 0.30),
    "client_id":      (0.15, 0.35),
    "client_site":    (0.15, 0.40),
    "client_mobile":  (0.15, 0.45),
    "items_start":    (0.10, 0.55),
    "total":          (0.70, 0.85),
}
ITEM_SPACING = 25

HTTP = requests.Session()
HTTP.headers.update({
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome Safari"
})


class ChallanRenderError(Exception):
    """The challan image could not be produced; nothing partial is returned."""


def load_template(src):
    u = (src or "").strip()
    if not u:
        raise ChallanRenderError("No background template configured")
    try:
        if u.startswith("http://") or u.startswith("https://"):
            r = HTTP.get(u, timeout=10)
            r.raise_for_status()
            data = r.content
        else:
            with open(u, "rb") as f:
                data = f.read()
        img = Image.open(io.BytesIO(data))
        img.load()
        return img.convert("RGB")
    except (requests.RequestException, OSError, UnidentifiedImageError) as e:
        log.error("Background load failed (%s): %s", u, e)
        raise ChallanRenderError("Failed to load background image") from e

@lru_cache(maxsize=1)
def has_gujarati_font():
    if not FONT_PATH:
        return False
    try:
        ImageFont.truetype(FONT_PATH, 12)
        return True
    except OSError as e:
        log.warning("Font %s unusable, drawing in English: %s", FONT_PATH, e)
        return False

@lru_cache(maxsize=16)
def _font(size):
    if has_gujarati_font():
        return ImageFont.truetype(FONT_PATH, size)
    return ImageFont.load_default(size=size)

def drawing_locale(locale=None):
    return (locale or Locale()).for_font(has_gujarati_font())

def wrap_text(draw, text, font, max_width):
    """Greedy word wrap measured with the real font; a single long word keeps its own line."""
    text = re.sub(r"\s+", " ", text or "").strip()
    if not text: return [""]
    lines, line = [], ""
    for w in text.split(" "):
        test = (line + " " + w).strip()
        if draw.textlength(test, font=font) <= max_width or not line:
            line = test
        else:
            lines.append(line)
            line = w
    if line: lines.append(line)
    return lines

def _draw_text(draw, text, x, y, size, max_width=None):
    font = _font(size)
    lines = wrap_text(draw, text, font, max_width) if max_width else [text]
    for ln in lines:
        draw.text((x, y), ln, fill=(0, 0, 0), font=font)
        y += size + 4
    return y

def draw_plates(draw, plates, x, y, width, t):
    """Plate lines from (x, y) down; returns the y below the last one."""
    for plate in plates:
        if not plate.get("quantity"):
            continue
        bottom = _draw_text(draw, f"{t(plate.get('size') or '')}: {plate['quantity']}", x, y, 12)
        note = (plate.get("notes") or "").strip()
        if note:
            bottom = _draw_text(draw, f"  {t('Notes')}: {note}", x + 20, y + 15, 10, max_width=width * 0.6)
        # a wrapped note pushes the next plate down
        y = max(y + ITEM_SPACING, bottom + 4)
    return y

def render_challan_image(data, locale=None, template=None):
    """Return JPEG bytes for one challan.

    `template` overrides the background lookup (a PIL image); otherwise the
    Udhar/Jama template for data["type"] is fetched.
    """
    t = drawing_locale(locale)
    bg = template if template is not None else load_template(BACKGROUNDS.get(data.get("type")))
    W, H = bg.size
    if W <= 0 or H <= 0:
        raise ChallanRenderError("Background image is empty")
    canvas = Image.new("RGB", (W, H), "white")
    canvas.paste(bg.convert("RGB"), (0, 0))
    draw = ImageDraw.Draw(canvas)

    def at(key):
        fx, fy = POSITIONS[key]
        return W * fx, H * fy

    client = data.get("client") or {}
    _draw_text(draw, str(data.get("challan_number") or ""), *at("challan_number"), 16)
    _draw_text(draw, format_date(data.get("date")), *at("date"), 14)
    _draw_text(draw, client.get("name") or "", *at("client_name"), 14, max_width=W * 0.4)
    _draw_text(draw, f"ID: {client.get('id') or ''}", *at("client_id"), 12)
    _draw_text(draw, f"{t('Site')}: {client.get('site') or ''}", *at("client_site"), 12, max_width=W * 0.4)
    _draw_text(draw, f"{t('Mobile Number')}: {client.get('mobile') or ''}", *at("client_mobile"), 12)

    draw_plates(draw, data.get("plates") or [], *at("items_start"), W, t)

    _draw_text(draw, f"{t('Total')}: {data.get('total_quantity') or 0}", *at("total"), 16)

    out = io.BytesIO()
    canvas.save(out, format="JPEG", quality=JPEG_QUALITY)
    return out.getvalue()

def image_filename(data):
    safe = re.sub(r"[^A-Za-z0-9_-]+", "_", str(data.get("challan_number") or "")).strip("_") or "0"
    return f"{data.get('type')}-challan-{safe}.jpg"
