import io

import pytest
from PIL import Image, ImageDraw, ImageFont

import challan_image
from challan_image import ChallanRenderError, image_filename, render_challan_image, wrap_text
from i18n import Locale


DATA = {
    "type": "issue", "challan_number": "12/A", "date": "2024-04-02",
    "client": {"id": "C1", "name": "Shah Builders", "site": "Surat", "mobile": "90"},
    "plates": [{"size": "2 X 3", "quantity": 6, "notes": "from partner yard"},
               {"size": "પતરા", "quantity": 0, "notes": ""}],
    "total_quantity": 6,
}


def test_renders_jpeg_at_template_size():
    bg = Image.new("RGB", (600, 800), "#f4f0e0")
    out = render_challan_image(DATA, Locale("en"), template=bg)
    assert out[:2] == b"\xff\xd8"
    img = Image.open(io.BytesIO(out))
    assert img.format == "JPEG" and img.size == (600, 800)

def test_template_loaded_from_local_file(tmp_path, monkeypatch):
    path = tmp_path / "jama.png"
    Image.new("RGB", (300, 400), "white").save(path)
    monkeypatch.setitem(challan_image.BACKGROUNDS, "return", str(path))
    out = render_challan_image({**DATA, "type": "return"})
    assert Image.open(io.BytesIO(out)).size == (300, 400)

def test_missing_template_fails_whole_render(tmp_path):
    with pytest.raises(ChallanRenderError):
        challan_image.load_template(str(tmp_path / "nope.jpg"))
    with pytest.raises(ChallanRenderError):
        challan_image.load_template("")

def test_unreadable_template_fails(tmp_path):
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"not an image")
    with pytest.raises(ChallanRenderError):
        challan_image.load_template(str(path))

def test_wrap_text_respects_width():
    draw = ImageDraw.Draw(Image.new("RGB", (10, 10)))
    font = ImageFont.load_default(size=12)
    lines = wrap_text(draw, "one two three four five six seven eight", font, 60)
    assert len(lines) > 1
    assert " ".join(lines) == "one two three four five six seven eight"
    assert wrap_text(draw, "   ", font, 60) == [""]
    assert wrap_text(draw, "Supercalifragilistic", font, 5) == ["Supercalifragilistic"]

def test_image_filename_is_safe():
    assert image_filename(DATA) == "issue-challan-12_A.jpg"
    assert image_filename({"type": "return", "challan_number": ""}) == "return-challan-0.jpg"

@pytest.fixture
def no_gujarati_font(monkeypatch):
    monkeypatch.setattr(challan_image, "FONT_PATH", None)
    challan_image.has_gujarati_font.cache_clear(); challan_image._font.cache_clear()
    yield
    challan_image.has_gujarati_font.cache_clear(); challan_image._font.cache_clear()

def test_without_gujarati_font_image_is_drawn_in_english(no_gujarati_font):
    assert challan_image.has_gujarati_font() is False
    t = challan_image.drawing_locale(Locale("gu"))
    assert (t("Total"), t("પતરા")) == ("Total", "Patra")
    out = render_challan_image(DATA, template=Image.new("RGB", (600, 800), "white"))
    assert out[:2] == b"\xff\xd8"

def test_wrapped_note_pushes_next_plate_down(no_gujarati_font):
    draw = ImageDraw.Draw(Image.new("RGB", (400, 600), "white"))
    t = Locale("en")
    short = challan_image.draw_plates(draw, [{"size": "2 X 3", "quantity": 5, "notes": "ok"}], 10, 100, 400, t)
    long_note = "three plates bent at the corner and two need fresh oiling before the next site"
    tall = challan_image.draw_plates(draw, [{"size": "2 X 3", "quantity": 5, "notes": long_note}], 10, 100, 400, t)
    assert short >= 100 + challan_image.ITEM_SPACING
    assert tall > short
    assert challan_image.draw_plates(draw, [{"size": "2 X 3", "quantity": 0}], 10, 100, 400, t) == 100
