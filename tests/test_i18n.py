import pytest

from i18n import DEFAULT_LANGUAGE, TRANSLATIONS, Locale, gujarati_font_path, normalize_language


def test_default_is_gujarati():
    assert DEFAULT_LANGUAGE == "gu"
    assert Locale()("Issue Challan") == "ઉધાર ચલણ"
    assert Locale().html_lang == "gu-IN"

def test_english_lookup():
    t = Locale("en")
    assert t("Site") == "Site" and t.translate("Total") == "Total"
    assert t.html_lang == "en-US"

def test_unknown_key_comes_back_unchanged():
    assert Locale("gu")("Some new label") == "Some new label"

@pytest.mark.parametrize("code,expected", [("EN", "en"), (" gu ", "gu"), ("fr", "gu"), (None, "gu")])
def test_normalize_language(code, expected):
    assert normalize_language(code) == expected

def test_every_entry_has_both_languages():
    assert all({"gu", "en"} <= set(v) for v in TRANSLATIONS.values())

def test_drawing_without_gujarati_font_falls_back_to_latin_english():
    t = Locale("gu").for_font(False)
    assert t("Issue Challan") == "Issue Challan"
    assert t("પતરા") == "Patra"
    assert t("Customer 7") == "Customer 7"

def test_drawing_with_gujarati_font_keeps_locale():
    loc = Locale("gu")
    assert loc.for_font(True) is loc

def test_gujarati_font_path(tmp_path):
    font = tmp_path / "NotoSansGujarati-Regular.ttf"
    font.write_bytes(b"")
    assert gujarati_font_path(str(font), candidates=()) == str(font)
    assert gujarati_font_path(str(tmp_path / "missing.ttf"), candidates=(str(font),)) == str(font)
    assert gujarati_font_path(None, candidates=()) is None
