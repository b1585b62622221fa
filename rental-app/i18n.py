# Gujarati / English string lookup for screens, PDFs and challan images.

import os

LANGUAGES = ("gu", "en")
DEFAULT_LANGUAGE = "gu"

TRANSLATIONS = {
    # Navigation
    "Dashboard": {"gu": "ડેશબોર્ડ", "en": "Dashboard"},
    "Issue": {"gu": "ઉધાર", "en": "Issue"},
    "Return": {"gu": "જમા", "en": "Return"},
    "Clients": {"gu": "ગ્રાહકો", "en": "Clients"},
    "Stock": {"gu": "સ્ટોક", "en": "Stock"},
    "Challans": {"gu": "ચલણો", "en": "Challans"},
    "Bills": {"gu": "બિલ", "en": "Bills"},
    "Ledger": {"gu": "ખાતાવહી", "en": "Ledger"},

    # Dashboard
    "Total Clients": {"gu": "કુલ ગ્રાહકો", "en": "Total Clients"},
    "Active Rentals": {"gu": "સક્રિય ભાડા", "en": "Active Rentals"},
    "Pending Returns": {"gu": "બાકી વળતર", "en": "Pending Returns"},
    "Total Stock": {"gu": "કુલ સ્ટોક", "en": "Total Stock"},
    "Low Stock Items": {"gu": "ઓછા સ્ટોક વસ્તુઓ", "en": "Low Stock Items"},
    "Pending Bills": {"gu": "બાકી બિલ", "en": "Pending Bills"},
    "Total Revenue": {"gu": "કુલ આવક", "en": "Total Revenue"},
    "Quick Actions": {"gu": "ઝડપી ક્રિયાઓ", "en": "Quick Actions"},
    "Recent Activity": {"gu": "તાજેતરની પ્રવૃત્તિ", "en": "Recent Activity"},

    # Forms
    "Client ID": {"gu": "ગ્રાહક ID", "en": "Client ID"},
    "Name": {"gu": "નામ", "en": "Name"},
    "Site": {"gu": "સાઇટ", "en": "Site"},
    "Mobile Number": {"gu": "મોબાઇલ નંબર", "en": "Mobile Number"},
    "Challan Number": {"gu": "ચલણ નંબર", "en": "Challan Number"},
    "Date": {"gu": "તારીખ", "en": "Date"},
    "Quantity": {"gu": "જથ્થો", "en": "Quantity"},
    "Notes": {"gu": "નોંધ", "en": "Notes"},
    "Save": {"gu": "સેવ કરો", "en": "Save"},
    "Cancel": {"gu": "રદ કરો", "en": "Cancel"},
    "Submit": {"gu": "સબમિટ કરો", "en": "Submit"},
    "Search": {"gu": "શોધો", "en": "Search"},
    "Add New": {"gu": "નવું ઉમેરો", "en": "Add New"},

    # Issue challan
    "Issue Challan": {"gu": "ઉધાર ચલણ", "en": "Issue Challan"},
    "Select Client": {"gu": "ગ્રાહક પસંદ કરો", "en": "Select Client"},
    "Plate Size": {"gu": "પ્લેટ સાઇઝ", "en": "Plate Size"},
    "Quantity to Borrow": {"gu": "ઉધાર લેવાનો જથ્થો", "en": "Quantity to Borrow"},
    "Partner Stock Notes": {"gu": "પાર્ટનર સ્ટોક નોંધ", "en": "Partner Stock Notes"},
    "Create Challan": {"gu": "ચલણ બનાવો", "en": "Create Challan"},

    # Return challan
    "Return Challan": {"gu": "જમા ચલણ", "en": "Return Challan"},
    "Return Date": {"gu": "વળતર તારીખ", "en": "Return Date"},
    "Quantity Returned": {"gu": "વળતર જથ્થો", "en": "Quantity Returned"},
    "Damage Notes": {"gu": "નુકસાન નોંધ", "en": "Damage Notes"},
    "Process Return": {"gu": "વળતર પ્રક્રિયા", "en": "Process Return"},
    "Outstanding": {"gu": "બાકી", "en": "Outstanding"},

    # Stock
    "Available": {"gu": "ઉપલબ્ધ", "en": "Available"},
    "On Rent": {"gu": "ભાડે", "en": "On Rent"},
    "Total Quantity": {"gu": "કુલ જથ્થો", "en": "Total Quantity"},
    "Update Stock": {"gu": "સ્ટોક અપડેટ કરો", "en": "Update Stock"},

    # Status
    "Active": {"gu": "સક્રિય", "en": "Active"},
    "Completed": {"gu": "પૂર્ણ", "en": "Completed"},
    "Partial": {"gu": "આંશિક", "en": "Partial"},
    "Pending": {"gu": "બાકી", "en": "Pending"},
    "Paid": {"gu": "ચૂકવેલ", "en": "Paid"},
    "Overdue": {"gu": "મુદત વીતી", "en": "Overdue"},
    "Days on Rent": {"gu": "ભાડાના દિવસો", "en": "Days on Rent"},
    "No Activity": {"gu": "કોઈ પ્રવૃત્તિ નથી", "en": "No Activity"},

    # Common
    "Loading": {"gu": "લોડ થઈ રહ્યું છે", "en": "Loading"},
    "Error": {"gu": "ભૂલ", "en": "Error"},
    "Success": {"gu": "સફળતા", "en": "Success"},
    "Warning": {"gu": "ચેતવણી", "en": "Warning"},
    "Confirm": {"gu": "પુષ્ટિ કરો", "en": "Confirm"},
    "Delete": {"gu": "ડિલીટ કરો", "en": "Delete"},
    "Edit": {"gu": "સંપાદિત કરો", "en": "Edit"},
    "View": {"gu": "જુઓ", "en": "View"},
    "Download": {"gu": "ડાઉનલોડ કરો", "en": "Download"},
    "Backup": {"gu": "બેકઅપ", "en": "Backup"},
    "Total": {"gu": "કુલ", "en": "Total"},

    # Company
    "NO WERE TECH": {"gu": "NO WERE TECH", "en": "NO WERE TECH"},
    "Centering Plates Rental Service": {"gu": "સેન્ટરિંગ પ્લેટ્સ ભાડા સેવા", "en": "Centering Plates Rental Service"},

    # Always Gujarati
    "challan": {"gu": "ચલણ", "en": "ચલણ"},
    "udhar": {"gu": "ઉધાર", "en": "ઉધાર"},
    "jama": {"gu": "જમા", "en": "જમા"},
    "પતરા": {"gu": "પતરા", "en": "પતરા"},
}

# Latin spellings for labels that stay Gujarati in the English table, used when
# the drawing font has no Gujarati glyphs
LATIN_NAMES = {"પતરા": "Patra", "ઉધાર": "Udhar", "જમા": "Jama"}

# checked after CHALLAN_FONT_PATH, first existing file wins
GUJARATI_FONT_CANDIDATES = (
    "/usr/share/fonts/truetype/noto/NotoSansGujarati-Regular.ttf",
    "/usr/share/fonts/noto/NotoSansGujarati-Regular.ttf",
    "/usr/share/fonts/google-noto/NotoSansGujarati-Regular.ttf",
    "/usr/share/fonts/truetype/lohit-gujarati/Lohit-Gujarati.ttf",
    "/usr/share/fonts/truetype/samyak-fonts/Samyak-Gujarati.ttf",
)

def gujarati_font_path(configured=None, candidates=GUJARATI_FONT_CANDIDATES):
    paths = [configured] if configured else []
    return next((p for p in paths + list(candidates) if p and os.path.isfile(p)), None)


def normalize_language(code):
    code = (code or "").strip().lower()
    return code if code in LANGUAGES else DEFAULT_LANGUAGE


class Locale:
    """Resolves display strings for one language; unknown keys come back as-is."""

    def __init__(self, language=DEFAULT_LANGUAGE, table=None, latin=False):
        self.language = normalize_language(language)
        self.table = TRANSLATIONS if table is None else table
        self.latin = latin

    def translate(self, key):
        entry = self.table.get(key)
        text = entry.get(self.language, key) if entry else key
        return LATIN_NAMES.get(text, text) if self.latin else text

    __call__ = translate

    def for_font(self, has_gujarati):
        """The locale to draw with: English in Latin letters when the font lacks Gujarati."""
        if has_gujarati:
            return self
        return Locale("en", self.table, latin=True)

    @property
    def html_lang(self):
        return "gu-IN" if self.language == "gu" else "en-US"

    def __repr__(self):
        return f"Locale({self.language!r})"
