import gspread
import pytest
from gspread.utils import a1_to_rowcol

from app import app as flask_app
from sheets_store import SheetStore


class FakeWorksheet:
    """The slice of gspread.Worksheet the store uses, kept in memory as strings."""

    def __init__(self, title):
        self.title = title
        self.rows = []
        self.fail_appends = 0

    def get_all_values(self):
        return [list(r) for r in self.rows]

    def append_rows(self, values, value_input_option=None):
        if self.fail_appends:
            self.fail_appends -= 1
            raise gspread.exceptions.GSpreadException("quota exceeded")
        for r in values:
            self.rows.append(["" if v is None else str(v) for v in r])

    def update(self, range_name=None, values=None, **kwargs):
        r, c = a1_to_rowcol(range_name.split(":")[0])
        for i, vals in enumerate(values):
            while len(self.rows) < r + i:
                self.rows.append([])
            row = self.rows[r - 1 + i]
            row.extend([""] * max(0, c - 1 + len(vals) - len(row)))
            for j, v in enumerate(vals):
                row[c - 1 + j] = "" if v is None else str(v)

    def delete_rows(self, start_index, end_index=None):
        del self.rows[start_index - 1:(end_index or start_index)]


class FakeBook:
    def __init__(self):
        self.sheets = {}

    def worksheet(self, title):
        if title not in self.sheets:
            raise gspread.exceptions.WorksheetNotFound(title)
        return self.sheets[title]

    def add_worksheet(self, title, rows, cols):
        self.sheets[title] = FakeWorksheet(title)
        return self.sheets[title]


@pytest.fixture
def book():
    return FakeBook()


@pytest.fixture
def store(book):
    return SheetStore(book)


@pytest.fixture
def client(store):
    flask_app.config.update(TESTING=True, SHEET_STORE=store)
    with flask_app.test_client() as c:
        yield c
    flask_app.config.pop("SHEET_STORE", None)


def issue(number, client_id, when, plates, doc_id=None):
    return {"id": doc_id, "challan_number": number, "client_id": client_id, "challan_date": when,
            "items": [{"plate_size": s, "borrowed_quantity": q} for s, q in plates.items()]}


def ret(number, client_id, when, plates, doc_id=None):
    return {"id": doc_id, "return_challan_number": number, "client_id": client_id, "return_date": when,
            "items": [{"plate_size": s, "returned_quantity": q} for s, q in plates.items()]}
