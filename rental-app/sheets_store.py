# Google Sheets record store: one worksheet per relation, header row first.
#
# Env: SPREADSHEET_ID, GOOGLE_SA_JSON (service account JSON in one env var),
#      optional <TABLE>_TAB_NAME overrides (CLIENTS_TAB_NAME, CHALLANS_TAB_NAME, ...)

import json, logging, os, re, threading
from datetime import datetime
from functools import wraps
from zoneinfo import ZoneInfo

import gspread
import requests
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials as SA_Credentials
from gspread.utils import rowcol_to_a1

from ledger import ISSUE, RETURN, DuplicateNumberError, next_number, on_rent_by_size

log = logging.getLogger(__name__)

SPREADSHEET_ID = os.getenv("SPREADSHEET_ID")
GOOGLE_SA_JSON = os.getenv("GOOGLE_SA_JSON")
SHEETS_SCOPES  = ["https://www.googleapis.com/auth/spreadsheets"]

IST = ZoneInfo("Asia/Kolkata")

# columns per relation; "ints" are coerced on read
TABLES = {
    "clients": {
        "columns": ["id", "name", "site", "mobile_number", "created_at"],
        "ints": (),
    },
    "challans": {
        "columns": ["id", "challan_number", "client_id", "challan_date", "status", "created_at"],
        "ints": ("id",),
    },
    "challan_items": {
        "columns": ["id", "challan_id", "plate_size", "borrowed_quantity", "partner_stock_notes"],
        "ints": ("id", "challan_id", "borrowed_quantity"),
    },
    "returns": {
        "columns": ["id", "return_challan_number", "client_id", "return_date", "created_at"],
        "ints": ("id",),
    },
    "return_line_items": {
        "columns": ["id", "return_id", "plate_size", "returned_quantity", "damage_notes"],
        "ints": ("id", "return_id", "returned_quantity"),
    },
    "stock": {
        "columns": ["id", "plate_size", "total_quantity", "available_quantity", "on_rent_quantity", "updated_at"],
        "ints": ("id", "total_quantity", "available_quantity", "on_rent_quantity"),
    },
    "bills": {
        "columns": ["id", "bill_number", "client_id", "bill_date", "total_amount", "payment_status"],
        "ints": ("id",),
    },
}

# the two numbered document classes
DOCS = {
    ISSUE:  {"table": "challans", "items": "challan_items", "fk": "challan_id",
             "number": "challan_number", "date": "challan_date"},
    RETURN: {"table": "returns", "items": "return_line_items", "fk": "return_id",
             "number": "return_challan_number", "date": "return_date"},
}

def tab_name(table):
    return os.getenv(f"{table.upper()}_TAB_NAME", table)

def now_stamp():
    return datetime.now(IST).strftime("%Y-%m-%d %H:%M:%S")


class StoreError(Exception):
    """A read or write against the spreadsheet failed."""


def _store_call(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (gspread.exceptions.GSpreadException, requests.RequestException, GoogleAuthError) as e:
            log.error("Sheet %s failed: %s", fn.__name__, e)
            raise StoreError(f"{fn.__name__}: {e}") from e
    return wrapper

def _gc():
    if not GOOGLE_SA_JSON or not SPREADSHEET_ID:
        raise StoreError("Missing env vars: GOOGLE_SA_JSON and/or SPREADSHEET_ID.")
    try:
        info = json.loads(GOOGLE_SA_JSON)
    except ValueError as e:
        raise StoreError(f"GOOGLE_SA_JSON is not valid JSON: {e}") from e
    creds = SA_Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
    return gspread.authorize(creds)

def _natural_key(v):
    # "2" before "10", "C2" before "C10"
    return [(0, int(p)) if p.isdigit() else (1, p.lower()) for p in re.split(r"(\d+)", v)]

def _to_int(v):
    if v is None or v == "": return None
    try:
        return int(float(v))
    except (TypeError, ValueError):
        return None


class SheetStore:
    def __init__(self, book):
        self.book = book
        self._tabs = {}
        # serialises check-then-insert of numbered documents inside this process
        self._number_lock = threading.Lock()

    @classmethod
    @_store_call
    def from_env(cls):
        return cls(_gc().open_by_key(SPREADSHEET_ID))

    # ---------- worksheet plumbing ----------
    def _ws(self, table):
        if table in self._tabs:
            return self._tabs[table]
        name = tab_name(table)
        try:
            ws = self.book.worksheet(name)
        except gspread.exceptions.WorksheetNotFound:
            ws = self.book.add_worksheet(title=name, rows=1000, cols=len(TABLES[table]["columns"]))
        header = self._ensure_header(ws, TABLES[table]["columns"])
        self._tabs[table] = (ws, header)
        return self._tabs[table]

    @staticmethod
    def _ensure_header(ws, required):
        vals = ws.get_all_values()
        header = [h.strip() for h in vals[0]] if vals else []
        if not header:
            header = required[:]
            ws.update(range_name="A1", values=[header])
            return header
        existing = [h.lower() for h in header]
        missing = [c for c in required if c.lower() not in existing]
        if missing:
            header += missing
            ws.update(range_name="A1", values=[header])
        return header

    def _coerce(self, table, col, v):
        if col in TABLES[table]["ints"]:
            return _to_int(v)
        return "" if v is None else str(v)

    def _rows(self, table):
        """[(sheet_row_number, record)] for every non-empty data row."""
        ws, header = self._ws(table)
        values = ws.get_all_values()
        out = []
        for n, raw in enumerate(values[1:], start=2):
            if not any(raw): continue
            rec = {}
            for i, col in enumerate(header):
                rec[col] = self._coerce(table, col, raw[i] if i < len(raw) else "")
            out.append((n, rec))
        return out

    def _row_values(self, table, header, rec):
        row = []
        for col in header:
            v = rec.get(col)
            row.append("" if v is None else v)
        return row

    # ---------- generic relation API ----------
    @_store_call
    def select(self, table, order_by=None, desc=False, limit=None, **eq):
        want = {k: self._coerce(table, k, v) for k, v in eq.items()}
        rows = [r for _, r in self._rows(table) if all(r.get(k) == v for k, v in want.items())]
        if order_by:
            ints = order_by in TABLES[table]["ints"]
            def key(r):
                v = r.get(order_by)
                if v is None or v == "": return (1, [])
                return (0, v if ints else _natural_key(v))
            rows.sort(key=key, reverse=desc)
        return rows[:limit] if limit else rows

    def get(self, table, row_id):
        rows = self.select(table, limit=1, id=row_id)
        return rows[0] if rows else None

    @_store_call
    def insert(self, table, records):
        ws, header = self._ws(table)
        auto_id = "id" in TABLES[table]["ints"]
        # user-assigned text ids (clients) are never numbered here
        next_id = max([r.get("id") or 0 for _, r in self._rows(table)] + [0]) + 1 if auto_id else None
        out = []
        for rec in records:
            rec = dict(rec)
            if auto_id and not rec.get("id"):
                rec["id"] = next_id; next_id += 1
            if "created_at" in header and not rec.get("created_at"):
                rec["created_at"] = now_stamp()
            out.append(rec)
        if out:
            ws.append_rows([self._row_values(table, header, r) for r in out], value_input_option="RAW")
        return out

    @_store_call
    def update(self, table, row_id, changes):
        ws, header = self._ws(table)
        want = self._coerce(table, "id", row_id)
        for n, rec in self._rows(table):
            if rec.get("id") == want:
                rec.update(changes)
                a1 = f"A{n}:{rowcol_to_a1(n, len(header))}"
                ws.update(range_name=a1, values=[self._row_values(table, header, rec)])
                return rec
        return None

    @_store_call
    def delete(self, table, **eq):
        ws, _ = self._ws(table)
        want = {k: self._coerce(table, k, v) for k, v in eq.items()}
        hits = [n for n, r in self._rows(table) if all(r.get(k) == v for k, v in want.items())]
        for n in sorted(hits, reverse=True):
            ws.delete_rows(n)
        return len(hits)

    # ---------- challans and returns ----------
    def _with_items(self, kind, parents):
        d = DOCS[kind]
        ids = {p["id"] for p in parents}
        items = {}
        for it in self.select(d["items"], order_by="id"):
            if it.get(d["fk"]) in ids:
                items.setdefault(it[d["fk"]], []).append(it)
        return [{**p, "items": items.get(p["id"], [])} for p in parents]

    def fetch_documents(self, kind, client_id=None):
        """Parent rows with their line items nested under "items", newest date first."""
        d = DOCS[kind]
        eq = {"client_id": client_id} if client_id is not None else {}
        parents = self.select(d["table"], **eq)
        parents.sort(key=lambda p: (p.get(d["date"]) or "", p.get("id") or 0), reverse=True)
        return self._with_items(kind, parents)

    def fetch_challans(self, client_id=None):
        return self.fetch_documents(ISSUE, client_id)

    def fetch_returns(self, client_id=None):
        return self.fetch_documents(RETURN, client_id)

    def fetch_document(self, kind, doc_id):
        parent = self.get(DOCS[kind]["table"], doc_id)
        return self._with_items(kind, [parent])[0] if parent else None

    def number_exists(self, kind, number, exclude_id=None):
        d = DOCS[kind]
        rows = self.select(d["table"], **{d["number"]: str(number).strip()})
        return any(r.get("id") != exclude_id for r in rows)

    def suggest_number(self, kind):
        d = DOCS[kind]
        try:
            return next_number(r.get(d["number"]) for r in self.select(d["table"]))
        except StoreError as e:
            log.warning("Next %s number fell back to 1: %s", kind, e)
            return "1"

    def create_document(self, kind, header, items):
        """Insert a numbered document and its items; raises DuplicateNumberError on a taken number."""
        d = DOCS[kind]
        number = str(header[d["number"]]).strip()
        with self._number_lock:
            if self.number_exists(kind, number):
                raise DuplicateNumberError(kind, number)
            parent = self.insert(d["table"], [{**header, d["number"]: number}])[0]
        rows = self.insert(d["items"], [{**it, d["fk"]: parent["id"]} for it in items])
        log.info("Created %s challan %s (%d items)", kind, number, len(rows))
        return {**parent, "items": rows}

    def replace_items(self, kind, doc_id, items):
        """Delete-then-insert of a document's items.

        Sheets has no transactions; if the insert fails after the delete, the
        previous rows are written back and the original error is raised.
        """
        d = DOCS[kind]
        old = self.select(d["items"], **{d["fk"]: doc_id})
        self.delete(d["items"], **{d["fk"]: doc_id})
        try:
            return self.insert(d["items"], [{**it, d["fk"]: doc_id} for it in items])
        except StoreError:
            log.error("Item insert failed for %s %s, restoring %d rows", kind, doc_id, len(old))
            self.insert(d["items"], [{k: v for k, v in it.items() if k != "id"} for it in old])
            raise

    def update_document(self, kind, doc_id, changes, items):
        d = DOCS[kind]
        if d["number"] in changes:
            number = str(changes[d["number"]]).strip()
            with self._number_lock:
                if self.number_exists(kind, number, exclude_id=doc_id):
                    raise DuplicateNumberError(kind, number)
                parent = self.update(d["table"], doc_id, {**changes, d["number"]: number})
        else:
            parent = self.update(d["table"], doc_id, changes)
        if parent is None:
            return None
        return {**parent, "items": self.replace_items(kind, doc_id, items)}

    def delete_document(self, kind, doc_id):
        d = DOCS[kind]
        self.delete(d["items"], **{d["fk"]: doc_id})
        return self.delete(d["table"], id=doc_id)

    # ---------- stock ----------
    def add_plate_size(self, size):
        size = (size or "").strip()
        if self.select("stock", plate_size=size):
            return None
        return self.insert("stock", [{"plate_size": size, "total_quantity": 0, "available_quantity": 0,
                                      "on_rent_quantity": 0, "updated_at": now_stamp()}])[0]

    def update_stock(self, stock_id, total, on_rent):
        return self.update("stock", stock_id, {
            "total_quantity": total,
            "on_rent_quantity": on_rent,
            "available_quantity": total - on_rent,
            "updated_at": now_stamp(),
        })

    def refresh_on_rent(self, challans=None, returns=None):
        """Recompute stock on-rent/available from the issue/return ledger."""
        challans = self.fetch_challans() if challans is None else challans
        returns = self.fetch_returns() if returns is None else returns
        on_rent = on_rent_by_size(challans, returns)
        changed = 0
        for row in self.select("stock"):
            out = on_rent.get(row.get("plate_size"), 0)
            if out != (row.get("on_rent_quantity") or 0):
                self.update_stock(row["id"], row.get("total_quantity") or 0, out)
                changed += 1
        return changed
