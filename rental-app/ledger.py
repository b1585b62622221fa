# Ledger reconciliation: balances, challan classification, numbering, timeline, CSV backup.
#
# Everything here is a pure function over plain dict rows as they come out of
# the sheet store:
#   challan: {id, challan_number, challan_date, client_id, status, items: [{plate_size, borrowed_quantity, partner_stock_notes}]}
#   return:  {id, return_challan_number, return_date, client_id, items: [{plate_size, returned_quantity, damage_notes}]}

import csv, io, re
from datetime import date, datetime

PLATE_SIZES = [
    "2 X 3", "21 X 3", "18 X 3", "15 X 3", "12 X 3",
    "9 X 3", "પતરા", "2 X 2", "2 ફુટ",
]

ISSUE, RETURN = "issue", "return"

CSV_HEADER = [
    "Client ID", "Client Name", "Site", "Mobile Number", "Total Outstanding Plates",
    "Plate Size", "Total Issued", "Total Returned", "Current Balance",
    "Active Challans", "Completed Challans", "Last Activity Date",
]


class ValidationError(Exception):
    """Bad user input; shown to the user, nothing was written."""


class DuplicateNumberError(ValidationError):
    def __init__(self, kind, number):
        self.kind, self.number = kind, number
        label = "Challan" if kind == ISSUE else "Return challan"
        super().__init__(f"{label} number {number} already exists. Please use a different number.")


# ==============================
# Small helpers
# ==============================
def parse_date(value):
    if isinstance(value, datetime): return value.date()
    if isinstance(value, date): return value
    s = str(value or "").strip()
    if not s: return None
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y"):
        try:
            return datetime.strptime(s[:10], fmt).date()
        except ValueError:
            continue
    return None

def format_date(value):
    d = parse_date(value)
    return d.strftime("%d/%m/%Y") if d else str(value or "")

def _qty(v):
    try:
        return int(float(v or 0))
    except (TypeError, ValueError):
        return 0

def plate_sort_key(size):
    if size in PLATE_SIZES:
        return (0, PLATE_SIZES.index(size), "")
    return (1, 0, str(size))


# ==============================
# Numbering
# ==============================
_DIGITS = re.compile(r"\d+")

def next_number(existing):
    """Next suggested challan number: first digit run, highest + 1, or "1"."""
    max_num = 0
    for raw in existing:
        m = _DIGITS.search(str(raw or ""))
        if m:
            max_num = max(max_num, int(m.group(0)))
    return str(max_num + 1)


# ==============================
# Balances
# ==============================
def issue_items(challans):
    for ch in challans:
        for item in ch.get("items") or []:
            yield item

def return_items(returns):
    for rt in returns:
        for item in rt.get("items") or []:
            yield item

def aggregate_balances(issued, returned):
    """Fold issue and return line items into {plate_size: balance}.

    Plate sizes that were never touched (both totals zero) are left out.
    Labels outside PLATE_SIZES are kept under their own name.
    """
    totals = {}
    def entry(size):
        return totals.setdefault(size, {"plate_size": size, "total_borrowed": 0,
                                        "total_returned": 0, "outstanding": 0})
    for item in issued:
        entry(item.get("plate_size"))["total_borrowed"] += _qty(item.get("borrowed_quantity"))
    for item in returned:
        entry(item.get("plate_size"))["total_returned"] += _qty(item.get("returned_quantity"))

    out = {}
    for size, b in totals.items():
        if not b["total_borrowed"] and not b["total_returned"]:
            continue
        b["outstanding"] = b["total_borrowed"] - b["total_returned"]
        out[size] = b
    return out

def ordered_balances(balances):
    return [balances[k] for k in sorted(balances, key=plate_sort_key)]

def outstanding_plates(balances):
    return {size: b["outstanding"] for size, b in balances.items() if b["outstanding"] > 0}

def on_rent_by_size(challans, returns):
    """Plates out on rent per size, summed over clients; over-returns do not offset other clients."""
    per_client = {}
    for ch in challans:
        per_client.setdefault(ch.get("client_id"), ([], []))[0].append(ch)
    for rt in returns:
        per_client.setdefault(rt.get("client_id"), ([], []))[1].append(rt)
    on_rent = {}
    for chs, rts in per_client.values():
        for size, b in aggregate_balances(issue_items(chs), return_items(rts)).items():
            if b["outstanding"] > 0:
                on_rent[size] = on_rent.get(size, 0) + b["outstanding"]
    return on_rent


# ==============================
# Classification
# ==============================
def settlement_history(challans, returns):
    """[(date, sizes at or below zero after that date's movements)] in date order.

    Built from the client's running balance, not from which delivery a return
    belongs to.
    """
    events = []
    for ch in challans:
        d = parse_date(ch.get("challan_date")) or date.min
        events += [(d, it.get("plate_size"), _qty(it.get("borrowed_quantity"))) for it in ch.get("items") or []]
    for rt in returns:
        d = parse_date(rt.get("return_date")) or date.min
        events += [(d, it.get("plate_size"), -_qty(it.get("returned_quantity"))) for it in rt.get("items") or []]
    events.sort(key=lambda e: e[0])

    running, history = {}, []
    for i, (d, size, delta) in enumerate(events):
        running[size] = running.get(size, 0) + delta
        if i + 1 == len(events) or events[i + 1][0] != d:
            history.append((d, frozenset(s for s, v in running.items() if v <= 0)))
    return history

def classify_challans(challans, balances, returns=None, today=None):
    """Split one client's issue challans into (active, completed).

    Classification reads the client's per-size balance as a whole; it never
    allocates returns to particular deliveries, so challans open at the same
    time on the same size share a status. A challan is completed when every
    one of its sizes is at or below zero in `balances`, or, when the client's
    `returns` are given, when the running balance of all its sizes reached zero
    on or after the challan date (a later re-issue of the same size does not
    reopen it). Otherwise it is active while any of its sizes is positive.
    Challans without items land in neither list.
    """
    today = today or date.today()
    history = settlement_history(challans, returns) if returns is not None else []
    active, completed = [], []
    for ch in challans:
        items = ch.get("items") or []
        if not items:
            continue
        sizes = {it.get("plate_size") for it in items}
        d = parse_date(ch.get("challan_date"))
        settled = any(when >= (d or date.min) and sizes <= done for when, done in history)
        if not settled and any(balances.get(s, {}).get("outstanding", 0) > 0 for s in sizes):
            active.append({**ch, "days_on_rent": (today - d).days if d else 0})
        else:
            completed.append(ch)
    return active, completed


# ==============================
# Timeline
# ==============================
def _tx(kind, rec):
    if kind == ISSUE:
        number, when, qty_key, note_key = rec.get("challan_number"), rec.get("challan_date"), "borrowed_quantity", "partner_stock_notes"
    else:
        number, when, qty_key, note_key = rec.get("return_challan_number"), rec.get("return_date"), "returned_quantity", "damage_notes"
    return {
        "type": kind,
        "id": rec.get("id"),
        "number": str(number or ""),
        "date": when,
        "client_id": rec.get("client_id"),
        "items": [{"plate_size": it.get("plate_size"),
                   "quantity": _qty(it.get(qty_key)),
                   "notes": it.get(note_key) or ""} for it in rec.get("items") or []],
    }

def challan_data(kind, doc, client):
    tx = _tx(kind, doc)
    client = client or {}
    plates = [{"size": it["plate_size"], "quantity": it["quantity"], "notes": it["notes"]}
              for it in tx["items"] if it["quantity"] > 0]
    return {
        "type": kind,
        "challan_number": tx["number"],
        "date": tx["date"],
        "client": {
            "id": str(client.get("id") or tx["client_id"] or ""),
            "name": client.get("name") or "",
            "site": client.get("site") or "",
            "mobile": client.get("mobile_number") or "",
        },
        "plates": plates,
        "total_quantity": sum(p["quantity"] for p in plates),
    }

def build_timeline(challans, returns):
    """Issue and return challans as one feed, newest first; equal dates keep fetch order."""
    feed = [_tx(ISSUE, c) for c in challans] + [_tx(RETURN, r) for r in returns]
    return sorted(feed, key=lambda t: parse_date(t["date"]) or date.min, reverse=True)


# ==============================
# Per-client ledger
# ==============================
def client_ledger(client, challans, returns, today=None):
    cid = client.get("id")
    chs = [c for c in challans if c.get("client_id") == cid]
    rts = [r for r in returns if r.get("client_id") == cid]
    balances = aggregate_balances(issue_items(chs), return_items(rts))
    active, completed = classify_challans(chs, balances, returns=rts, today=today)
    timeline = build_timeline(chs, rts)
    return {
        "client": client,
        "balances": balances,
        "plate_balances": ordered_balances(balances),
        "total_outstanding": sum(b["outstanding"] for b in balances.values()),
        "active_challans": active,
        "completed_challans": completed,
        "transactions": timeline,
        "has_activity": bool(chs or rts),
        "last_activity": timeline[0]["date"] if timeline else None,
    }

def challan_statuses(challans, returns, today=None):
    """{challan id: "active" | "completed"} across all clients."""
    out = {}
    for cid in {c.get("client_id") for c in challans}:
        lg = client_ledger({"id": cid}, challans, returns, today=today)
        out.update({c["id"]: "active" for c in lg["active_challans"]})
        out.update({c["id"]: "completed" for c in lg["completed_challans"]})
    return out

def client_ledgers(clients, challans, returns, today=None):
    return [client_ledger(c, challans, returns, today=today) for c in clients]

def search_ledgers(ledgers, term):
    term = (term or "").strip().lower()
    if not term: return ledgers
    def hit(c):
        return any(term in str(c.get(k) or "").lower() for k in ("name", "id", "site"))
    return [lg for lg in ledgers if hit(lg["client"])]


# ==============================
# CSV backup
# ==============================
def ledger_csv(ledgers):
    """One row per client per plate size; text quoted, numbers bare."""
    buf = io.StringIO()
    w = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    w.writerow(CSV_HEADER)
    for lg in ledgers:
        c = lg["client"]
        head = [str(c.get("id") or ""), str(c.get("name") or ""),
                str(c.get("site") or ""), str(c.get("mobile_number") or "")]
        if not lg["plate_balances"]:
            w.writerow(head + [0, "No Activity", 0, 0, 0, 0, 0, "Never"])
            continue
        last = format_date(lg["last_activity"]) if lg["last_activity"] else "Never"
        n_active, n_completed = len(lg["active_challans"]), len(lg["completed_challans"])
        for b in lg["plate_balances"]:
            w.writerow(head + [lg["total_outstanding"], str(b["plate_size"]),
                               b["total_borrowed"], b["total_returned"], b["outstanding"],
                               n_active, n_completed, last])
    return buf.getvalue()


# ==============================
# Stock checks / dashboard
# ==============================
def stock_shortfalls(quantities, stock_rows):
    by_size = {s.get("plate_size"): s for s in stock_rows}
    short = []
    for size, qty in quantities.items():
        s = by_size.get(size)
        if qty > 0 and s is not None and qty > _qty(s.get("available_quantity")):
            short.append({"size": size, "requested": qty, "available": _qty(s.get("available_quantity"))})
    return short

def stock_status(row, low_threshold=10):
    if _qty(row.get("total_quantity")) == 0: return "empty"
    if _qty(row.get("available_quantity")) < low_threshold: return "low"
    return "ok"

def dashboard_summary(clients, challans, returns, stock_rows, bills, low_threshold=10, today=None):
    ledgers = client_ledgers(clients, challans, returns, today=today)
    paid = [b for b in bills if str(b.get("payment_status") or "").lower() == "paid"]
    revenue = 0.0
    for b in paid:
        try:
            revenue += float(b.get("total_amount") or 0)
        except (TypeError, ValueError):
            continue
    return {
        "total_clients": len(clients),
        "active_rentals": sum(len(lg["active_challans"]) for lg in ledgers),
        "pending_returns": sum(sum(outstanding_plates(lg["balances"]).values()) for lg in ledgers),
        "total_stock": sum(_qty(s.get("available_quantity")) for s in stock_rows),
        "low_stock_items": sum(1 for s in stock_rows if _qty(s.get("available_quantity")) < low_threshold),
        "pending_bills": sum(1 for b in bills if str(b.get("payment_status") or "").lower() == "pending"),
        "total_revenue": revenue,
        "recent": build_timeline(challans, returns)[:10],
    }
