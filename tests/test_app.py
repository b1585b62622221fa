import csv, io

from PIL import Image

import challan_image
from sheets_store import StoreError

FETCH = {"X-Requested-With": "fetch"}


def _add_client(store, cid="C1", name="Shah", site="Surat"):
    store.insert("clients", [{"id": cid, "name": name, "site": site, "mobile_number": "90"}])

def _issue_form(number="1", qty="7", **extra):
    return {"client_id": "C1", "challan_number": number, "challan_date": "2024-01-01",
            "size[]": ["2 X 3", "પતરા"], "qty[]": [qty, ""], **extra}


def test_healthz_and_root(client):
    assert client.get("/healthz").data == b"ok"
    r = client.get("/")
    assert r.status_code == 302 and r.headers["Location"].endswith("/dashboard")

def test_dashboard_renders(client, store):
    _add_client(store)
    r = client.get("/dashboard")
    assert r.status_code == 200
    assert "ઉધાર ચલણ" in r.get_data(as_text=True)

def test_language_choice_sticks(client):
    client.get("/language/en")
    with client.session_transaction() as sess:
        assert sess["language"] == "en"
    assert 'lang="en-US"' in client.get("/clients").get_data(as_text=True)

def test_store_outage_shows_error_page(client, store, monkeypatch):
    def boom(*a, **kw):
        raise StoreError("503 from sheets")
    monkeypatch.setattr(store, "select", boom)
    assert client.get("/clients").status_code == 503
    assert client.get("/ledger", headers=FETCH).status_code == 503


# ---------- clients ----------
def test_add_client_and_reject_duplicate(client, store):
    r = client.post("/clients", data={"id": "007", "name": "Desai", "site": "Anand", "mobile_number": "91"})
    assert r.status_code == 302
    assert store.get("clients", "007")["name"] == "Desai"
    client.post("/clients", data={"id": "007", "name": "Other"})
    assert [c["name"] for c in store.select("clients")] == ["Desai"]

def test_second_client_can_be_added(client, store):
    for cid, name in (("C1", "Shah"), ("C2", "Mehta")):
        r = client.post("/clients", data={"id": cid, "name": name, "site": "Surat"})
        assert r.status_code == 302
    assert [c["id"] for c in store.select("clients", order_by="id")] == ["C1", "C2"]

def test_next_must_stay_on_site(client, store):
    for i, target in enumerate(("//evil.example/phish", "/\\evil.example", "https://evil.example/")):
        r = client.post("/clients", data={"id": f"Z{i}", "name": "X", "next": target})
        assert r.headers["Location"].endswith("/clients")
        assert "evil" not in r.headers["Location"]

def test_quick_add_from_return_screen_selects_client(client, store):
    r = client.post("/clients", data={"id": "K5", "name": "Kapadia", "next": "/return"})
    assert r.headers["Location"].endswith("/return?client_id=K5")

def test_client_with_challans_cannot_be_deleted(client, store):
    _add_client(store)
    client.post("/issue", data=_issue_form())
    r = client.post("/clients/C1/delete", headers=FETCH)
    assert r.status_code == 400
    assert store.get("clients", "C1") is not None


# ---------- issue / return ----------
def test_issue_saves_and_downloads_pdf(client, store):
    _add_client(store)
    r = client.post("/issue", data=_issue_form(number="21"))
    assert r.status_code == 200 and r.mimetype == "application/pdf"
    assert "issue-challan-21.pdf" in r.headers["Content-Disposition"]
    assert r.data.startswith(b"%PDF")
    doc = store.fetch_challans("C1")[0]
    assert doc["challan_number"] == "21" and doc["challan_date"] == "2024-01-01"
    assert [(it["plate_size"], it["borrowed_quantity"]) for it in doc["items"]] == [("2 X 3", 7)]

def test_issue_duplicate_number_is_refused(client, store):
    _add_client(store)
    client.post("/issue", data=_issue_form(number="5"))
    r = client.post("/issue", data=_issue_form(number="5"), headers=FETCH)
    assert r.status_code == 400 and "already exists" in r.get_data(as_text=True)
    r = client.post("/issue", data=_issue_form(number="5"))
    assert r.status_code == 302 and r.headers["Location"].endswith("/issue")
    assert len(store.select("challans")) == 1

def test_issue_needs_a_quantity(client, store):
    _add_client(store)
    r = client.post("/issue", data=_issue_form(qty="0"), headers=FETCH)
    assert r.status_code == 400
    r = client.post("/issue", data=_issue_form(qty="-3"), headers=FETCH)
    assert r.status_code == 400
    assert store.select("challans") == []

def test_short_stock_requires_note(client, store):
    _add_client(store)
    row = store.add_plate_size("2 X 3")
    store.update_stock(row["id"], 5, 0)
    r = client.post("/issue", data=_issue_form(), headers=FETCH)
    assert r.status_code == 400 and "insufficient stock" in r.get_data(as_text=True)

    r = client.post("/issue", data=_issue_form(note="2 from partner"))
    assert r.status_code == 200
    item = store.fetch_challans()[0]["items"][0]
    assert item["partner_stock_notes"] == "2 from partner"
    assert store.get("stock", row["id"])["on_rent_quantity"] == 7

def test_return_screen_shows_outstanding(client, store):
    _add_client(store)
    client.post("/issue", data=_issue_form(qty="7"))
    html = client.get("/return?client_id=C1").get_data(as_text=True)
    assert '<td class="right">7</td>' in html

def test_return_as_jpeg(client, store, tmp_path, monkeypatch):
    bg = tmp_path / "jama.jpg"
    Image.new("RGB", (400, 560), "white").save(bg)
    monkeypatch.setitem(challan_image.BACKGROUNDS, "return", str(bg))
    _add_client(store)
    client.post("/issue", data=_issue_form(qty="7"))
    r = client.post("/return", data={"client_id": "C1", "return_challan_number": "1", "return_date": "2024-01-09",
                                     "size[]": ["2 X 3"], "qty[]": ["3"], "note[]": ["1 cracked"], "format": "jpg"})
    assert r.status_code == 200 and r.mimetype == "image/jpeg"
    assert r.data[:2] == b"\xff\xd8"
    item = store.fetch_returns("C1")[0]["items"][0]
    assert (item["returned_quantity"], item["damage_notes"]) == (3, "1 cracked")

def test_failed_image_keeps_saved_challan(client, store, monkeypatch):
    monkeypatch.setitem(challan_image.BACKGROUNDS, "issue", "/no/such/template.jpg")
    _add_client(store)
    r = client.post("/issue", data=_issue_form(number="9", format="jpg"), headers=FETCH)
    assert r.status_code == 400 and "saved" in r.get_data(as_text=True)
    assert store.number_exists("issue", "9")


# ---------- challan management ----------
def test_edit_challan_replaces_lines(client, store):
    _add_client(store)
    client.post("/issue", data=_issue_form(number="3"))
    doc = store.fetch_challans()[0]
    r = client.post(f"/challans/issue/{doc['id']}/edit",
                    data={"number": "3", "date": "2024-01-04", "size[]": ["પતરા"], "qty[]": ["2"], "note[]": [""]})
    assert r.status_code == 302
    doc = store.fetch_document("issue", doc["id"])
    assert doc["challan_date"] == "2024-01-04"
    assert [(it["plate_size"], it["borrowed_quantity"]) for it in doc["items"]] == [("પતરા", 2)]

def test_challan_list_search_and_delete(client, store):
    _add_client(store); _add_client(store, "C2", "Mehta")
    client.post("/issue", data=_issue_form(number="11"))
    client.post("/issue", data={**_issue_form(number="12"), "client_id": "C2"})
    html = client.get("/challans?q=mehta").get_data(as_text=True)
    assert ">12<" in html and ">11<" not in html
    doc = store.fetch_challans("C1")[0]
    assert client.post(f"/challans/issue/{doc['id']}/delete").status_code == 302
    assert [d["challan_number"] for d in store.fetch_challans()] == ["12"]
    assert client.get("/challans/bogus/1/download").status_code == 404


# ---------- ledger / stock ----------
def test_ledger_backup_csv(client, store):
    _add_client(store); _add_client(store, "C2", "Mehta")
    client.post("/issue", data=_issue_form())
    r = client.get("/ledger/backup.csv")
    assert r.mimetype == "text/csv"
    assert 'filename="ledger-backup-' in r.headers["Content-Disposition"]
    rows = list(csv.reader(io.StringIO(r.get_data(as_text=True))))
    assert rows[0][0] == "Client ID"
    assert rows[1][:6] == ["C1", "Shah", "Surat", "90", "7", "2 X 3"]
    assert rows[2][5] == "No Activity"

def test_stock_add_edit_and_refresh(client, store):
    client.post("/stock", data={"plate_size": "2 X 3"})
    assert client.post("/stock", data={"plate_size": "2 X 3"}, headers=FETCH).status_code == 400
    row = store.select("stock")[0]
    r = client.post(f"/stock/{row['id']}", data={"total_quantity": "10", "on_rent_quantity": "12"}, headers=FETCH)
    assert r.status_code == 400
    client.post(f"/stock/{row['id']}", data={"total_quantity": "100", "on_rent_quantity": "30"})
    assert store.get("stock", row["id"])["available_quantity"] == 70
    client.post("/stock/refresh")
    assert store.get("stock", row["id"])["on_rent_quantity"] == 0
    assert client.get("/stock").status_code == 200
