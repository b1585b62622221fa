# web app: Centering plate rental (Flask) - clients, Udhar/Jama challans, ledger, stock
# - Google Sheets as the record store (one tab per relation, see sheets_store.py)
# - Secrets via ENV: SPREADSHEET_ID, GOOGLE_SA_JSON, SESSION_SECRET
# - Optional ENV: DEFAULT_LANGUAGE (gu/en), LOW_STOCK_THRESHOLD, ISSUE_BG_URL, RETURN_BG_URL,
#                 CHALLAN_FONT_PATH, COMPANY_NAME, COMPANY_ADDRESS, COMPANY_MOBILE
# - Challans download as PDF (2 copies per page) or JPEG over the Udhar/Jama background
#
# pip install: flask gspread google-auth reportlab pillow gunicorn requests

import io, logging, os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from functools import wraps
from urllib.parse import urlparse
from zoneinfo import ZoneInfo

from flask import (
    Flask, Response, abort, render_template, request, redirect, url_for,
    session, send_file, flash
)
from jinja2 import DictLoader

import ledger
from challan_image import ChallanRenderError, image_filename, render_challan_image
from challan_pdf import draw_challan_pdf, pdf_filename
from i18n import Locale, normalize_language
from ledger import ISSUE, RETURN, PLATE_SIZES, ValidationError, DuplicateNumberError
from sheets_store import DOCS, SheetStore, StoreError

# ==============================
# Config from ENV
# ==============================
SESSION_SECRET      = os.getenv("SESSION_SECRET", "change-me")
DEFAULT_LANGUAGE    = normalize_language(os.getenv("DEFAULT_LANGUAGE", "gu"))
LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "10"))

IST = ZoneInfo("Asia/Kolkata")

STORE_ERROR_MSG = "Could not reach the data sheet. Please try again."

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"),
                    format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = Flask(__name__)
app.secret_key = SESSION_SECRET
app.permanent_session_lifetime = timedelta(days=365)  # language choice survives restarts

# ==============================
# Small helpers
# ==============================
def get_store():
    store = app.config.get("SHEET_STORE")
    if store is None:
        store = app.config["SHEET_STORE"] = SheetStore.from_env()
    return store

def current_locale():
    return Locale(session.get("language", DEFAULT_LANGUAGE))

def today():
    return datetime.now(IST).date()

def _local_path(target):
    # same-site paths only; "//host" and "/\host" point off the site
    u = urlparse(target.replace("\\", "/"))
    return target.startswith("/") and not u.scheme and not u.netloc

def _kind_or_404(kind):
    if kind not in DOCS: abort(404)
    return kind

def fail(message, endpoint, **values):
    """Validation failure: plain 400 for fetch() callers, flash + redirect otherwise."""
    if request.headers.get("X-Requested-With") == "fetch":
        return message, 400
    flash(message, "error")
    return redirect(url_for(endpoint, **values))

def store_guard(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except StoreError as e:
            app.logger.error("%s: %s", request.endpoint, e)
            if request.headers.get("X-Requested-With") == "fetch":
                return STORE_ERROR_MSG, 503
            return render_template("error.html", message=STORE_ERROR_MSG), 503
    return wrapper

def _int(v, label):
    v = (v or "").strip()
    if not v: return 0
    try:
        n = int(float(v))
    except ValueError:
        raise ValidationError(f"{label}: '{v}' is not a number.")
    if n < 0:
        raise ValidationError(f"{label} cannot be negative.")
    return n

def parse_plate_lines():
    """[(size, qty, note)] from the size[] / qty[] / note[] rows of a challan form."""
    sizes = request.form.getlist("size[]")
    qtys  = request.form.getlist("qty[]")
    notes = request.form.getlist("note[]")
    lines = []
    for i, size in enumerate(sizes):
        size = size.strip()
        if not size: continue
        qty = _int(qtys[i] if i < len(qtys) else "", size)
        note = (notes[i] if i < len(notes) else "").strip()
        lines.append((size, qty, note))
    return lines

def _items_for(kind, lines, shared_note=""):
    if kind == ISSUE:
        return [{"plate_size": s, "borrowed_quantity": q, "partner_stock_notes": n or shared_note}
                for s, q, n in lines if q > 0]
    return [{"plate_size": s, "returned_quantity": q, "damage_notes": n}
            for s, q, n in lines if q > 0]

def _refresh_stock(store):
    # stock on-rent is a projection of the ledger; the challan write already succeeded
    try:
        store.refresh_on_rent()
    except StoreError as e:
        app.logger.warning("Stock refresh skipped: %s", e)

def send_challan(kind, doc, client, fmt="pdf"):
    data = ledger.challan_data(kind, doc, client)
    locale = current_locale()
    if fmt == "jpg":
        img = render_challan_image(data, locale=locale)
        return send_file(io.BytesIO(img), as_attachment=True, download_name=image_filename(data), mimetype="image/jpeg")
    buf = io.BytesIO()
    draw_challan_pdf(buf, data, locale=locale)
    return send_file(io.BytesIO(buf.getvalue()), as_attachment=True, download_name=pdf_filename(data), mimetype="application/pdf")

@app.context_processor
def inject_locale():
    loc = current_locale()
    return {"t": loc.translate, "locale": loc, "PLATE_SIZES": PLATE_SIZES,
            "fmt_date": ledger.format_date, "ISSUE": ISSUE, "RETURN": RETURN}

# ==============================
# In-memory templates
# ==============================
TEMPLATES = {
"base.html": r"""
<!doctype html>
<html lang="{{ locale.html_lang }}">
<head>
  <meta charset="utf-8" />
  <title>{{ t('NO WERE TECH') }}</title>
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <style>
    :root { --blue:#2563eb; --grey:#6b7280; --b:#e5e7eb; --text:#111827; }
    body { font-family: system-ui, -apple-system, "Segoe UI", Roboto, "Noto Sans Gujarati", Arial, sans-serif; margin: 18px; color: var(--text); }
    header { display: flex; align-items: center; justify-content: space-between; margin-bottom: 16px; flex-wrap:wrap; gap:8px; }
    .btn { display:inline-block; padding:8px 12px; background:var(--blue); color:white; text-decoration:none; border-radius:6px; border:0; cursor:pointer; }
    .btn.secondary { background:var(--grey); }
    .btn.danger { background:#dc2626; }
    .btn.small { padding:6px 10px; font-size: 14px; }
    .card { border:1px solid var(--b); border-radius:10px; padding:16px; margin:12px 0; }
    input, select, textarea { padding:8px; border:1px solid #cbd5e1; border-radius:6px; width: 100%; box-sizing: border-box; }
    table { border-collapse: collapse; width:100%; }
    th, td { border:1px solid #e5e7eb; padding:8px; text-align:left; }
    th.right, td.right { text-align:right; }
    .row { display:flex; gap:12px; flex-wrap:wrap; }
    .grow { flex:1 1 250px; }
    .right { text-align:right; }
    .msg { color:#dc2626; margin-bottom:8px; }
    .ok { color:#15803d; margin-bottom:8px; }
    .warn { background:#fef3c7; padding:8px; border-radius:6px; }
    .pill { padding:2px 8px; border-radius:10px; font-size:12px; }
    .pill.active, .pill.low { background:#fee2e2; color:#b91c1c; }
    .pill.completed, .pill.ok { background:#dcfce7; color:#15803d; }
    .pill.empty { background:#f3f4f6; color:#6b7280; }
    .stats { display:grid; grid-template-columns: repeat(auto-fill, minmax(160px,1fr)); gap:12px; }
    label { font-size: 13px; color:#374151; }
    form.inline { display:inline; }
  </style>
</head>
<body>
  <header>
    <div><strong>{{ t('NO WERE TECH') }}</strong><br><small>{{ t('Centering Plates Rental Service') }}</small></div>
    <nav>
      <a class="btn secondary" href="{{ url_for('dashboard') }}">{{ t('Dashboard') }}</a>
      <a class="btn secondary" href="{{ url_for('issue') }}">{{ t('Issue') }}</a>
      <a class="btn secondary" href="{{ url_for('return_challan') }}">{{ t('Return') }}</a>
      <a class="btn secondary" href="{{ url_for('clients') }}">{{ t('Clients') }}</a>
      <a class="btn secondary" href="{{ url_for('challans') }}">{{ t('Challans') }}</a>
      <a class="btn secondary" href="{{ url_for('ledger_view') }}">{{ t('Ledger') }}</a>
      <a class="btn secondary" href="{{ url_for('stock') }}">{{ t('Stock') }}</a>
      {% if locale.language == 'gu' %}
        <a class="btn" href="{{ url_for('set_language', code='en') }}">English</a>
      {% else %}
        <a class="btn" href="{{ url_for('set_language', code='gu') }}">ગુજરાતી</a>
      {% endif %}
    </nav>
  </header>

  {% with messages = get_flashed_messages(with_categories=true) %}
    {% for cat, m in messages %}
      <div class="{{ 'msg' if cat == 'error' else 'ok' }}">{{ m }}</div>
    {% endfor %}
  {% endwith %}

  {% block content %}{% endblock %}
</body>
</html>
""",
"error.html": r"""
{% extends "base.html" %}
{% block content %}
<div class="card"><p class="msg">{{ t('Error') }}: {{ message }}</p></div>
{% endblock %}
""",
"dashboard.html": r"""
{% extends "base.html" %}
{% block content %}
<h2>{{ t('Dashboard') }}</h2>
<div class="stats">
  <div class="card"><small>{{ t('Total Clients') }}</small><h3>{{ stats.total_clients }}</h3></div>
  <div class="card"><small>{{ t('Active Rentals') }}</small><h3>{{ stats.active_rentals }}</h3></div>
  <div class="card"><small>{{ t('Pending Returns') }}</small><h3>{{ stats.pending_returns }}</h3></div>
  <div class="card"><small>{{ t('Total Stock') }}</small><h3>{{ stats.total_stock }}</h3></div>
  <div class="card"><small>{{ t('Low Stock Items') }}</small><h3>{{ stats.low_stock_items }}</h3></div>
  <div class="card"><small>{{ t('Pending Bills') }}</small><h3>{{ stats.pending_bills }}</h3></div>
  <div class="card"><small>{{ t('Total Revenue') }}</small><h3>₹{{ '%.2f'|format(stats.total_revenue) }}</h3></div>
</div>

<h3>{{ t('Quick Actions') }}</h3>
<div class="row">
  <a class="btn" href="{{ url_for('issue') }}">{{ t('Issue Challan') }}</a>
  <a class="btn" href="{{ url_for('return_challan') }}">{{ t('Return Challan') }}</a>
  <a class="btn secondary" href="{{ url_for('clients') }}">{{ t('Add New') }}</a>
</div>

<h3>{{ t('Recent Activity') }}</h3>
<table>
  <thead><tr><th></th><th>{{ t('Challan Number') }}</th><th>{{ t('Date') }}</th><th>{{ t('Client ID') }}</th><th class="right">{{ t('Total') }}</th></tr></thead>
  <tbody>
  {% for tx in stats.recent %}
    <tr>
      <td>{{ t('udhar') if tx.type == ISSUE else t('jama') }}</td>
      <td>{{ tx.number }}</td><td>{{ fmt_date(tx.date) }}</td><td>{{ tx.client_id }}</td>
      <td class="right">{{ tx['items']|sum(attribute='quantity') }}</td>
    </tr>
  {% else %}
    <tr><td colspan="5">{{ t('No Activity') }}</td></tr>
  {% endfor %}
  </tbody>
</table>
{% endblock %}
""",
"clients.html": r"""
{% extends "base.html" %}
{% block content %}
<h2>{{ t('Clients') }}</h2>
<form method="get" class="row">
  <div class="grow"><input name="q" value="{{ q }}" placeholder="{{ t('Search') }}"></div>
  <button class="btn small" type="submit">{{ t('Search') }}</button>
</form>

<form method="post" class="card">
  <h3>{{ t('Add New') }}</h3>
  <div class="row">
    <div class="grow"><label>{{ t('Client ID') }}</label><br><input name="id" required></div>
    <div class="grow"><label>{{ t('Name') }}</label><br><input name="name" required></div>
    <div class="grow"><label>{{ t('Site') }}</label><br><input name="site"></div>
    <div class="grow"><label>{{ t('Mobile Number') }}</label><br><input name="mobile_number"></div>
  </div>
  <p><button class="btn" type="submit">{{ t('Save') }}</button></p>
</form>

<table>
  <thead><tr><th>{{ t('Client ID') }}</th><th>{{ t('Name') }}</th><th>{{ t('Site') }}</th><th>{{ t('Mobile Number') }}</th><th></th></tr></thead>
  <tbody>
  {% for c in clients %}
    <tr>
      <td>{{ c.id }}</td><td>{{ c.name }}</td><td>{{ c.site }}</td><td>{{ c.mobile_number }}</td>
      <td>
        <a class="btn small secondary" href="{{ url_for('client_edit', client_id=c.id) }}">{{ t('Edit') }}</a>
        <form class="inline" method="post" action="{{ url_for('client_delete', client_id=c.id) }}" onsubmit="return confirm('{{ t('Confirm') }}?')">
          <button class="btn small danger" type="submit">{{ t('Delete') }}</button>
        </form>
      </td>
    </tr>
  {% endfor %}
  </tbody>
</table>
{% endblock %}
""",
"client_edit.html": r"""
{% extends "base.html" %}
{% block content %}
<h2>{{ t('Edit') }} - {{ client.id }}</h2>
<form method="post" class="card">
  <div class="row">
    <div class="grow"><label>{{ t('Name') }}</label><br><input name="name" value="{{ client.name }}" required></div>
    <div class="grow"><label>{{ t('Site') }}</label><br><input name="site" value="{{ client.site }}"></div>
    <div class="grow"><label>{{ t('Mobile Number') }}</label><br><input name="mobile_number" value="{{ client.mobile_number }}"></div>
  </div>
  <p>
    <button class="btn" type="submit">{{ t('Save') }}</button>
    <a class="btn secondary" href="{{ url_for('clients') }}">{{ t('Cancel') }}</a>
  </p>
</form>
{% endblock %}
""",
"issue.html": r"""
{% extends "base.html" %}
{% block content %}
<h2>{{ t('Issue Challan') }}</h2>
<form id="challanForm" method="post" class="card">
  <div class="row">
    <div class="grow">
      <label>{{ t('Select Client') }}</label><br>
      <select name="client_id" required>
        <option value="">--</option>
        {% for c in clients %}<option value="{{ c.id }}">{{ c.id }} - {{ c.name }} ({{ c.site }})</option>{% endfor %}
      </select>
    </div>
    <div><label>{{ t('Challan Number') }}</label><br><input name="challan_number" value="{{ next_no }}" required></div>
    <div><label>{{ t('Date') }}</label><br><input type="date" name="challan_date" value="{{ today }}" required></div>
  </div>

  <table>
    <thead><tr><th>{{ t('Plate Size') }}</th><th class="right">{{ t('Available') }}</th><th class="right">{{ t('Quantity to Borrow') }}</th></tr></thead>
    <tbody>
    {% for size in PLATE_SIZES %}
      <tr>
        <td>{{ t(size) }}<input type="hidden" name="size[]" value="{{ size }}"></td>
        <td class="right">{{ stock.get(size, {}).get('available_quantity', '-') }}</td>
        <td class="right"><input name="qty[]" type="number" min="0" step="1"></td>
      </tr>
    {% endfor %}
    </tbody>
  </table>

  <p><label>{{ t('Partner Stock Notes') }}</label><br>
     <textarea name="note" rows="2"></textarea>
     <small>{{ t('Warning') }}: required when a quantity is more than the available stock.</small></p>

  <div class="row">
    <select name="format" style="max-width:140px;"><option value="pdf">PDF</option><option value="jpg">JPG</option></select>
    <button id="ch_submit" class="btn" type="submit">{{ t('Create Challan') }}</button>
  </div>
</form>
{% include "download_js.html" %}
{% endblock %}
""",
"return.html": r"""
{% extends "base.html" %}
{% block content %}
<h2>{{ t('Return Challan') }}</h2>
<form method="get" class="row">
  <div class="grow">
    <label>{{ t('Select Client') }}</label><br>
    <select name="client_id" onchange="this.form.submit()">
      <option value="">--</option>
      {% for c in clients %}<option value="{{ c.id }}" {{ 'selected' if client and c.id == client.id else '' }}>{{ c.id }} - {{ c.name }} ({{ c.site }})</option>{% endfor %}
    </select>
  </div>
</form>

<details class="card">
  <summary>{{ t('Add New') }} - {{ t('Clients') }}</summary>
  <form method="post" action="{{ url_for('clients') }}">
    <input type="hidden" name="next" value="{{ url_for('return_challan') }}">
    <div class="row">
      <div class="grow"><label>{{ t('Client ID') }}</label><br><input name="id" required></div>
      <div class="grow"><label>{{ t('Name') }}</label><br><input name="name" required></div>
      <div class="grow"><label>{{ t('Site') }}</label><br><input name="site"></div>
      <div class="grow"><label>{{ t('Mobile Number') }}</label><br><input name="mobile_number"></div>
    </div>
    <p><button class="btn small" type="submit">{{ t('Save') }}</button></p>
  </form>
</details>

{% if client %}
<form id="challanForm" method="post" class="card">
  <input type="hidden" name="client_id" value="{{ client.id }}">
  <div class="row">
    <div><label>{{ t('Challan Number') }}</label><br><input name="return_challan_number" value="{{ next_no }}" required></div>
    <div><label>{{ t('Return Date') }}</label><br><input type="date" name="return_date" value="{{ today }}" required></div>
  </div>
  <table>
    <thead><tr><th>{{ t('Plate Size') }}</th><th class="right">{{ t('Outstanding') }}</th><th class="right">{{ t('Quantity Returned') }}</th><th>{{ t('Damage Notes') }}</th></tr></thead>
    <tbody>
    {% for size in PLATE_SIZES %}
      <tr>
        <td>{{ t(size) }}<input type="hidden" name="size[]" value="{{ size }}"></td>
        <td class="right">{{ outstanding.get(size, 0) }}</td>
        <td class="right"><input name="qty[]" type="number" min="0" step="1"></td>
        <td><input name="note[]"></td>
      </tr>
    {% endfor %}
    </tbody>
  </table>
  <div class="row" style="margin-top:8px;">
    <select name="format" style="max-width:140px;"><option value="pdf">PDF</option><option value="jpg">JPG</option></select>
    <button id="ch_submit" class="btn" type="submit">{{ t('Process Return') }}</button>
  </div>
</form>
{% include "download_js.html" %}
{% endif %}
{% endblock %}
""",
"download_js.html": r"""
<script>
document.getElementById('challanForm').addEventListener('submit', async (e)=>{
  e.preventDefault();
  const btn = document.getElementById('ch_submit');
  btn.disabled = true;
  try{
    const fd = new FormData(e.target);
    const res = await fetch(window.location.href, { method: "POST", body: fd, credentials: "same-origin",
                                                     headers: { "X-Requested-With": "fetch" } });
    if(!res.ok) throw new Error(await res.text());
    const blob = await res.blob();
    const dispo = res.headers.get('Content-Disposition') || '';
    const m = /filename\*=UTF-8''([^;]+)|filename="?([^"]+)"?/i.exec(dispo);
    const fname = decodeURIComponent((m && (m[1]||m[2])) || 'challan');
    const url = URL.createObjectURL(blob);
    const a = document.createElement('a'); a.href = url; a.download = fname; document.body.appendChild(a); a.click();
    setTimeout(()=>{ URL.revokeObjectURL(url); a.remove(); window.location.reload(); }, 500);
  }catch(err){
    alert(err.message || err);
  }finally{
    btn.disabled = false;
  }
});
</script>
""",
"challans.html": r"""
{% extends "base.html" %}
{% block content %}
<h2>{{ t('Challans') }}</h2>
<form method="get" class="row">
  <div class="grow"><input name="q" value="{{ q }}" placeholder="{{ t('Search') }}"></div>
  <button class="btn small" type="submit">{{ t('Search') }}</button>
</form>

{% for kind, title, rows in [(ISSUE, t('Issue Challan'), udhar), (RETURN, t('Return Challan'), jama)] %}
<h3>{{ title }} ({{ rows|length }})</h3>
<table>
  <thead><tr><th>{{ t('Challan Number') }}</th><th>{{ t('Date') }}</th><th>{{ t('Name') }}</th><th class="right">{{ t('Total') }}</th>{% if kind == ISSUE %}<th></th>{% endif %}<th></th></tr></thead>
  <tbody>
  {% for r in rows %}
    <tr>
      <td>{{ r.number }}</td><td>{{ fmt_date(r.date) }}</td>
      <td>{{ r.client.name }} ({{ r.client_id }})</td>
      <td class="right">{{ r.total }}</td>
      {% if kind == ISSUE %}<td><span class="pill {{ r.status }}">{{ t(r.status|capitalize) }}</span></td>{% endif %}
      <td>
        <a class="btn small" href="{{ url_for('challan_download', kind=kind, doc_id=r.id, format='pdf') }}">PDF</a>
        <a class="btn small" href="{{ url_for('challan_download', kind=kind, doc_id=r.id, format='jpg') }}">JPG</a>
        <a class="btn small secondary" href="{{ url_for('challan_edit', kind=kind, doc_id=r.id) }}">{{ t('Edit') }}</a>
        <form class="inline" method="post" action="{{ url_for('challan_delete', kind=kind, doc_id=r.id) }}" onsubmit="return confirm('{{ t('Confirm') }}?')">
          <button class="btn small danger" type="submit">{{ t('Delete') }}</button>
        </form>
      </td>
    </tr>
  {% endfor %}
  </tbody>
</table>
{% endfor %}
{% endblock %}
""",
"challan_edit.html": r"""
{% extends "base.html" %}
{% block content %}
<h2>{{ t('Edit') }} - {{ t('Issue Challan') if kind == ISSUE else t('Return Challan') }} {{ number }}</h2>
<form method="post" class="card">
  <div class="row">
    <div><label>{{ t('Challan Number') }}</label><br><input name="number" value="{{ number }}" required></div>
    <div><label>{{ t('Date') }}</label><br><input type="date" name="date" value="{{ date }}" required></div>
  </div>
  <table>
    <thead><tr><th>{{ t('Plate Size') }}</th><th class="right">{{ t('Quantity') }}</th><th>{{ t('Notes') }}</th></tr></thead>
    <tbody>
    {% for size in sizes %}
      <tr>
        <td>{{ t(size) }}<input type="hidden" name="size[]" value="{{ size }}"></td>
        <td class="right"><input name="qty[]" type="number" min="0" step="1" value="{{ lines.get(size, {}).get('quantity', '') }}"></td>
        <td><input name="note[]" value="{{ lines.get(size, {}).get('notes', '') }}"></td>
      </tr>
    {% endfor %}
    </tbody>
  </table>
  <p>
    <button class="btn" type="submit">{{ t('Save') }}</button>
    <a class="btn secondary" href="{{ url_for('challans') }}">{{ t('Cancel') }}</a>
  </p>
</form>
{% endblock %}
""",
"ledger.html": r"""
{% extends "base.html" %}
{% block content %}
<h2>{{ t('Ledger') }}</h2>
<div class="row">
  <form method="get" class="row grow">
    <div class="grow"><input name="q" value="{{ q }}" placeholder="{{ t('Search') }}"></div>
    <button class="btn small" type="submit">{{ t('Search') }}</button>
  </form>
  <a class="btn" href="{{ url_for('ledger_backup') }}">{{ t('Backup') }}</a>
</div>

{% for lg in ledgers %}
<details class="card">
  <summary>
    <b>{{ lg.client.name }} ({{ lg.client.id }})</b> - {{ lg.client.site }} - {{ lg.client.mobile_number }}
    {% if lg.total_outstanding > 0 %}
      <span class="pill active">{{ lg.total_outstanding }} {{ t('Outstanding') }}</span>
    {% else %}
      <span class="pill completed">{{ t('Completed') }}</span>
    {% endif %}
  </summary>
  {% if not lg.has_activity %}
    <p>{{ t('No Activity') }}</p>
  {% else %}
    <table>
      <thead><tr><th>{{ t('Plate Size') }}</th><th class="right">{{ t('Issue') }}</th><th class="right">{{ t('Return') }}</th><th class="right">{{ t('Outstanding') }}</th></tr></thead>
      <tbody>
      {% for b in lg.plate_balances %}
        <tr><td>{{ t(b.plate_size) }}</td><td class="right">{{ b.total_borrowed }}</td><td class="right">{{ b.total_returned }}</td><td class="right">{{ b.outstanding }}</td></tr>
      {% endfor %}
      </tbody>
    </table>

    <h4>{{ t('Active') }} ({{ lg.active_challans|length }}) / {{ t('Completed') }} ({{ lg.completed_challans|length }})</h4>
    <ul>
    {% for ch in lg.active_challans %}
      <li>{{ ch.challan_number }} - {{ fmt_date(ch.challan_date) }} - {{ t('Days on Rent') }}: {{ ch.days_on_rent }}</li>
    {% endfor %}
    </ul>

    <table>
      <thead><tr><th></th><th>{{ t('Challan Number') }}</th><th>{{ t('Date') }}</th><th>{{ t('Plate Size') }}</th><th></th></tr></thead>
      <tbody>
      {% for tx in lg.transactions %}
        <tr>
          <td>{{ t('udhar') if tx.type == ISSUE else t('jama') }}</td>
          <td>{{ tx.number }}</td><td>{{ fmt_date(tx.date) }}</td>
          <td>{% for it in tx['items'] %}{{ t(it.plate_size) }}: {{ it.quantity }}{{ ', ' if not loop.last }}{% endfor %}</td>
          <td><a class="btn small" href="{{ url_for('challan_download', kind=tx.type, doc_id=tx.id, format='jpg') }}">{{ t('Download') }}</a></td>
        </tr>
      {% endfor %}
      </tbody>
    </table>
  {% endif %}
</details>
{% endfor %}
{% endblock %}
""",
"stock.html": r"""
{% extends "base.html" %}
{% block content %}
<h2>{{ t('Stock') }}</h2>
<div class="row">
  <form method="post" action="{{ url_for('stock') }}" class="row grow">
    <div class="grow"><input name="plate_size" placeholder="{{ t('Plate Size') }}" required></div>
    <button class="btn small" type="submit">{{ t('Add New') }}</button>
  </form>
  <form method="post" action="{{ url_for('stock_refresh') }}">
    <button class="btn small secondary" type="submit">{{ t('Update Stock') }}</button>
  </form>
</div>

<table>
  <thead><tr><th>{{ t('Plate Size') }}</th><th class="right">{{ t('Total Quantity') }}</th><th class="right">{{ t('On Rent') }}</th><th class="right">{{ t('Available') }}</th><th></th><th></th></tr></thead>
  <tbody>
  {% for s in rows %}
    <tr>
      <td>{{ t(s.plate_size) }}</td>
      <td class="right"><input form="stock-{{ s.id }}" name="total_quantity" type="number" min="0" value="{{ s.total_quantity or 0 }}"></td>
      <td class="right"><input form="stock-{{ s.id }}" name="on_rent_quantity" type="number" min="0" value="{{ s.on_rent_quantity or 0 }}"></td>
      <td class="right">{{ s.available_quantity or 0 }}</td>
      <td><span class="pill {{ s.status }}">{{ s.status }}</span></td>
      <td>
        <form id="stock-{{ s.id }}" method="post" action="{{ url_for('stock_update', stock_id=s.id) }}">
          <button class="btn small" type="submit">{{ t('Save') }}</button>
        </form>
      </td>
    </tr>
  {% endfor %}
  </tbody>
</table>
{% endblock %}
""",
}

# mount in-memory templates
app.jinja_loader = DictLoader(TEMPLATES)

# ==============================
# Routes
# ==============================
@app.route("/healthz")
def healthz():
    return "ok", 200

@app.route("/", methods=["GET"])
def root():
    return redirect(url_for("dashboard"))

@app.route("/language/<code>")
def set_language(code):
    session["language"] = normalize_language(code)
    session.permanent = True
    return redirect(request.referrer or url_for("dashboard"))

@app.route("/dashboard")
@store_guard
def dashboard():
    store = get_store()
    # one fixed parallel batch, joined before computing
    with ThreadPoolExecutor(max_workers=5) as pool:
        futs = {
            "clients":  pool.submit(store.select, "clients"),
            "challans": pool.submit(store.fetch_challans),
            "returns":  pool.submit(store.fetch_returns),
            "stock":    pool.submit(store.select, "stock"),
            "bills":    pool.submit(store.select, "bills"),
        }
        res = {k: f.result() for k, f in futs.items()}
    stats = ledger.dashboard_summary(res["clients"], res["challans"], res["returns"], res["stock"], res["bills"],
                                     low_threshold=LOW_STOCK_THRESHOLD, today=today())
    return render_template("dashboard.html", stats=stats)

# ---------- Clients ----------
@app.route("/clients", methods=["GET","POST"])
@store_guard
def clients():
    store = get_store()
    if request.method == "POST":
        client = {
            "id":            request.form.get("id","").strip(),
            "name":          request.form.get("name","").strip(),
            "site":          request.form.get("site","").strip(),
            "mobile_number": request.form.get("mobile_number","").strip(),
        }
        back = request.form.get("next") or url_for("clients")
        if not _local_path(back): back = url_for("clients")
        if not client["id"] or not client["name"]:
            flash("Client ID and name are required.", "error"); return redirect(back)
        if store.get("clients", client["id"]):
            flash("Client ID already exists. Please use a different ID.", "error"); return redirect(back)
        store.insert("clients", [client])
        flash("Client added successfully!", "success")
        if back.startswith(url_for("return_challan")):
            return redirect(url_for("return_challan", client_id=client["id"]))
        return redirect(back)

    q = request.args.get("q","").strip().lower()
    rows = store.select("clients", order_by="id")
    if q:
        rows = [c for c in rows if any(q in str(c.get(k) or "").lower() for k in ("id","name","site","mobile_number"))]
    return render_template("clients.html", clients=rows, q=q)

@app.route("/clients/<client_id>/edit", methods=["GET","POST"])
@store_guard
def client_edit(client_id):
    store = get_store()
    client = store.get("clients", client_id)
    if not client: abort(404)
    if request.method == "POST":
        name = request.form.get("name","").strip()
        if not name:
            return fail("Client name is required.", "client_edit", client_id=client_id)
        store.update("clients", client_id, {
            "name": name,
            "site": request.form.get("site","").strip(),
            "mobile_number": request.form.get("mobile_number","").strip(),
        })
        flash("Client updated successfully!", "success")
        return redirect(url_for("clients"))
    return render_template("client_edit.html", client=client)

@app.route("/clients/<client_id>/delete", methods=["POST"])
@store_guard
def client_delete(client_id):
    store = get_store()
    if store.select("challans", limit=1, client_id=client_id) or store.select("returns", limit=1, client_id=client_id):
        return fail("Client has existing challans and cannot be deleted.", "clients")
    if not store.delete("clients", id=client_id):
        abort(404)
    flash("Client deleted successfully!", "success")
    return redirect(url_for("clients"))

# ---------- Issue (Udhar) ----------
@app.route("/issue", methods=["GET","POST"])
@store_guard
def issue():
    store = get_store()
    if request.method == "GET":
        stock = {s["plate_size"]: s for s in store.select("stock")}
        return render_template("issue.html",
                               clients=store.select("clients", order_by="id"),
                               stock=stock,
                               next_no=store.suggest_number(ISSUE),
                               today=today().isoformat())
    try:
        client = store.get("clients", request.form.get("client_id","").strip())
        if not client:
            raise ValidationError("Please select a client.")
        number = request.form.get("challan_number","").strip()
        if not number:
            raise ValidationError("Please enter a challan number.")
        if store.number_exists(ISSUE, number):
            raise DuplicateNumberError(ISSUE, number)
        lines = parse_plate_lines()
        quantities = {s: q for s, q, _ in lines if q > 0}
        if not quantities:
            raise ValidationError("Please enter at least one plate quantity.")
        note = request.form.get("note","").strip()
        short = ledger.stock_shortfalls(quantities, store.select("stock"))
        if short and not note:
            sizes = ", ".join(f"{s['size']} ({s['requested']}/{s['available']})" for s in short)
            raise ValidationError(f"Please add a note for items with insufficient stock: {sizes}")
        challan_date = ledger.parse_date(request.form.get("challan_date")) or today()
        doc = store.create_document(ISSUE, {
            "challan_number": number,
            "client_id": client["id"],
            "challan_date": challan_date.isoformat(),
            "status": "active",
        }, _items_for(ISSUE, lines, shared_note=note))
    except ValidationError as e:
        return fail(str(e), "issue")
    _refresh_stock(store)
    try:
        return send_challan(ISSUE, doc, client, request.form.get("format","pdf"))
    except ChallanRenderError as e:
        return fail(f"Challan {number} saved, but the download failed: {e}", "challans")

# ---------- Return (Jama) ----------
@app.route("/return", methods=["GET","POST"])
@store_guard
def return_challan():
    store = get_store()
    if request.method == "GET":
        client = None; outstanding = {}
        cid = request.args.get("client_id","").strip()
        if cid:
            client = store.get("clients", cid)
            if client:
                balances = ledger.aggregate_balances(ledger.issue_items(store.fetch_challans(cid)),
                                                     ledger.return_items(store.fetch_returns(cid)))
                outstanding = ledger.outstanding_plates(balances)
        return render_template("return.html",
                               clients=store.select("clients", order_by="id"),
                               client=client, outstanding=outstanding,
                               next_no=store.suggest_number(RETURN),
                               today=today().isoformat())
    cid = request.form.get("client_id","").strip()
    try:
        client = store.get("clients", cid)
        if not client:
            raise ValidationError("Please select a client.")
        number = request.form.get("return_challan_number","").strip()
        if not number:
            raise ValidationError("Please enter a return challan number.")
        if store.number_exists(RETURN, number):
            raise DuplicateNumberError(RETURN, number)
        lines = parse_plate_lines()
        items = _items_for(RETURN, lines)
        if not items:
            raise ValidationError("Please enter at least one plate quantity.")
        return_date = ledger.parse_date(request.form.get("return_date")) or today()
        doc = store.create_document(RETURN, {
            "return_challan_number": number,
            "client_id": client["id"],
            "return_date": return_date.isoformat(),
        }, items)
    except ValidationError as e:
        return fail(str(e), "return_challan", client_id=cid or None)
    _refresh_stock(store)
    try:
        return send_challan(RETURN, doc, client, request.form.get("format","pdf"))
    except ChallanRenderError as e:
        return fail(f"Return challan {number} saved, but the download failed: {e}", "challans")

# ---------- Challan management ----------
def _summaries(kind, docs, clients_by_id, statuses=None):
    num_key, date_key = DOCS[kind]["number"], DOCS[kind]["date"]
    qty_key = "borrowed_quantity" if kind == ISSUE else "returned_quantity"
    out = []
    for d in docs:
        row = {
            "id": d["id"], "number": d.get(num_key), "date": d.get(date_key),
            "client_id": d.get("client_id"),
            "client": clients_by_id.get(d.get("client_id"), {"name": ""}),
            "total": sum(it.get(qty_key) or 0 for it in d["items"]),
        }
        if statuses is not None:
            row["status"] = statuses.get(d["id"]) or d.get("status") or "active"
        out.append(row)
    return out

@app.route("/challans")
@store_guard
def challans():
    store = get_store()
    clients_by_id = {c["id"]: c for c in store.select("clients")}
    udhar, jama = store.fetch_challans(), store.fetch_returns()
    rows_u = _summaries(ISSUE, udhar, clients_by_id, ledger.challan_statuses(udhar, jama, today=today()))
    rows_j = _summaries(RETURN, jama, clients_by_id)
    q = request.args.get("q","").strip().lower()
    if q:
        def hit(r):
            return q in str(r["number"] or "").lower() or q in str(r["client_id"] or "").lower() \
                or q in str(r["client"].get("name") or "").lower()
        rows_u = [r for r in rows_u if hit(r)]
        rows_j = [r for r in rows_j if hit(r)]
    return render_template("challans.html", udhar=rows_u, jama=rows_j, q=q)

@app.route("/challans/<kind>/<int:doc_id>/download")
@store_guard
def challan_download(kind, doc_id):
    store = get_store()
    doc = store.fetch_document(_kind_or_404(kind), doc_id)
    if not doc: abort(404)
    client = store.get("clients", doc.get("client_id"))
    try:
        return send_challan(kind, doc, client, request.args.get("format","pdf"))
    except ChallanRenderError as e:
        app.logger.error("Challan download failed: %s", e)
        return fail("Error downloading challan. Please try again.", "challans")

@app.route("/challans/<kind>/<int:doc_id>/edit", methods=["GET","POST"])
@store_guard
def challan_edit(kind, doc_id):
    store = get_store()
    d = DOCS[_kind_or_404(kind)]
    doc = store.fetch_document(kind, doc_id)
    if not doc: abort(404)
    if request.method == "POST":
        try:
            number = request.form.get("number","").strip()
            if not number:
                raise ValidationError("Please enter a challan number.")
            items = _items_for(kind, parse_plate_lines())
            if not items:
                raise ValidationError("Please enter at least one plate quantity.")
            when = ledger.parse_date(request.form.get("date")) or ledger.parse_date(doc.get(d["date"])) or today()
            store.update_document(kind, doc_id, {d["number"]: number, d["date"]: when.isoformat()}, items)
        except ValidationError as e:
            return fail(str(e), "challan_edit", kind=kind, doc_id=doc_id)
        _refresh_stock(store)
        flash(f"Challan {number} updated.", "success")
        return redirect(url_for("challans"))

    tx = ledger.build_timeline([doc], []) if kind == ISSUE else ledger.build_timeline([], [doc])
    lines = {it["plate_size"]: it for it in tx[0]["items"]}
    sizes = PLATE_SIZES + sorted(s for s in lines if s not in PLATE_SIZES)
    when = ledger.parse_date(doc.get(d["date"]))
    return render_template("challan_edit.html", kind=kind, number=doc.get(d["number"]),
                           date=when.isoformat() if when else "", lines=lines, sizes=sizes)

@app.route("/challans/<kind>/<int:doc_id>/delete", methods=["POST"])
@store_guard
def challan_delete(kind, doc_id):
    store = get_store()
    if not store.delete_document(_kind_or_404(kind), doc_id):
        abort(404)
    _refresh_stock(store)
    flash("Challan deleted.", "success")
    return redirect(url_for("challans"))

# ---------- Ledger ----------
def _all_ledgers(store):
    return ledger.client_ledgers(store.select("clients", order_by="id"),
                                 store.fetch_challans(), store.fetch_returns(), today=today())

@app.route("/ledger")
@store_guard
def ledger_view():
    q = request.args.get("q","").strip()
    ledgers = ledger.search_ledgers(_all_ledgers(get_store()), q)
    return render_template("ledger.html", ledgers=ledgers, q=q)

@app.route("/ledger/backup.csv")
@store_guard
def ledger_backup():
    body = ledger.ledger_csv(_all_ledgers(get_store()))
    fname = f"ledger-backup-{today().isoformat()}.csv"
    return Response(body, mimetype="text/csv; charset=utf-8",
                    headers={"Content-Disposition": f'attachment; filename="{fname}"'})

# ---------- Stock ----------
@app.route("/stock", methods=["GET","POST"])
@store_guard
def stock():
    store = get_store()
    if request.method == "POST":
        size = request.form.get("plate_size","").strip()
        if not size:
            return fail("Please enter a plate size.", "stock")
        if store.add_plate_size(size) is None:
            return fail("Error adding plate size. Please check if it already exists.", "stock")
        return redirect(url_for("stock"))
    rows = sorted(store.select("stock"), key=lambda s: ledger.plate_sort_key(s.get("plate_size")))
    for s in rows:
        s["status"] = ledger.stock_status(s, LOW_STOCK_THRESHOLD)
    return render_template("stock.html", rows=rows)

@app.route("/stock/<int:stock_id>", methods=["POST"])
@store_guard
def stock_update(stock_id):
    store = get_store()
    try:
        total  = _int(request.form.get("total_quantity"), "Total Quantity")
        on_rent = _int(request.form.get("on_rent_quantity"), "On Rent")
        if on_rent > total:
            raise ValidationError("On-rent quantity cannot exceed total quantity.")
    except ValidationError as e:
        return fail(str(e), "stock")
    if store.update_stock(stock_id, total, on_rent) is None:
        abort(404)
    return redirect(url_for("stock"))

@app.route("/stock/refresh", methods=["POST"])
@store_guard
def stock_refresh():
    changed = get_store().refresh_on_rent()
    flash(f"Stock recalculated from the ledger ({changed} sizes changed).", "success")
    return redirect(url_for("stock"))

# ==============================
# Main
# ==============================
if __name__ == "__main__":
  app.run(host="0.0.0.0", port=int(os.getenv("PORT", "8080")), debug=True)
