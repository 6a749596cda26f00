import copy
import itertools
import json
import re
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.database.supabase_client import get_supabase, get_service_supabase
from app.main import app
from app.modules.auth.service import clear_auth_cache
from app.modules.realtime.publisher import EventPublisher, get_event_publisher
from app.modules.telegram.client import TelegramClient, get_telegram_client


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _comparable(value):
    if isinstance(value, str) and re.match(r"^\d{4}-\d{2}-\d{2}T", value):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value


def _ilike(value, pattern):
    if value is None:
        return False
    regex = "^" + ".*".join(re.escape(part) for part in str(pattern).split("%")) + "$"
    return re.match(regex, str(value), re.IGNORECASE | re.DOTALL) is not None


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Chainable stand-in for the postgrest query builder over in-memory rows."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.orders = []
        self._limit = None
        self._offset = 0
        self._single = None

    def select(self, *columns, **kwargs):
        self.op = "select"
        return self

    def insert(self, data):
        self.op, self.payload = "insert", data
        return self

    def update(self, data):
        self.op, self.payload = "update", data
        return self

    def delete(self):
        self.op = "delete"
        return self

    def _where(self, predicate):
        self.filters.append(predicate)
        return self

    def eq(self, column, value):
        return self._where(lambda row: row.get(column) == value)

    def neq(self, column, value):
        return self._where(lambda row: row.get(column) != value)

    def gt(self, column, value):
        return self._where(lambda row: row.get(column) is not None and _comparable(row[column]) > _comparable(value))

    def gte(self, column, value):
        return self._where(lambda row: row.get(column) is not None and _comparable(row[column]) >= _comparable(value))

    def lt(self, column, value):
        return self._where(lambda row: row.get(column) is not None and _comparable(row[column]) < _comparable(value))

    def lte(self, column, value):
        return self._where(lambda row: row.get(column) is not None and _comparable(row[column]) <= _comparable(value))

    def in_(self, column, values):
        values = list(values)
        return self._where(lambda row: row.get(column) in values)

    def ilike(self, column, pattern):
        return self._where(lambda row: _ilike(row.get(column), pattern))

    def or_(self, expression):
        clauses = []
        for part in expression.split(","):
            column, op, value = part.split(".", 2)
            clauses.append((column, op, value))

        def matches(row):
            for column, op, value in clauses:
                if op == "ilike" and _ilike(row.get(column), value):
                    return True
                if op == "eq" and str(row.get(column)) == value:
                    return True
            return False
        return self._where(matches)

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def offset(self, count):
        self._offset = count
        return self

    def range(self, start, end):
        self._offset, self._limit = start, end - start + 1
        return self

    def single(self):
        self._single = "single"
        return self

    def maybe_single(self):
        self._single = "maybe"
        return self

    def _matching(self):
        rows = self.db.tables.setdefault(self.table, [])
        return [row for row in rows if all(f(row) for f in self.filters)]

    def execute(self):
        self.db.calls.append((self.table, self.op))
        if self.op == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.add(self.table, item) for item in items]
            return FakeResponse(copy.deepcopy(inserted))
        if self.op == "update":
            updated = []
            for row in self._matching():
                row.update(copy.deepcopy(self.payload))
                updated.append(copy.deepcopy(row))
            return FakeResponse(updated)
        if self.op == "delete":
            removed = self._matching()
            self.db.tables[self.table] = [row for row in self.db.tables[self.table] if row not in removed]
            return FakeResponse(copy.deepcopy(removed))

        rows = self._matching()
        for column, desc in reversed(self.orders):
            rows.sort(key=lambda row: (row.get(column) is None, _comparable(row.get(column))), reverse=desc)
        rows = rows[self._offset:]
        if self._limit is not None:
            rows = rows[:self._limit]
        rows = copy.deepcopy(rows)
        if self._single:
            return FakeResponse(rows[0] if rows else None)
        return FakeResponse(rows)


class FakeAuthAdmin:
    def __init__(self, db):
        self.db = db
        self.created = []
        self.password_updates = []

    def create_user(self, attributes):
        user_id = str(uuid.uuid4())
        self.created.append({"id": user_id, **attributes})
        return SimpleNamespace(user=SimpleNamespace(id=user_id, email=attributes["email"]))

    def update_user_by_id(self, user_id, attributes):
        self.password_updates.append((user_id, attributes))
        return SimpleNamespace(user=SimpleNamespace(id=user_id))


class FakeAuth:
    def __init__(self, db):
        self.db = db
        self.tokens = {}
        self.admin = FakeAuthAdmin(db)

    def get_user(self, jwt=None):
        user_id = self.tokens.get(jwt)
        if user_id is None:
            raise Exception("invalid JWT")
        profile = next((p for p in self.db.tables.get("profiles", []) if p["id"] == user_id), {})
        return SimpleNamespace(user=SimpleNamespace(
            id=user_id,
            email=profile.get("email"),
            user_metadata={},
            app_metadata={},
            created_at=_now_iso(),
            updated_at=None,
        ))

    def sign_up(self, credentials):
        """Like the handle_new_user trigger, a pending profile row is created with the auth user."""
        email = credentials["email"]
        if any(p.get("email") == email for p in self.db.tables.get("profiles", [])):
            raise Exception("User already registered")
        metadata = (credentials.get("options") or {}).get("data") or {}
        profile = self.db.add("profiles", {
            "email": email,
            "full_name": metadata.get("full_name"),
            "user_type": metadata.get("user_type", "buyer"),
            "verification_status": "pending",
        })
        return SimpleNamespace(user=SimpleNamespace(id=profile["id"], email=email), session=None)

    def sign_out(self):
        return None


class FakeRpc:
    def __init__(self, db, name, params):
        self.db, self.name, self.params = db, name, params

    def execute(self):
        self.db.calls.append(("rpc", self.name))
        return FakeResponse(self.db.rpc_handlers[self.name](self.params))


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.calls = []
        self.auth = FakeAuth(self)
        self._lot_numbers = itertools.count(1001)
        self._order_numbers = itertools.count(1)
        self.rpc_handlers = {
            "get_next_order_number": lambda params: next(self._order_numbers),
            "increment_product_view_count": self._increment_views,
        }

    def _increment_views(self, params):
        for row in self.tables.get("products", []):
            if row["id"] == params["product_id"]:
                row["view_count"] = (row.get("view_count") or 0) + 1
        return None

    def add(self, table, item):
        row = copy.deepcopy(item)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", _now_iso())
        if table == "products":
            row.setdefault("lot_number", next(self._lot_numbers))
            row.setdefault("view_count", 0)
        if table == "orders":
            row.setdefault("images", [])
            row.setdefault("video_url", [])
        self.tables.setdefault(table, []).append(row)
        return row

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params=None):
        return FakeRpc(self, name, params or {})

    def rows(self, table, **match):
        return [row for row in self.tables.get(table, []) if all(row.get(k) == v for k, v in match.items())]


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def telegram_calls():
    return []


@pytest.fixture
def pusher_calls():
    return []


@pytest.fixture
def client(db, telegram_calls, pusher_calls, monkeypatch):
    clear_auth_cache()
    monkeypatch.setattr(settings, "telegram_product_group_chat_id", "-1001234567890")
    monkeypatch.setattr(settings, "telegram_order_group_chat_id", "-1009876543210")
    monkeypatch.setattr(settings, "telegram_bot_id", 777)
    monkeypatch.setattr(settings, "telegram_webhook_secret", None)

    def telegram_handler(request):
        method = request.url.path.rsplit("/", 1)[-1]
        telegram_calls.append((method, json.loads(request.content)))
        return httpx.Response(200, json={"ok": True, "result": {"message_id": len(telegram_calls)}})

    def pusher_handler(request):
        pusher_calls.append(json.loads(request.content))
        return httpx.Response(200, json={})

    telegram = TelegramClient(
        "123:test-token",
        http_client=httpx.Client(transport=httpx.MockTransport(telegram_handler)),
        sleep=lambda seconds: None,
    )
    publisher = EventPublisher(
        "1", "key", "secret",
        http_client=httpx.Client(transport=httpx.MockTransport(pusher_handler)),
    )
    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[get_service_supabase] = lambda: db
    app.dependency_overrides[get_telegram_client] = lambda: telegram
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    yield TestClient(app)
    app.dependency_overrides.clear()
    clear_auth_cache()


def make_profile(db, user_type, token=None, **fields):
    profile = db.add("profiles", {
        "email": f"{user_type}-{uuid.uuid4().hex[:6]}@example.com",
        "full_name": f"Test {user_type.capitalize()}",
        "user_type": user_type,
        "verification_status": "verified",
        **fields,
    })
    if token:
        db.auth.tokens[token] = profile["id"]
    return profile


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(db):
    return make_profile(db, "admin", "admin-token", opt_id="ADM", telegram_id=1001)


@pytest.fixture
def seller(db):
    return make_profile(db, "seller", "seller-token", opt_id="MDY", telegram="mdy_parts", telegram_id=2002)


@pytest.fixture
def buyer(db):
    return make_profile(db, "buyer", "buyer-token", opt_id="PETR", telegram="petr", telegram_id=3003)


@pytest.fixture
def active_product(db, seller):
    product = db.add("products", {
        "title": "Front bumper",
        "price": 150.0,
        "delivery_price": 20.0,
        "brand": "Toyota",
        "model": "Camry",
        "place_number": 1,
        "status": "active",
        "seller_id": seller["id"],
        "seller_name": seller["full_name"],
        "optid_created": seller["opt_id"],
        "telegram_url": seller["telegram"],
        "cloudinary_url": "https://res.cloudinary.com/demo/image/upload/v1/products/bumper.jpg",
    })
    return product
