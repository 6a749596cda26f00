from app.config.permissions_config import USER_TYPE_ACTIONS, get_permission_matrix, get_user_type_permissions
from app.modules.profiles.schemas import normalize_telegram_username
from tests.conftest import auth, make_profile


def test_health_and_root(client):
    assert client.get("/health").json() == {"status": "healthy"}
    root = client.get("/")
    assert root.json()["status"] == "healthy"
    assert root.headers["X-Content-Type-Options"] == "nosniff"
    assert root.headers["X-Frame-Options"] == "DENY"


def test_ready_lists_integrations(client):
    body = client.get("/ready").json()
    assert body["status"] == "ready"
    assert set(body["integrations"]) == {"supabase", "telegram", "cloudinary", "pusher", "email", "s3_backup"}


def test_normalize_telegram_username():
    assert normalize_telegram_username("@mdy_parts") == "mdy_parts"
    assert normalize_telegram_username("https://t.me/mdy_parts") == "mdy_parts"
    assert normalize_telegram_username("  mdy_parts ") == "mdy_parts"
    assert normalize_telegram_username("@") is None


def test_update_own_profile(client, db, buyer):
    response = client.put("/api/v1/profiles/me", headers=auth("buyer-token"), json={
        "telegram": "t.me/petr_new", "location": "Dubai"
    })

    assert response.status_code == 200
    assert response.json()["telegram"] == "petr_new"
    stored = db.rows("profiles", id=buyer["id"])[0]
    assert stored["location"] == "Dubai"
    assert stored["full_name"] == buyer["full_name"]


def test_profile_access(client, admin, seller, buyer):
    assert client.get(f"/api/v1/profiles/{seller['id']}", headers=auth("buyer-token")).status_code == 403
    assert client.get(f"/api/v1/profiles/{buyer['id']}", headers=auth("buyer-token")).status_code == 200
    assert client.get(f"/api/v1/profiles/{buyer['id']}", headers=auth("admin-token")).status_code == 200
    assert client.get("/api/v1/profiles", headers=auth("buyer-token")).status_code == 403


def test_admin_lists_profiles_with_search(client, admin, seller, buyer):
    response = client.get("/api/v1/profiles", headers=auth("admin-token"), params={"search": "mdy"})
    assert [p["id"] for p in response.json()] == [seller["id"]]

    sellers = client.get("/api/v1/profiles", headers=auth("admin-token"), params={"user_type": "seller"}).json()
    assert [p["opt_id"] for p in sellers] == ["MDY"]


def test_verification_change_is_sent_once(client, db, admin, telegram_calls):
    user = make_profile(db, "seller", verification_status="pending", telegram_id=4004)
    url = f"/api/v1/profiles/{user['id']}/verification"

    response = client.put(url, headers=auth("admin-token"), json={"verification_status": "verified"})

    assert response.json()["verification_status"] == "verified"
    assert len(telegram_calls) == 1
    assert telegram_calls[0][1]["chat_id"] == 4004
    assert "approved" in telegram_calls[0][1]["text"]

    client.put(url, headers=auth("admin-token"), json={"verification_status": "verified"})
    assert len(telegram_calls) == 1

    client.put(url, headers=auth("admin-token"), json={"verification_status": "blocked"})
    assert len(telegram_calls) == 2


def test_notifications_read_flow(client, db, buyer):
    first = db.add("notifications", {"user_id": buyer["id"], "type": "order_status", "title": "A", "message": "a", "data": {}, "read": False})
    db.add("notifications", {"user_id": buyer["id"], "type": "order_status", "title": "B", "message": "b", "data": {}, "read": False})
    db.add("notifications", {"user_id": "someone-else", "type": "x", "title": "C", "message": "c", "data": {}, "read": False})

    assert len(client.get("/api/v1/notifications", headers=auth("buyer-token")).json()) == 2

    marked = client.post(f"/api/v1/notifications/{first['id']}/read", headers=auth("buyer-token"))
    assert marked.json()["read"] is True
    unread = client.get("/api/v1/notifications", headers=auth("buyer-token"), params={"unread_only": True}).json()
    assert [n["title"] for n in unread] == ["B"]

    assert client.post("/api/v1/notifications/read-all", headers=auth("buyer-token")).json()["updated"] == 1
    assert client.post("/api/v1/notifications/missing/read", headers=auth("buyer-token")).status_code == 404


def test_permission_matrix_by_user_type():
    matrix = get_permission_matrix()
    names = [p["name"] for p in matrix["permissions"]]

    assert set(matrix["user_types"]) == {"admin", "buyer", "seller"}
    assert set(USER_TYPE_ACTIONS) == {"buyer", "seller"}
    assert matrix["user_types"]["admin"] == sorted(names)
    assert "telegram:message" in names
    assert "telegram:message" not in matrix["user_types"]["seller"]
    assert "price_offers:respond" in get_user_type_permissions("seller")
    assert "price_offers:respond" not in get_user_type_permissions("buyer")
    assert get_user_type_permissions("guest") == []
