from datetime import datetime, timedelta, timezone

from app.main import app
from app.modules.media.routes import get_backup_storage, get_optional_cloudinary_storage
from app.modules.products.service import repost_hours_remaining
from tests.conftest import auth, make_profile


def test_repost_hours_remaining():
    now = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
    assert repost_hours_remaining(None, 72, now) == 0
    assert repost_hours_remaining((now - timedelta(hours=10)).isoformat(), 72, now) == 62
    assert repost_hours_remaining(now - timedelta(hours=71, minutes=30), 72, now) == 1
    assert repost_hours_remaining(now - timedelta(hours=73), 72, now) == 0


def test_catalog_shows_only_active_products(client, db, seller, active_product):
    db.add("products", {"title": "Hidden", "price": 10, "status": "pending", "seller_id": seller["id"]})

    response = client.get("/api/v1/products")

    assert response.status_code == 200
    assert [p["id"] for p in response.json()] == [active_product["id"]]


def test_catalog_search_and_price_filters(client, db, seller, active_product):
    db.add("products", {"title": "Headlight", "price": 900, "brand": "Kia", "status": "active", "seller_id": seller["id"]})

    by_search = client.get("/api/v1/products", params={"search": "bump"}).json()
    assert [p["title"] for p in by_search] == ["Front bumper"]

    by_price = client.get("/api/v1/products", params={"min_price": 500}).json()
    assert [p["title"] for p in by_price] == ["Headlight"]


def test_pending_product_visible_to_owner_only(client, db, seller, buyer):
    product = db.add("products", {"title": "Pending", "price": 10, "status": "pending", "seller_id": seller["id"]})

    assert client.get(f"/api/v1/products/{product['id']}").status_code == 404
    assert client.get(f"/api/v1/products/{product['id']}", headers=auth("buyer-token")).status_code == 404
    assert client.get(f"/api/v1/products/{product['id']}", headers=auth("seller-token")).status_code == 200


def test_seller_product_starts_pending_and_admins_are_notified(client, db, admin, seller, telegram_calls):
    response = client.post("/api/v1/products", headers=auth("seller-token"), json={
        "title": "Radiator",
        "price": 300,
        "brand": "Honda",
        "model": "Accord",
        "status": "active",
        "image_urls": ["https://res.cloudinary.com/demo/image/upload/a.jpg", "https://res.cloudinary.com/demo/image/upload/b.jpg"],
    })

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["optid_created"] == "MDY"
    assert body["cloudinary_url"] == "https://res.cloudinary.com/demo/image/upload/a.jpg"
    assert body["preview_image_url"].startswith("https://res.cloudinary.com/demo/image/upload/c_limit,w_400")

    images = db.rows("product_images", product_id=body["id"])
    assert [img["is_primary"] for img in images] == [True, False]

    assert len(telegram_calls) == 1
    method, payload = telegram_calls[0]
    assert method == "sendMessage"
    assert payload["chat_id"] == admin["telegram_id"]
    assert "Radiator" in payload["text"]


def test_admin_publishes_product_to_group(client, db, admin, seller, telegram_calls):
    response = client.post("/api/v1/products", headers=auth("admin-token"), json={
        "title": "Grille",
        "price": 80,
        "status": "active",
        "seller_id": seller["id"],
        "image_urls": ["https://res.cloudinary.com/demo/image/upload/g.jpg"],
    })

    assert response.status_code == 201
    product_id = response.json()["id"]
    assert response.json()["seller_id"] == seller["id"]
    method, payload = telegram_calls[0]
    assert method == "sendMediaGroup"
    assert payload["chat_id"] == "-1001234567890"
    assert payload["media"][0]["caption"].startswith("LOT(лот) #00")
    stored = db.rows("products", id=product_id)[0]
    assert stored["telegram_notification_status"] == "sent"
    assert stored["last_notification_sent_at"]
    log = db.rows("telegram_notifications_log", related_entity_id=product_id)
    assert log and log[0]["status"] == "sent"


def test_buyer_cannot_create_products(client, buyer):
    response = client.post("/api/v1/products", headers=auth("buyer-token"), json={"title": "X", "price": 1})
    assert response.status_code == 403


def test_moderation_activate_publishes_without_images(client, db, admin, seller, telegram_calls):
    product = db.add("products", {"title": "Pending", "price": 10, "status": "pending", "seller_id": seller["id"]})

    response = client.put(f"/api/v1/products/{product['id']}/status", headers=auth("admin-token"), json={"status": "active"})

    assert response.status_code == 200
    assert response.json()["status"] == "active"
    assert [call[0] for call in telegram_calls] == ["sendMessage"]
    assert telegram_calls[0][1]["chat_id"] == "-1001234567890"


def test_mark_sold_notifies_seller_from_latest_order(client, db, admin, seller, buyer, active_product, telegram_calls):
    db.add("orders", {
        "title": "Front bumper", "price": 150, "status": "created", "order_number": 7,
        "product_id": active_product["id"], "buyer_id": buyer["id"], "seller_id": seller["id"], "buyer_opt_id": "PETR",
    })

    response = client.put(f"/api/v1/products/{active_product['id']}/status", headers=auth("admin-token"), json={"status": "sold"})

    assert response.status_code == 200
    assert len(telegram_calls) == 1
    method, payload = telegram_calls[0]
    assert payload["chat_id"] == seller["telegram_id"]
    assert "Your product sold!" in payload["text"]
    assert "/order/" in payload["text"]


def test_seller_cannot_moderate(client, seller, active_product):
    response = client.put(f"/api/v1/products/{active_product['id']}/status", headers=auth("seller-token"), json={"status": "sold"})
    assert response.status_code == 403


def test_sold_product_cannot_be_edited_by_seller(client, db, seller, active_product):
    db.rows("products", id=active_product["id"])[0]["status"] = "sold"
    response = client.put(f"/api/v1/products/{active_product['id']}", headers=auth("seller-token"), json={"price": 99})
    assert response.status_code == 400


def test_seller_cannot_edit_foreign_product(client, db, active_product):
    make_profile(db, "seller", "other-seller")
    response = client.put(f"/api/v1/products/{active_product['id']}", headers=auth("other-seller"), json={"price": 99})
    assert response.status_code == 403


def test_repost_within_cooldown_is_rejected(client, db, seller, active_product, telegram_calls):
    db.rows("products", id=active_product["id"])[0]["last_notification_sent_at"] = \
        (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat()

    response = client.post(f"/api/v1/products/{active_product['id']}/repost", headers=auth("seller-token"))

    assert response.status_code == 429
    detail = response.json()["detail"]
    assert detail["hours_remaining"] == 70
    assert telegram_calls == []


def test_repost_after_cooldown(client, db, seller, active_product, telegram_calls):
    db.rows("products", id=active_product["id"])[0]["last_notification_sent_at"] = \
        (datetime.now(timezone.utc) - timedelta(hours=80)).isoformat()

    response = client.post(f"/api/v1/products/{active_product['id']}/repost", headers=auth("seller-token"))

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert len(telegram_calls) == 1


def test_admin_repost_ignores_cooldown(client, db, admin, active_product, telegram_calls):
    db.rows("products", id=active_product["id"])[0]["last_notification_sent_at"] = datetime.now(timezone.utc).isoformat()
    response = client.post(f"/api/v1/products/{active_product['id']}/repost", headers=auth("admin-token"))
    assert response.status_code == 200


def test_primary_image_management(client, db, seller, active_product):
    base = f"/api/v1/products/{active_product['id']}/images"
    first = client.post(base, headers=auth("seller-token"), json={"url": "https://res.cloudinary.com/demo/image/upload/1.jpg"}).json()
    second = client.post(base, headers=auth("seller-token"), json={"url": "https://res.cloudinary.com/demo/image/upload/2.jpg"}).json()
    assert first["is_primary"] is True
    assert second["is_primary"] is False

    mirror = client.put(f"{base}/{second['id']}/primary", headers=auth("seller-token")).json()
    assert mirror["cloudinary_url"].endswith("2.jpg")
    primaries = [img["id"] for img in db.rows("product_images", product_id=active_product["id"]) if img["is_primary"]]
    assert primaries == [second["id"]]

    assert client.delete(f"{base}/{second['id']}", headers=auth("seller-token")).status_code == 204
    remaining = db.rows("product_images", product_id=active_product["id"])
    assert [(img["id"], img["is_primary"]) for img in remaining] == [(first["id"], True)]
    assert db.rows("products", id=active_product["id"])[0]["cloudinary_url"].endswith("1.jpg")


def test_record_view(client, active_product, db):
    assert client.post(f"/api/v1/products/{active_product['id']}/view").status_code == 204
    assert db.rows("products", id=active_product["id"])[0]["view_count"] == 1


def test_status_change_publishes_product_event(client, db, admin, active_product, pusher_calls):
    client.put(f"/api/v1/products/{active_product['id']}/status", headers=auth("admin-token"), json={"status": "archived"})

    assert pusher_calls[0]["name"] == "product-updated"
    assert pusher_calls[0]["channels"] == [f"product-{active_product['id']}"]

    pusher_calls.clear()
    client.put(f"/api/v1/products/{active_product['id']}/status", headers=auth("admin-token"), json={"status": "archived"})
    assert pusher_calls == []


def test_deleting_image_removes_cdn_asset(client, db, seller, active_product):
    deleted = []

    class Storage:
        def delete(self, public_id, resource_type="image"):
            deleted.append(public_id)
            return True

    app.dependency_overrides[get_optional_cloudinary_storage] = lambda: Storage()
    image = db.add("product_images", {
        "product_id": active_product["id"], "url": "https://res.cloudinary.com/demo/image/upload/p/1.jpg",
        "public_id": "p/1", "is_primary": True,
    })

    response = client.delete(f"/api/v1/products/{active_product['id']}/images/{image['id']}", headers=auth("seller-token"))

    assert response.status_code == 204
    assert deleted == ["p/1"]
    assert db.rows("products", id=active_product["id"])[0]["cloudinary_url"] is None


def test_deleting_image_removes_s3_backup(client, db, seller, active_product):
    removed = []

    class Backup:
        def remove(self, public_id):
            removed.append(public_id)
            return 1

    app.dependency_overrides[get_optional_cloudinary_storage] = lambda: None
    app.dependency_overrides[get_backup_storage] = lambda: Backup()
    image = db.add("product_images", {
        "product_id": active_product["id"], "url": "https://res.cloudinary.com/demo/image/upload/p/2.jpg",
        "public_id": "p/2", "is_primary": False,
    })

    response = client.delete(f"/api/v1/products/{active_product['id']}/images/{image['id']}", headers=auth("seller-token"))

    assert response.status_code == 204
    assert removed == ["p/2"]
