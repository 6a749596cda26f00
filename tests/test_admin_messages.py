import json

import httpx
import pytest
from fastapi import HTTPException

from app.modules.telegram import messages
from app.modules.telegram.client import TelegramClient
from app.modules.telegram.service import TelegramNotifier
from tests.conftest import auth, make_profile


def make_notifier(db, fail_chats=(), sleeps=None):
    calls = []

    def handler(request):
        payload = json.loads(request.content)
        calls.append((request.url.path.rsplit("/", 1)[-1], payload))
        if payload.get("chat_id") in fail_chats:
            return httpx.Response(403, json={"ok": False, "description": "Forbidden: bot was blocked by the user"})
        return httpx.Response(200, json={"ok": True, "result": {"message_id": len(calls)}})

    client = TelegramClient(
        "123:token",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=lambda seconds: None,
    )
    return TelegramNotifier(db, client, sleep=(sleeps if sleeps is not None else []).append), calls


def test_personal_message(client, db, admin, seller, telegram_calls):
    response = client.post("/api/v1/telegram/messages/personal", headers=auth("admin-token"), json={
        "user_id": seller["id"], "message": "Please update your listing photos"
    })

    assert response.status_code == 200
    assert response.json()["telegram_message_id"] == "1"
    method, payload = telegram_calls[0]
    assert method == "sendMessage"
    assert payload["chat_id"] == 2002
    assert payload["text"] == "Please update your listing photos"
    log = db.rows("telegram_notifications_log", notification_type="admin_personal_message")[0]
    assert log["status"] == "sent"
    assert log["recipient_type"] == "personal"
    assert log["metadata"]["admin_user_id"] == admin["id"]
    event = db.rows("event_logs", action_type="admin_telegram_message")[0]
    assert event["entity_id"] == seller["id"]
    assert event["user_id"] == admin["id"]


def test_personal_message_requires_admin(client, seller, buyer):
    response = client.post("/api/v1/telegram/messages/personal", headers=auth("seller-token"), json={
        "user_id": buyer["id"], "message": "hi"
    })
    assert response.status_code == 403


def test_personal_message_to_user_without_telegram(client, db, admin, telegram_calls):
    target = make_profile(db, "buyer")

    response = client.post("/api/v1/telegram/messages/personal", headers=auth("admin-token"), json={
        "user_id": target["id"], "message": "hi"
    })

    assert response.status_code == 400
    assert response.json()["detail"] == "User does not have Telegram ID"
    assert telegram_calls == []


def test_personal_message_to_unknown_user(client, admin):
    response = client.post("/api/v1/telegram/messages/personal", headers=auth("admin-token"), json={
        "user_id": "missing", "message": "hi"
    })
    assert response.status_code == 404


def test_personal_message_images_are_sent_in_albums(db, admin, seller):
    sleeps = []
    notifier, calls = make_notifier(db, sleeps=sleeps)
    images = [f"https://cdn/{i}.jpg" for i in range(12)]

    notifier.send_personal_message(seller, "New arrivals", images, admin)

    assert [method for method, _ in calls] == ["sendMediaGroup", "sendMediaGroup"]
    first, second = calls[0][1]["media"], calls[1][1]["media"]
    assert len(first) == 10 and len(second) == 2
    assert first[0]["caption"] == "New arrivals"
    assert all("caption" not in item for item in first[1:] + second)
    assert sleeps == [2]


def test_personal_message_delivery_failure(db, admin, seller):
    notifier, _ = make_notifier(db, fail_chats={2002})

    with pytest.raises(HTTPException) as exc:
        notifier.send_personal_message(seller, "hi", [], admin)

    assert exc.value.status_code == 502
    log = db.rows("telegram_notifications_log", notification_type="admin_personal_message")[0]
    assert log["status"] == "failed"
    assert "blocked" in log["error_message"]


def test_bulk_message_to_group(client, db, admin, seller, telegram_calls):
    make_profile(db, "seller", opt_id="NOTG")

    response = client.post("/api/v1/telegram/messages/bulk", headers=auth("admin-token"), json={
        "recipients": "sellers", "message": "Platform maintenance tonight"
    })

    assert response.status_code == 200
    assert response.json() == {"total": 2, "sent": 1, "failed": 0, "errors": []}
    assert [payload["chat_id"] for _, payload in telegram_calls] == [2002]
    events = db.rows("event_logs", action_type="bulk_message_send")
    assert [e["entity_id"] for e in events] == [seller["id"]]
    assert events[0]["details"]["status"] == "success"


def test_bulk_message_rejects_unknown_group(client, admin):
    response = client.post("/api/v1/telegram/messages/bulk", headers=auth("admin-token"), json={
        "recipients": "opt_users", "message": "hi"
    })
    assert response.status_code == 422


def test_bulk_message_requires_admin(client, buyer):
    response = client.post("/api/v1/telegram/messages/bulk", headers=auth("buyer-token"), json={
        "recipients": "all_users", "message": "hi"
    })
    assert response.status_code == 403


def test_bulk_message_collects_failures(db, admin, seller, buyer):
    notifier, calls = make_notifier(db, fail_chats={3003})

    summary = notifier.send_bulk_message([seller["id"], buyer["id"]], "Hello", [], admin)

    assert summary["total"] == 2
    assert summary["sent"] == 1
    assert summary["failed"] == 1
    assert summary["errors"] == [{
        "user_id": buyer["id"], "user_name": buyer["full_name"], "error": "Forbidden: bot was blocked by the user"
    }]


def test_bulk_message_batches_and_image_cap(db, admin):
    sleeps = []
    notifier, calls = make_notifier(db, sleeps=sleeps)
    users = [make_profile(db, "buyer", telegram_id=5000 + i) for i in range(12)]
    images = [f"https://cdn/{i}.jpg" for i in range(15)]

    summary = notifier.send_bulk_message([u["id"] for u in users], "Sale", images, admin)

    assert summary["sent"] == 12
    assert sleeps == [1]
    assert all(method == "sendMediaGroup" and len(payload["media"]) == 10 for method, payload in calls)


def test_registration_notifies_admins(client, db, admin, telegram_calls):
    response = client.post("/api/v1/auth/register", json={
        "email": "ivan@example.com", "password": "secret-pass", "full_name": "Ivan", "user_type": "seller"
    })

    assert response.status_code == 201
    user_id = response.json()["user_id"]
    method, payload = telegram_calls[0]
    assert method == "sendMessage"
    assert payload["chat_id"] == 1001
    assert payload["disable_web_page_preview"] is True
    assert payload["text"].startswith("🏪 Новый пользователь на рассмотрении")
    assert "📧 Email: ivan@example.com" in payload["text"]
    assert payload["text"].endswith(f"ID: {user_id}")
    assert db.rows("profiles", id=user_id)[0]["admin_new_user_notified_at"]


def test_new_user_is_announced_once(db, admin):
    notifier, calls = make_notifier(db)
    user = make_profile(db, "buyer", verification_status="pending")

    assert notifier.notify_admins_new_user({"id": user["id"]}) == 1
    assert notifier.notify_admins_new_user({"id": user["id"]}) == 0
    assert len(calls) == 1
    log = db.rows("telegram_notifications_log", notification_type="new_user_pending")[0]
    assert log["related_entity_id"] == user["id"]


def test_new_user_message():
    text = messages.build_admin_new_user_message({
        "id": "u1", "full_name": "Petr", "email": "petr@example.com", "user_type": "buyer",
        "phone": "+971500000000", "opt_id": "PETR", "telegram": "petr", "created_at": "2024-03-05T14:30:00+00:00",
    }, "https://partsbay.ae")

    assert text.split("\n") == [
        "🛒 Новый пользователь на рассмотрении",
        "",
        "👤 Имя: Petr",
        "📧 Email: petr@example.com",
        "👥 Тип: Покупатель",
        "📱 Телефон: +971500000000",
        "🆔 OPT ID: PETR",
        "📱 Telegram: @petr",
        "📅 Дата регистрации: 05.03.2024, 14:30",
        "",
        "🔗 Проверить пользователя: https://partsbay.ae/admin/users",
        "ID: u1",
    ]
