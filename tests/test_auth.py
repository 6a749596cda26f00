import hashlib
import hmac
import time

import httpx

import pytest

from app.config import settings
from app.main import app
from app.modules.auth import service as auth_service
from app.modules.auth.service import AuthService, telegram_data_check_string, verify_telegram_auth
from app.modules.mail.sender import EmailSender, get_email_sender
from tests.conftest import auth, make_profile

BOT_TOKEN = "123456:telegram-test-token"


def signed_payload(**fields):
    data = {"id": 42, "first_name": "Ivan", "username": "ivan_parts", "auth_date": int(time.time())}
    data.update(fields)
    check_string = "\n".join(f"{k}={data[k]}" for k in sorted(data))
    secret = hashlib.sha256(BOT_TOKEN.encode()).digest()
    data["hash"] = hmac.new(secret, check_string.encode(), hashlib.sha256).hexdigest()
    return data


@pytest.fixture
def bot_token(monkeypatch):
    monkeypatch.setattr(settings, "telegram_bot_token", BOT_TOKEN)
    return BOT_TOKEN


def test_data_check_string_skips_hash_and_empty_fields():
    fields = {"id": 1, "hash": "x", "last_name": None, "first_name": "A", "username": ""}
    assert telegram_data_check_string(fields) == "first_name=A\nid=1"


def test_verify_telegram_auth():
    payload = signed_payload()
    assert verify_telegram_auth(payload, BOT_TOKEN)
    assert not verify_telegram_auth({**payload, "first_name": "Mallory"}, BOT_TOKEN)
    assert not verify_telegram_auth(payload, "other:token")
    assert not verify_telegram_auth({k: v for k, v in payload.items() if k != "hash"}, BOT_TOKEN)


def test_telegram_login_creates_new_user(client, db, bot_token):
    response = client.post("/api/v1/auth/telegram", json={"auth_data": signed_payload()})

    assert response.status_code == 200
    body = response.json()
    assert body["is_new_user"] is True
    assert body["email"] == "telegram_42@temp.telegram"
    created = db.auth.admin.created[0]
    assert created["email_confirm"] is True
    assert created["password"] == body["password"]
    assert created["user_metadata"]["auth_method"] == "telegram"
    assert created["user_metadata"]["telegram_username"] == "ivan_parts"


def test_telegram_login_existing_profile_gets_new_password(client, db, bot_token):
    profile = make_profile(db, "buyer", telegram_id=42, email="ivan@example.com")

    response = client.post("/api/v1/auth/telegram", json={
        "auth_data": signed_payload(last_name="Petrov", photo_url="https://t.me/i/ivan.jpg")
    })

    assert response.status_code == 200
    body = response.json()
    assert body["is_new_user"] is False
    assert body["email"] == "ivan@example.com"
    assert db.auth.admin.password_updates == [(profile["id"], {"password": body["password"]})]
    stored = db.rows("profiles", id=profile["id"])[0]
    assert stored["full_name"] == "Ivan Petrov"
    assert stored["avatar_url"] == "https://t.me/i/ivan.jpg"
    assert stored["telegram"] == "ivan_parts"


def test_telegram_login_rejects_bad_hash(client, bot_token):
    payload = signed_payload()
    payload["hash"] = "0" * 64
    response = client.post("/api/v1/auth/telegram", json={"auth_data": payload})
    assert response.status_code == 400


def test_telegram_login_rejects_stale_auth_date(client, bot_token):
    payload = signed_payload(auth_date=int(time.time()) - settings.telegram_auth_max_age_seconds - 60)
    response = client.post("/api/v1/auth/telegram", json={"auth_data": payload})
    assert response.status_code == 400
    assert response.json()["detail"] == "Authentication data is too old"


def test_telegram_login_without_bot_token(client, monkeypatch):
    monkeypatch.setattr(settings, "telegram_bot_token", None)
    response = client.post("/api/v1/auth/telegram", json={"auth_data": signed_payload()})
    assert response.status_code == 500


def test_me_returns_profile_and_permissions(client, seller):
    response = client.get("/api/v1/auth/me", headers=auth("seller-token"))
    assert response.status_code == 200
    body = response.json()
    assert body["opt_id"] == "MDY"
    assert "products:create" in body["permissions"]
    assert "profiles:verify" not in body["permissions"]


def test_invalid_token_is_unauthorized(client, seller):
    response = client.get("/api/v1/orders", headers=auth("nope"))
    assert response.status_code == 401


def test_blocked_user_is_forbidden(client, db):
    make_profile(db, "buyer", "blocked-token", verification_status="blocked")
    response = client.get("/api/v1/orders", headers=auth("blocked-token"))
    assert response.status_code == 403
    assert response.json()["detail"] == "Account is blocked"


def test_expired_tokens_do_not_block_the_cache(db, seller, monkeypatch):
    auth_service.clear_auth_cache()
    monkeypatch.setattr(auth_service, "_AUTH_CACHE_MAX_SIZE", 3)
    for index in range(3):
        auth_service._AUTH_USER_CACHE[f"stale-{index}"] = ({"id": "gone"}, 0.0)

    AuthService(db).get_current_user("seller-token")

    assert len(auth_service._AUTH_USER_CACHE) == 1
    assert not any(key.startswith("stale-") for key in auth_service._AUTH_USER_CACHE)


def use_email_provider(status, body):
    requests = []

    def handler(request):
        requests.append(request)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    sender = EmailSender("re_key", "PartsBay <noreply@partsbay.ae>",
                         http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    app.dependency_overrides[get_email_sender] = lambda: sender
    return requests


RESET_BODY = {"email": "petr@example.com", "reset_link": "https://partsbay.ae/reset?token=abc", "opt_id": "PETR"}


def test_password_reset_email_is_sent(client):
    requests = use_email_provider(200, {"id": "email-7"})

    response = client.post("/api/v1/auth/password-reset", json=RESET_BODY)

    assert response.status_code == 200
    assert response.json()["email_id"] == "email-7"
    assert "https://partsbay.ae/reset?token=abc" in requests[0].content.decode()


@pytest.mark.parametrize("provider_message,status,detail", [
    ("Invalid `to` field", 400, "Invalid email address"),
    ("Rate limit exceeded", 429, "Too many requests. Please try again later."),
    ("The partsbay.ae domain is not verified", 422, "Email domain not verified"),
    ("Internal failure", 500, "Failed to send email"),
])
def test_password_reset_provider_errors(client, provider_message, status, detail):
    use_email_provider(422, {"message": provider_message})

    response = client.post("/api/v1/auth/password-reset", json=RESET_BODY)

    assert response.status_code == status
    assert response.json()["detail"] == detail


def test_password_reset_with_unreadable_provider_response(client):
    use_email_provider(502, "<html>Bad Gateway</html>")

    response = client.post("/api/v1/auth/password-reset", json=RESET_BODY)

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to send email"


def test_email_change_notice_requires_login(client):
    use_email_provider(200, {"id": "email-8"})
    body = {"old_email": "old@example.com", "new_email": "new@example.com"}

    assert client.post("/api/v1/auth/email-change-notice", json=body).status_code in (401, 403)


def test_email_change_notice_goes_to_old_address(client, buyer):
    requests = use_email_provider(200, {"id": "email-8"})

    response = client.post("/api/v1/auth/email-change-notice", headers=auth("buyer-token"), json={
        "old_email": "old@example.com", "new_email": "new@example.com"
    })

    assert response.status_code == 200
    assert response.json()["email_id"] == "email-8"
    assert '"to":["old@example.com"]' in requests[0].content.decode().replace(" ", "")


def test_email_change_notice_rate_limited(client, buyer):
    use_email_provider(429, {"message": "Rate limit exceeded"})

    response = client.post("/api/v1/auth/email-change-notice", headers=auth("buyer-token"), json={
        "old_email": "old@example.com", "new_email": "new@example.com"
    })

    assert response.status_code == 429
