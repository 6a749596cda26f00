from datetime import datetime, timezone

from app.modules.telegram import messages


def test_lot_number_is_prefixed_with_zeros():
    assert messages.format_lot_number(1234) == "001234"
    assert messages.format_lot_number(None) == "б/н"
    assert messages.format_lot_number("abc") == "б/н"


def test_order_number_is_padded_to_five_digits():
    assert messages.format_order_number(42) == "00042"
    assert messages.format_order_number(123456) == "123456"


def test_pending_product_message_has_banner_and_status_marks():
    text = messages.build_product_message({
        "lot_number": 1001,
        "title": "Front bumper",
        "brand": "Toyota",
        "model": "Camry",
        "price": 150,
        "delivery_price": 20,
        "optid_created": "ABC",
        "telegram_url": "abc_parts",
        "status": "pending",
    })
    assert text.startswith("🆕 НОВЫЙ ТОВАР! LOT(лот) #001001")
    assert "📦 Front bumper Toyota Camry" in text
    assert "👤 Telegram продавца: @abc_parts" in text
    assert "❗️❗️❗️ Ожидает проверки ❗️❗️❗️" in text


def test_active_product_message_for_forwarding_seller():
    text = messages.build_product_message({
        "lot_number": 7,
        "title": "Mirror",
        "brand": "Nissan",
        "price": 40,
        "optid_created": "MDY",
        "telegram_url": "mdy_parts",
        "status": "active",
    })
    assert text.startswith("LOT(лот) #007")
    assert messages.FORWARDING_CONTACT in text
    assert "@mdy_parts" not in text
    assert "🚚 Цена доставки: 0 $" in text
    assert "📊 Статус: Опубликован" in text


def test_product_message_escapes_html():
    text = messages.build_product_message({"title": "<b>Lamp</b>", "price": 10, "status": "active"})
    assert "&lt;b&gt;Lamp&lt;/b&gt;" in text
    assert "Не указан" in text


def test_order_message_lists_parties_and_delivery():
    text = messages.build_order_message({
        "order_number": 12,
        "status": "created",
        "title": "Bumper",
        "brand": "Toyota",
        "model": "Camry",
        "place_number": 2,
        "delivery_method": "self_pickup",
        "price": 150,
        "delivery_price_confirm": 25,
        "seller_opt_id": "MDY",
        "buyer_opt_id": "PETR",
        "telegram_url_order": "petr",
    })
    lines = text.split("\n")
    assert lines[0] == "Номер заказа: 00012"
    assert lines[1] == "Статус: Создан"
    assert "Доставка: Самовывоз" in lines
    assert "Дополнительная информация: Не указана" in lines
    assert lines[-2:] == ["Продавец: MDY", "Покупатель: PETR"]


def test_offer_message_language():
    product = {"id": "p1", "title": "Bumper", "brand": "Toyota", "model": None}
    buyer = {"full_name": "Petr", "opt_id": "PETR"}
    expires = datetime(2024, 3, 5, 14, 30, tzinfo=timezone.utc)

    english = messages.build_offer_message(product, buyer, 120, 150, "Can pick up today", expires, "https://x/product/p1", True)
    assert "<b>New Price Offer!</b>" in english
    assert "Bumper (Toyota)" in english
    assert "$120" in english
    assert "03/05/2024, 02:30 PM" in english
    assert "Can pick up today" in english

    russian = messages.build_offer_message(product, buyer, 12000, 15000, None, expires, "https://x/product/p1", False)
    assert "Новое предложение цены" in russian
    assert "12\u00a0000₽" in russian
    assert "15\u00a0000₽" in russian
    assert "05.03.2024, 14:30" in russian
    assert "Сообщение" not in russian


def test_product_heading_without_brand_or_model():
    assert messages.product_heading("Bumper", None, None) == "Bumper"
    assert messages.product_heading("Bumper", "Kia", "Rio") == "Bumper (Kia Rio)"


def test_optimize_cloudinary_url():
    url = "https://res.cloudinary.com/demo/image/upload/v1/products/a.jpg"
    assert messages.optimize_cloudinary_url(url) == (
        "https://res.cloudinary.com/demo/image/upload/q_auto:good,f_auto,c_limit,w_800,h_800/v1/products/a.jpg"
    )
    assert messages.optimize_cloudinary_url("https://example.com/a.jpg") == "https://example.com/a.jpg"
    assert messages.optimize_cloudinary_url(None) is None


def test_verification_message_by_status():
    assert "approved" in messages.build_verification_message("verified", True, "https://partsbay.ae")
    assert "одобрен" in messages.build_verification_message("verified", False, "https://partsbay.ae")
    assert "заблокирован" in messages.build_verification_message("blocked", False, "https://partsbay.ae")
    assert messages.build_verification_message("unknown", True, "").endswith("unknown")
