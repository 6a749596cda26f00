from app.modules.telegram.order_parser import (
    ParsedTelegramOrder, extract_brand_and_model, parse_telegram_order, validate_parsed_order
)

ORDER_TEXT = """Наименование: Toyota Camry front bumper
Количество мест: 2
Стоимость: 150$
Стоимость доставки: 20$
MDY
PETR"""


def test_parse_full_order_block():
    result = parse_telegram_order(ORDER_TEXT)
    assert result.success
    assert result.errors == []
    assert result.warnings == []
    data = result.data
    assert data.title == "Toyota Camry front bumper"
    assert data.place_number == "2"
    assert data.price == "150"
    assert data.delivery_price == "20"
    assert data.seller_opt_id == "MDY"
    assert data.buyer_opt_id == "PETR"
    assert (data.brand, data.model) == ("Toyota", "Camry")


def test_missing_title_fails():
    result = parse_telegram_order("Количество мест: 1\nСтоимость: 10$\nA\nB")
    assert not result.success
    assert result.errors == ["Не найдено наименование товара"]


def test_missing_price_fails():
    result = parse_telegram_order("Наименование: Lamp\nКоличество мест: 1\nA\nB")
    assert not result.success
    assert result.errors == ["Не найдена стоимость товара"]


def test_unknown_brand_is_a_warning():
    text = "Наименование: Headlight left\nКоличество мест: 1\nСтоимость: 99.5$\r\nSELL\r\nBUY"
    result = parse_telegram_order(text)
    assert result.success
    assert result.data.price == "99.5"
    assert result.data.delivery_price is None
    assert len(result.warnings) == 2
    assert result.data.seller_opt_id == "SELL"
    assert result.data.buyer_opt_id == "BUY"


def test_extract_brand_is_case_insensitive():
    assert extract_brand_and_model("bumper for bmw X5,") == ("BMW", "X5")
    assert extract_brand_and_model("kia") == ("Kia", None)
    assert extract_brand_and_model("door handle") == (None, None)


def test_validate_rejects_non_positive_values():
    data = ParsedTelegramOrder(
        title=" ", place_number="0", price="-1", buyer_opt_id="", seller_opt_id="MDY", delivery_price="x"
    )
    errors = validate_parsed_order(data)
    assert len(errors) == 5
