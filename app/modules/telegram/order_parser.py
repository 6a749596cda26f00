"""Parser for order text blocks pasted from Telegram chats.

Expected layout (labels are Russian, as posted in the order group)::

    Наименование: Toyota Camry front bumper
    Количество мест: 2
    Стоимость: 150$
    Стоимость доставки: 20$
    MDY        <- seller OPT_ID
    PETR       <- buyer OPT_ID
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

CAR_BRANDS = [
    "Toyota", "Honda", "Nissan", "Mazda", "Subaru", "Mitsubishi", "Suzuki", "Isuzu",
    "BMW", "Mercedes", "Mercedes-Benz", "Audi", "Volkswagen", "Porsche", "Opel",
    "Ford", "Chevrolet", "Cadillac", "Buick", "GMC", "Lincoln",
    "Hyundai", "Kia", "Genesis", "SsangYong",
    "Lexus", "Infiniti", "Acura",
    "Volvo", "Saab", "Peugeot", "Citroen", "Renault",
    "Fiat", "Alfa Romeo", "Lancia",
    "Skoda", "Seat",
    "Jaguar", "Land Rover", "Range Rover", "Mini",
    "Lada", "VAZ", "GAZ", "UAZ",
]
_BRANDS_BY_KEY = {brand.lower(): brand for brand in CAR_BRANDS}

_TITLE_RE = re.compile(r"Наименование:\s*(.+?)(?=\n|$)", re.IGNORECASE)
_PLACES_RE = re.compile(r"Количество мест:\s*(\d+)", re.IGNORECASE)
_PRICE_RE = re.compile(r"Стоимость:\s*(\d+(?:\.\d+)?)\$", re.IGNORECASE)
_DELIVERY_RE = re.compile(r"Стоимость доставки:\s*(\d+(?:\.\d+)?)\$", re.IGNORECASE)


@dataclass
class ParsedTelegramOrder:
    title: str
    place_number: str
    price: str
    buyer_opt_id: str
    seller_opt_id: str
    delivery_price: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None


@dataclass
class ParseResult:
    success: bool
    data: Optional[ParsedTelegramOrder] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def extract_brand_and_model(title: str) -> Tuple[Optional[str], Optional[str]]:
    """First known single-word brand in the title; the following word is the model."""
    words = title.split()
    for index, word in enumerate(words):
        brand = _BRANDS_BY_KEY.get(word.strip().lower())
        if brand:
            model = None
            if index + 1 < len(words):
                model = re.sub(r"[^\w\-]", "", words[index + 1]) or None
            return brand, model
    return None, None


def parse_telegram_order(text: str) -> ParseResult:
    errors: List[str] = []
    warnings: List[str] = []
    clean = text.strip().replace("\r\n", "\n").replace("\r", "\n")

    title_match = _TITLE_RE.search(clean)
    if not title_match:
        return ParseResult(False, errors=["Не найдено наименование товара"])
    title = title_match.group(1).strip()

    places_match = _PLACES_RE.search(clean)
    if not places_match:
        return ParseResult(False, errors=["Не найдено количество мест"])

    price_match = _PRICE_RE.search(clean)
    if not price_match:
        return ParseResult(False, errors=["Не найдена стоимость товара"])

    delivery_match = _DELIVERY_RE.search(clean)

    lines = [line.strip() for line in clean.split("\n") if line.strip()]
    if len(lines) < 2:
        return ParseResult(False, errors=["Не найдены OPT_ID покупателя и продавца"])
    # Second-to-last line is the seller, last line is the buyer
    seller_opt_id, buyer_opt_id = lines[-2], lines[-1]

    brand, model = extract_brand_and_model(title)
    if not brand:
        warnings.append("Не удалось автоматически определить бренд автомобиля")
    if not model:
        warnings.append("Не удалось автоматически определить модель автомобиля")

    data = ParsedTelegramOrder(
        title=title,
        place_number=places_match.group(1),
        price=price_match.group(1),
        delivery_price=delivery_match.group(1) if delivery_match else None,
        buyer_opt_id=buyer_opt_id,
        seller_opt_id=seller_opt_id,
        brand=brand,
        model=model,
    )
    return ParseResult(True, data=data, errors=errors, warnings=warnings)


def validate_parsed_order(data: ParsedTelegramOrder) -> List[str]:
    errors = []
    if not data.title.strip():
        errors.append("Наименование товара не может быть пустым")
    try:
        if int(data.place_number) <= 0:
            raise ValueError
    except ValueError:
        errors.append("Количество мест должно быть положительным числом")
    try:
        if float(data.price) <= 0:
            raise ValueError
    except ValueError:
        errors.append("Стоимость должна быть положительным числом")
    if data.delivery_price:
        try:
            if float(data.delivery_price) < 0:
                raise ValueError
        except ValueError:
            errors.append("Стоимость доставки должна быть неотрицательным числом")
    if not data.buyer_opt_id.strip():
        errors.append("OPT_ID покупателя не может быть пустым")
    if not data.seller_opt_id.strip():
        errors.append("OPT_ID продавца не может быть пустым")
    return errors
