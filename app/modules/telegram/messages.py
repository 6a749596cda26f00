"""Telegram message texts for product, order, offer and account notifications."""
import html
from datetime import datetime
from typing import Any, Dict, Optional

PRODUCT_STATUS_LABELS = {
    "pending": "Ожидает проверки",
    "active": "Опубликован",
    "sold": "Продан",
    "archived": "Архив",
}

ORDER_STATUS_LABELS = {
    "created": "Создан",
    "seller_confirmed": "Подтвержден продавцом",
    "admin_confirmed": "Подтвержден администратором",
    "processed": "Зарегистрирован",
    "shipped": "Отправлен",
    "delivered": "Доставлен",
    "cancelled": "Отменен",
}

DELIVERY_METHOD_LABELS = {
    "cargo_rf": "Доставка Cargo РФ",
    "self_pickup": "Самовывоз",
    "cargo_kz": "Доставка Cargo KZ",
}

# Sellers whose lots are ordered through the posting manager instead of directly
FORWARDING_OPT_IDS = {"BSHR", "JAKI", "KAZI", "MDY", "MIR", "MMD", "YKB"}
FORWARDING_CONTACT = "Для заказа пересылайте лот @Nastya_PostingLots_OptCargo"

CDN_PREVIEW_TRANSFORMATION = "q_auto:good,f_auto,c_limit,w_800,h_800"

RUB_THOUSANDS_SEPARATOR = "\u00a0"


def _e(value: Any) -> str:
    return html.escape(str(value)) if value is not None else ""


def format_lot_number(lot_number) -> str:
    if lot_number is None:
        return "б/н"
    try:
        return f"00{int(lot_number)}"
    except (TypeError, ValueError):
        return "б/н"


def format_order_number(order_number) -> str:
    return str(order_number).zfill(5)


def format_timestamp(value, english: bool) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if english:
        return value.strftime("%m/%d/%Y, %I:%M %p")
    return value.strftime("%d.%m.%Y, %H:%M")


def format_rub(amount) -> str:
    """Rouble amount grouped with non-breaking spaces, as ru-RU locale formatting does."""
    return f"{amount:,.0f}".replace(",", RUB_THOUSANDS_SEPARATOR) + "₽"


def product_heading(title: str, brand: Optional[str], model: Optional[str]) -> str:
    """'Title (Brand Model)' with the parenthesis dropped when there is no brand/model."""
    extra = " ".join(part for part in (brand, model) if part)
    return f"{_e(title)} ({_e(extra)})" if extra else _e(title)


def optimize_cloudinary_url(url: Optional[str], transformation: str = CDN_PREVIEW_TRANSFORMATION) -> Optional[str]:
    """Insert a transformation after /upload/ for Cloudinary URLs; other URLs are returned unchanged."""
    if not url or "cloudinary.com" not in url or "/upload/" not in url:
        return url
    return url.replace("/upload/", f"/upload/{transformation}/", 1)


def build_product_message(product: Dict[str, Any]) -> str:
    status = product.get("status")
    is_pending = status == "pending"
    lot = format_lot_number(product.get("lot_number"))

    if product.get("optid_created") in FORWARDING_OPT_IDS:
        contact = FORWARDING_CONTACT
    elif product.get("telegram_url"):
        contact = f"@{_e(product['telegram_url'])}"
    else:
        contact = "Не указан"

    status_label = PRODUCT_STATUS_LABELS.get(status, status)
    if is_pending:
        status_label = f"❗️❗️❗️ {status_label} ❗️❗️❗️"
    banner = "🆕 НОВЫЙ ТОВАР! " if is_pending else ""
    model_part = f" {_e(product['model'])}" if product.get("model") else ""

    return (
        f"{banner}LOT(лот) #{lot}\n"
        f"📦 {_e(product.get('title'))} {_e(product.get('brand') or '')}{model_part}\n"
        f"💰 Цена: {product.get('price')} $\n"
        f"🚚 Цена доставки: {product.get('delivery_price') or 0} $\n"
        f"🆔 OPT_ID продавца: {_e(product.get('optid_created') or 'Не указан')}\n"
        f"👤 Telegram продавца: {contact}\n\n"
        f"📊 Статус: {status_label}"
    )


def build_admin_new_product_message(product: Dict[str, Any], site_url: str) -> str:
    return "\n".join([
        "🔥 У нас новый товар на проверке! Срочно проверьте его и опубликуйте",
        "",
        f"📦 Товар: {_e(product.get('title'))}",
        f"💰 Цена: {product.get('price')} $",
        f"🚚 Доставка: {product.get('delivery_price') or 0} $",
        f"👤 Продавец: {_e(product.get('seller_name'))}",
        f"🏷️ Бренд: {_e(product.get('brand'))}",
        f"🚗 Модель: {_e(product.get('model') or '')}",
        f"📍 Место: {product.get('place_number') or 1}",
        f"📋 Описание: {_e(product.get('description') or 'Не указано')}",
        "",
        f"🔗 Перейти к модерации: {site_url}/admin/product-moderation",
    ])


def build_order_message(order: Dict[str, Any]) -> str:
    status = order.get("status")
    delivery = order.get("delivery_method")
    return "\n".join([
        f"Номер заказа: {format_order_number(order.get('order_number'))}",
        f"Статус: {ORDER_STATUS_LABELS.get(status, status)}",
        _e(order.get("telegram_url_order") or ""),
        "",
        "🟰🟰🟰🟰🟰🟰",
        f"Наименование: {_e(order.get('title'))}",
        f"Бренд: {_e(order.get('brand') or '')}",
        f"Модель: {_e(order.get('model') or '')}",
        f"Количество мест для отправки: {order.get('place_number') or 1}",
        f"Доставка: {DELIVERY_METHOD_LABELS.get(delivery, delivery)}",
        "",
        f"Дополнительная информация: {_e(order.get('text_order') or 'Не указана')}",
        "",
        "🟰🟰🟰🟰🟰🟰",
        f"Цена: {order.get('price')} $",
        f"Цена доставки: {order.get('delivery_price_confirm') or 0} $",
        "",
        "===",
        f"Продавец: {_e(order.get('seller_opt_id') or '')}",
        f"Покупатель: {_e(order.get('buyer_opt_id') or '')}",
    ])


def build_order_extra_images_caption(order_number) -> str:
    return f"К заказу номер {format_order_number(order_number)}"


def build_offer_message(
    product: Dict[str, Any],
    buyer: Dict[str, Any],
    offered_price: float,
    original_price: float,
    message: Optional[str],
    expires_at,
    product_url: str,
    english: bool,
) -> str:
    heading = product_heading(product.get("title"), product.get("brand"), product.get("model"))
    buyer_line = f"{_e(buyer.get('full_name'))} (ID: {_e(buyer.get('opt_id'))})"
    valid_until = format_timestamp(expires_at, english)
    if english:
        lines = [
            "📦 <b>New Price Offer!</b>",
            "",
            f"🏷️ <b>Product:</b> {heading}",
            "",
            f"💰 <b>Original Price:</b> ${original_price}",
            f"🎯 <b>Offered Price:</b> ${offered_price}",
            "",
            f"👤 <b>From Buyer:</b> {buyer_line}",
            "",
        ]
        if message:
            lines.append(f"💬 <b>Message:</b> {_e(message)}")
        lines += [
            f"⏰ <b>Valid Until:</b> {valid_until}",
            "",
            f"🔗 <b>Link:</b> {product_url}",
            "",
            "You can respond to this offer in your account dashboard.",
        ]
    else:
        lines = [
            "📦 <b>Новое предложение цены!</b>",
            "",
            f"🏷️ <b>Товар:</b> {heading}",
            "",
            f"💰 <b>Первоначальная цена:</b> {format_rub(original_price)}",
            f"🎯 <b>Предложенная цена:</b> {format_rub(offered_price)}",
            "",
            f"👤 <b>От покупателя:</b> {buyer_line}",
            "",
        ]
        if message:
            lines.append(f"💬 <b>Сообщение:</b> {_e(message)}")
        lines += [
            f"⏰ <b>Действительно до:</b> {valid_until}",
            "",
            f"🔗 <b>Ссылка:</b> {product_url}",
            "",
            "Ответить на предложение можно в личном кабинете на сайте.",
        ]
    return "\n".join(lines)


def build_product_sold_message(order: Dict[str, Any], order_url: str, sold_at, english: bool) -> str:
    heading = product_heading(order.get("title"), order.get("brand"), order.get("model"))
    sale_date = format_timestamp(sold_at, english)
    if english:
        return "\n".join([
            "🎉 <b>Your product sold!</b>",
            "",
            f"🏷️ <b>Product:</b> {heading}",
            f"💰 <b>Sale Price:</b> ${order.get('price')}",
            f"📋 <b>Order #:</b> {order.get('order_number')}",
            f"👤 <b>Buyer ID:</b> {_e(order.get('buyer_opt_id') or '')}",
            f"📅 <b>Sale Date:</b> {sale_date}",
            "",
            f"🔗 <b>Order Link:</b> {order_url}",
            "",
            "Congratulations on your sale! You can view order details in your dashboard.",
        ])
    return "\n".join([
        "🎉 <b>Ваш товар продан!</b>",
        "",
        f"🏷️ <b>Товар:</b> {heading}",
        f"💰 <b>Цена продажи:</b> {format_rub(order.get('price') or 0)}",
        f"📋 <b>Заказ №:</b> {order.get('order_number')}",
        f"👤 <b>ID покупателя:</b> {_e(order.get('buyer_opt_id') or '')}",
        f"📅 <b>Дата продажи:</b> {sale_date}",
        "",
        f"🔗 <b>Ссылка на заказ:</b> {order_url}",
        "",
        "Поздравляем с продажей! Детали заказа можно посмотреть в личном кабинете.",
    ])


def build_verification_message(status: str, is_seller: bool, site_url: str) -> str:
    if status == "verified":
        return (f"Your account has been approved. You can now access the platform: {site_url}" if is_seller
                else f"Ваш аккаунт одобрен. Теперь вы можете войти на сайт: {site_url}")
    if status == "pending":
        return ("Your account is under review. We will notify you once it is approved." if is_seller
                else "Ваш аккаунт на модерации. Мы уведомим вас после проверки.")
    if status == "blocked":
        return ("Your account has been blocked. If you think this is a mistake, please contact support." if is_seller
                else "Ваш аккаунт заблокирован. Если это ошибка, свяжитесь с поддержкой.")
    return (f"Your verification status has changed to: {status}" if is_seller
            else f"Ваш статус верификации изменен на: {status}")


USER_TYPE_LABELS = {
    "buyer": ("🛒", "Покупатель"),
    "seller": ("🏪", "Продавец"),
}


def build_admin_new_user_message(user: Dict[str, Any], site_url: str) -> str:
    icon, label = USER_TYPE_LABELS.get(user.get("user_type"), USER_TYPE_LABELS["buyer"])
    lines = [
        f"{icon} Новый пользователь на рассмотрении",
        "",
        f"👤 Имя: {_e(user.get('full_name') or 'Неизвестно')}",
        f"📧 Email: {_e(user.get('email'))}",
        f"👥 Тип: {label}",
    ]
    if user.get("phone"):
        lines.append(f"📱 Телефон: {_e(user['phone'])}")
    if user.get("opt_id"):
        lines.append(f"🆔 OPT ID: {_e(user['opt_id'])}")
    if user.get("telegram"):
        lines.append(f"📱 Telegram: @{_e(user['telegram'])}")
    registered = user.get("created_at") or datetime.now()
    lines += [
        f"📅 Дата регистрации: {format_timestamp(registered, english=False)}",
        "",
        f"🔗 Проверить пользователя: {site_url}/admin/users",
        f"ID: {user.get('id')}",
    ]
    return "\n".join(lines)


def build_upload_session_started(order_number) -> str:
    return (
        f"📦 Заказ #{format_order_number(order_number)} выбран.\n\n"
        "📷 Отправьте фото, и они будут добавлены к заказу.\n\n"
        "❌ Видео и документы не принимаются."
    )


def build_upload_session_current(order_number) -> str:
    return f"📦 Текущий заказ: #{format_order_number(order_number)}. Отправьте фото, чтобы добавить его к заказу."


def build_photo_attached(order_number, photo_count: int, max_photos: int) -> str:
    return f"✅ Фото успешно добавлено к заказу #{format_order_number(order_number)} ({photo_count}/{max_photos})"


def build_photo_limit_reached(order_number, max_photos: int) -> str:
    return f"❌ К заказу #{format_order_number(order_number)} уже прикреплено {max_photos} фото, больше добавить нельзя."


UPLOAD_ADMINS_ONLY = "⛔ Доступ только для администраторов."
UPLOAD_NO_SESSION = "❓ Заказ не выбран. Откройте ссылку загрузки фото из админки."
UPLOAD_PHOTOS_ONLY = "❌ Принимаются только фото."
UPLOAD_ORDER_NOT_FOUND = "❌ Заказ не найден."
UPLOAD_FAILED = "❌ Произошла ошибка при обработке фото."
