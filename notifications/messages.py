"""Customer-facing texts for order notifications, shared by every channel."""
from dataclasses import dataclass

from django.conf import settings
from django.utils import timezone

from orders.models import Order
from orders.services import estimate_ready_at


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    error: str | None = None


STATUS_TEXT = {
    Order.Status.PENDING: "Ваше замовлення очікує на підтвердження",
    Order.Status.CONFIRMED: "Ваше замовлення підтверджено і передано в обробку",
    Order.Status.PREPARING: "Ваше замовлення готується",
    Order.Status.READY: "Ваше замовлення готове до видачі!",
    Order.Status.OUT_FOR_DELIVERY: "Ваше замовлення в дорозі",
    Order.Status.DELIVERED: "Ваше замовлення доставлено. Дякуємо за покупку!",
    Order.Status.COMPLETED: "Ваше замовлення виконано. Дякуємо за покупку!",
    Order.Status.CANCELLED: "Ваше замовлення скасовано",
}


def _money(value):
    return f"{value:.2f} UAH"


def confirmation_subject(order):
    return f"Підтвердження замовлення №{order.order_number} - {settings.SHOP_NAME}"


def status_subject(order):
    return f"Оновлення замовлення №{order.order_number} - {order.get_status_display()}"


def confirmation_text(order):
    customer_name = order.customer.name if order.customer else ""
    if order.fulfillment == Order.Fulfillment.DELIVERY:
        fulfillment = f"Доставка за адресою: {order.delivery_address}"
    else:
        fulfillment = f"Самовивіз з магазину: {order.branch.name}"
    ready_at = timezone.localtime(estimate_ready_at(order.fulfillment, now=order.created_at))

    lines = [
        f"Вітаємо, {customer_name}!",
        "",
        f"Ваше замовлення №{order.order_number} успішно оформлено.",
        "",
        "Товари:",
    ]
    lines.extend(
        f"- {item.product_name}: {item.quantity.normalize():f} x {_money(item.unit_price)}"
        for item in order.items.all()
    )
    lines += [
        "",
        f"Сума товарів: {_money(order.subtotal)}",
        f"Доставка: {_money(order.delivery_fee)}",
        f"Загальна сума: {_money(order.total)}",
        "",
        fulfillment,
        f"Орієнтовний час: {ready_at:%d.%m.%Y %H:%M}",
        "Оплата при отриманні.",
    ]
    if order.notes:
        lines += ["", f"Коментар: {order.notes}"]
    lines += ["", "Наш менеджер зв'яжеться з вами найближчим часом.", "", settings.SHOP_NAME]
    return "\n".join(lines)


def status_text(order):
    lines = [
        f"Оновлення замовлення №{order.order_number}",
        "",
        STATUS_TEXT.get(order.status, f"Статус замовлення змінено на: {order.get_status_display()}"),
    ]
    if order.status == Order.Status.READY and order.fulfillment == Order.Fulfillment.PICKUP:
        lines.append(f"Можете забрати замовлення з магазину: {order.branch.name}")
    lines += ["", settings.SHOP_NAME]
    return "\n".join(lines)
