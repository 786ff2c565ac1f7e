"""Best-effort delivery of order notifications.

Notifications are scheduled after the surrounding transaction commits and,
with ``NOTIFICATIONS_ASYNC`` enabled, sent from a daemon thread so the HTTP
response never waits for SMTP or Viber. Nothing is retried; failures are only
logged.
"""
import logging
import threading

from django.conf import settings
from django.db import close_old_connections, transaction

from notifications import email, viber
from notifications.messages import NotificationResult
from orders.models import Order

logger = logging.getLogger(__name__)

ORDER_CREATED = "order_created"
ORDER_STATUS_CHANGED = "order_status_changed"

CHANNELS = {
    ORDER_CREATED: (("email", email.send_order_confirmation), ("viber", viber.send_order_confirmation)),
    ORDER_STATUS_CHANGED: (("email", email.send_status_update), ("viber", viber.send_status_update)),
}


def dispatch_order_created(order):
    _schedule(ORDER_CREATED, order.id)


def dispatch_order_status_changed(order):
    _schedule(ORDER_STATUS_CHANGED, order.id)


def _schedule(event, order_id):
    transaction.on_commit(lambda: _start(event, order_id))


def _start(event, order_id):
    if not settings.NOTIFICATIONS_ASYNC:
        deliver(event, order_id)
        return
    thread = threading.Thread(target=_deliver_in_thread, args=(event, order_id), name=f"notify-{event}", daemon=True)
    thread.start()


def _deliver_in_thread(event, order_id):
    try:
        deliver(event, order_id)
    except Exception:
        logger.exception("order_notification_crashed", extra={"order_id": order_id})
    finally:
        close_old_connections()


def deliver(event, order_id):
    """Send `event` for the order on every channel; returns ``{channel: NotificationResult}``."""
    order = (
        Order.objects.select_related("customer", "branch")
        .prefetch_related("items")
        .filter(id=order_id)
        .first()
    )
    if order is None:
        logger.warning("order_notification_order_missing event=%s", event, extra={"order_id": order_id})
        return {}

    results = {}
    for channel, sender in CHANNELS[event]:
        try:
            result = sender(order)
        except Exception as exc:
            logger.exception("order_notification_failed event=%s", event, extra={"order_id": order_id, "channel": channel})
            result = NotificationResult(success=False, error=str(exc))
        if result.success:
            logger.info("order_notification_sent event=%s", event, extra={"order_id": order_id, "channel": channel})
        else:
            logger.info(
                "order_notification_not_sent event=%s reason=%s",
                event,
                result.error,
                extra={"order_id": order_id, "channel": channel},
            )
        results[channel] = result
    return results
