import logging

from django.conf import settings
from django.core.mail import send_mail

from notifications.messages import NotificationResult, confirmation_subject, confirmation_text, status_subject, status_text

logger = logging.getLogger(__name__)


def _send(order, subject, body):
    email = order.customer.email if order.customer else None
    if not email:
        return NotificationResult(success=False, error="No email address")
    try:
        send_mail(
            subject=subject,
            message=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[email],
            fail_silently=False,
        )
    except Exception as exc:
        logger.exception("order_email_send_failed", extra={"order_id": order.id, "channel": "email"})
        return NotificationResult(success=False, error=str(exc))
    return NotificationResult(success=True)


def send_order_confirmation(order):
    return _send(order, confirmation_subject(order), confirmation_text(order))


def send_status_update(order):
    return _send(order, status_subject(order), status_text(order))
