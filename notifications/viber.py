import logging
import re

import requests
from django.conf import settings

from notifications.messages import NotificationResult, confirmation_text, status_text

logger = logging.getLogger(__name__)

PHONE_NOISE = re.compile(r"[\s+\-()]")


def normalize_receiver(phone):
    """Viber receiver id for a phone number: digits only, no punctuation."""
    return PHONE_NOISE.sub("", phone or "")


class ViberClient:
    def __init__(self, token, api_url, sender_name, *, timeout=10.0, session=None):
        self.token = token
        self.api_url = api_url
        self.sender_name = sender_name
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, session=None):
        return cls(
            settings.VIBER_BOT_TOKEN,
            settings.VIBER_API_URL,
            settings.VIBER_SENDER_NAME,
            timeout=settings.VIBER_REQUEST_TIMEOUT,
            session=session,
        )

    def send_message(self, receiver, text):
        if not self.token:
            logger.warning("viber_token_missing", extra={"channel": "viber"})
            return NotificationResult(success=False, error="Bot token not configured")

        payload = {"receiver": receiver, "type": "text", "text": text, "sender": {"name": self.sender_name}}
        try:
            response = self.session.post(
                self.api_url,
                json=payload,
                headers={"X-Viber-Auth-Token": self.token},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("viber_send_failed error=%s", exc, extra={"channel": "viber"})
            return NotificationResult(success=False, error=str(exc))

        # Viber reports failures in-band with HTTP 200.
        status = body.get("status", 0) if isinstance(body, dict) else 0
        if status != 0:
            error = body.get("status_message") or f"status {status}"
            logger.warning("viber_send_rejected error=%s", error, extra={"channel": "viber"})
            return NotificationResult(success=False, error=error)
        return NotificationResult(success=True)

    def close(self):
        self.session.close()


def _send(order, text, client=None):
    phone = order.customer.phone if order.customer else None
    receiver = normalize_receiver(phone)
    if not receiver:
        return NotificationResult(success=False, error="No phone number")

    owns_client = client is None
    client = client or ViberClient.from_settings()
    try:
        return client.send_message(receiver, text)
    finally:
        if owns_client:
            client.close()


def send_order_confirmation(order, client=None):
    return _send(order, confirmation_text(order), client)


def send_status_update(order, client=None):
    return _send(order, status_text(order), client)
