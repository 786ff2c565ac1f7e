import secrets
from datetime import datetime, time, timedelta

from django.utils import timezone

from orders.models import Customer, Order

DELIVERY_LEAD_TIME = timedelta(minutes=90)
PICKUP_LEAD_TIME = timedelta(minutes=30)
BUSINESS_OPENS = time(10, 0)
BUSINESS_CLOSES = time(22, 0)


def generate_order_number(now=None):
    """``ORD`` + local yymmddHHMM + four random digits, unique among stored orders."""
    now = timezone.localtime(now or timezone.now())
    prefix = f"ORD{now:%y%m%d%H%M}"
    while True:
        candidate = f"{prefix}{secrets.randbelow(10_000):04d}"
        if not Order.objects.filter(order_number=candidate).exists():
            return candidate


def estimate_ready_at(fulfillment, now=None):
    """Lead time from `now`, moved to the next opening time when it lands outside business hours."""
    now = timezone.localtime(now or timezone.now())
    lead = DELIVERY_LEAD_TIME if fulfillment == Order.Fulfillment.DELIVERY else PICKUP_LEAD_TIME
    estimate = now + lead
    local_time = estimate.time()
    if local_time < BUSINESS_OPENS:
        return _at_opening(estimate.date(), estimate.tzinfo)
    if local_time >= BUSINESS_CLOSES:
        return _at_opening(estimate.date() + timedelta(days=1), estimate.tzinfo)
    return estimate


def _at_opening(day, tzinfo):
    return datetime.combine(day, BUSINESS_OPENS, tzinfo=tzinfo)


def upsert_customer(name, email=None, phone=None):
    """Reuse the customer matching `email` (then `phone`) and refresh their contact details."""
    email = (email or "").strip().lower() or None
    phone = (phone or "").strip() or None
    if not email and not phone:
        return None

    customer = None
    if email:
        customer = Customer.objects.filter(email__iexact=email).order_by("created_at").first()
    if customer is None and phone:
        customer = Customer.objects.filter(phone=phone).order_by("created_at").first()

    if customer is None:
        return Customer.objects.create(name=name, email=email, phone=phone)

    customer.name = name
    customer.email = email or customer.email
    customer.phone = phone or customer.phone
    customer.save(update_fields=["name", "email", "phone", "updated_at"])
    return customer
