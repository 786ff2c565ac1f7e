from decimal import Decimal, InvalidOperation


def to_decimal(value, default=Decimal("0")):
    """Parse loosely typed numeric input (str, int, float, Decimal) or return `default`."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        result = value
    else:
        text = str(value).strip().replace(",", ".")
        if not text:
            return default
        try:
            result = Decimal(text)
        except (InvalidOperation, ValueError):
            return default
    if not result.is_finite():
        return default
    return result
