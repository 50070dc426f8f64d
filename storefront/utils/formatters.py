from storefront.config import settings
from storefront.constants import ORDER_STATUSES

_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€"}


def money(v: int) -> str:
    symbol = _SYMBOLS.get(settings.currency)
    if symbol:
        return f"{symbol}{int(v)}"
    return f"{int(v)} {settings.currency}"


def order_status_label(status: str) -> str:
    return ORDER_STATUSES.get(status, status.replace("_", " ").capitalize())
