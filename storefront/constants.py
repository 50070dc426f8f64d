FREE_DELIVERY_THRESHOLD = 500
FLAT_DELIVERY_FEE = 50
MAX_LINE_QUANTITY = 99

# gateway amounts are in the smallest currency unit (paise)
MINOR_UNITS = 100

CATEGORIES = {
    "Vegetables": "Fresh vegetables",
    "Fruits": "Seasonal fruits",
    "Leafy Greens": "Greens & herbs",
}

PAYMENT_COD = "cod"
PAYMENT_ONLINE = "online"
PAYMENT_METHODS = (PAYMENT_COD, PAYMENT_ONLINE)

PAYMENT_STATUSES = ("pending", "paid", "failed")
PAYMENT_DETAIL_STATUSES = ("pending", "completed", "failed", "refunded")

ORDER_STATUSES = {
    "placed": "Placed",
    "confirmed": "Confirmed",
    "preparing": "Preparing",
    "out_for_delivery": "Out for delivery",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}

DEFAULT_CITY = "Chennai"
DEFAULT_STATE = "Tamil Nadu"
DEFAULT_COUNTRY = "India"

NOTIFICATION_KINDS = ("success", "error", "info")
