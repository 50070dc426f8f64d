import re

from storefront.errors import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^(?:\+?91)?[6-9]\d{9}$")
_PINCODE_RE = re.compile(r"^[1-9]\d{5}$")


def require_positive_number(v: float, name: str = "value") -> None:
    if v <= 0:
        raise ValueError(f"{name} must be > 0")


def require_text(v: str, label: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValidationError(f"{label} is required")
    return v


def validate_email(v: str) -> str:
    v = (v or "").strip()
    if not _EMAIL_RE.match(v):
        raise ValidationError("Enter a valid email address")
    return v.lower()


def validate_phone(v: str) -> str:
    digits = re.sub(r"[\s\-()]", "", v or "")
    if not _PHONE_RE.match(digits):
        raise ValidationError("Enter a valid 10-digit mobile number")
    return digits


def validate_pincode(v: str) -> str:
    v = (v or "").strip()
    if not _PINCODE_RE.match(v):
        raise ValidationError("Enter a valid 6-digit pincode")
    return v
