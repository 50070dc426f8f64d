from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../storefront repo root
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


@dataclass(frozen=True)
class Settings:
    db_path: str
    export_dir: str
    backup_dir: str
    currency: str
    shop_name: str
    session_secret: str
    razorpay_key_id: str
    razorpay_key_secret: str
    bot_token: str
    admin_id: int


settings = Settings(
    db_path=_get_path("DB_PATH", "DATABASE_PATH", default=str(ROOT_DIR / "data" / "shop.db")),
    export_dir=_get_path("EXPORT_DIR", default=str(ROOT_DIR / "exports")),
    backup_dir=_get_path("BACKUP_DIR", default=str(ROOT_DIR / "backups")),
    currency=_get_env("CURRENCY", default="INR") or "INR",
    shop_name=_get_env("SHOP_NAME", default="Nellai Vegetable Shop") or "Nellai Vegetable Shop",
    session_secret=_get_env("SESSION_SECRET", "SECRET_KEY", default="dev-session-secret") or "dev-session-secret",
    razorpay_key_id=_get_env("RAZORPAY_KEY_ID", default="") or "",
    razorpay_key_secret=_get_env("RAZORPAY_KEY_SECRET", default="") or "",
    bot_token=_get_env("BOT_TOKEN", "TELEGRAM_BOT_TOKEN", default="") or "",
    admin_id=_get_int("ADMIN_ID", "ADMIN_TG_ID", "ADMIN_TG", default=0) or 0,
)


def require_bot_settings() -> None:
    if not settings.bot_token:
        raise RuntimeError("BOT_TOKEN is empty. Set BOT_TOKEN in .env")
    if not settings.admin_id:
        raise RuntimeError("ADMIN_ID is empty. Set ADMIN_ID (or ADMIN_TG_ID) in .env")
