"""Shared pytest fixtures.

The environment is pointed at a throwaway directory before any storefront
module is imported, because ``storefront.config`` reads it at import time.
"""
from __future__ import annotations

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DB_PATH"] = os.path.join(_TMP_DIR, "shop.db")
os.environ["EXPORT_DIR"] = os.path.join(_TMP_DIR, "exports")
os.environ["BACKUP_DIR"] = os.path.join(_TMP_DIR, "backups")
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = ""
os.environ["ADMIN_ID"] = "42"
os.environ["CURRENCY"] = "INR"

import pytest  # noqa: E402

from storefront.config import settings  # noqa: E402
from storefront.db import sqlite as db  # noqa: E402
from storefront.services.auth import UserProfile, hash_password  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    """Every test starts from the seeded schema."""
    if os.path.exists(settings.db_path):
        os.remove(settings.db_path)
    db.init_db()
    yield


@pytest.fixture
def user() -> UserProfile:
    row = db.create_user("user-1", "asha@example.com", "Asha", hash_password("secret1"), phone="9884388147")
    return UserProfile.from_row(row)


@pytest.fixture
def other_user() -> UserProfile:
    row = db.create_user("user-2", "ravi@example.com", "Ravi", hash_password("secret2"))
    return UserProfile.from_row(row)
