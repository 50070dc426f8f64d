"""Email/password identity provider backed by the ``users`` table.

A provider instance wraps one browsing session (any mutable mapping, in the
web app the Starlette session dict) and remembers the signed-in user id
under ``SESSION_KEY``.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import sqlite3
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, MutableMapping, Optional

from storefront.db import sqlite as db
from storefront.errors import AuthError, ValidationError
from storefront.utils.validators import validate_email

logger = logging.getLogger(__name__)

SESSION_KEY = "user_id"
PBKDF2_ITERATIONS = 260_000
MIN_PASSWORD_LENGTH = 6

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
USER_UPDATED = "USER_UPDATED"


@dataclass(frozen=True)
class UserProfile:
    id: str
    name: str
    email: str
    phone: str
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> UserProfile:
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row.get("phone") or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


Listener = Callable[[str, Optional[UserProfile]], None]


class AuthEvents:
    """Session-change notification stream."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: str, user: Optional[UserProfile]) -> None:
        for listener in list(self._listeners):
            listener(event, user)


def hash_password(password: str, *, salt: Optional[str] = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, _ = encoded.split("$", 3)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    candidate = hash_password(password, salt=salt, iterations=int(iterations))
    return hmac.compare_digest(candidate, encoded)


class IdentityProvider:
    def __init__(self, session: MutableMapping[str, Any], events: Optional[AuthEvents] = None) -> None:
        self.session = session
        self.events = events or AuthEvents()

    def current_user(self) -> Optional[UserProfile]:
        user_id = self.session.get(SESSION_KEY)
        if not user_id:
            return None
        row = db.get_user(user_id)
        if row is None:
            # account vanished underneath the session
            self.session.pop(SESSION_KEY, None)
            return None
        return UserProfile.from_row(row)

    def sign_up(self, email: str, password: str, name: str) -> UserProfile:
        email = validate_email(email)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if db.get_user_by_email(email):
            raise AuthError("User already registered")

        try:
            row = db.create_user(str(uuid.uuid4()), email, name, hash_password(password))
        except sqlite3.IntegrityError as e:
            raise AuthError("User already registered") from e

        profile = UserProfile.from_row(row)
        logger.info("Sign up successful: %s", profile.id)
        self._start_session(profile)
        return profile

    def sign_in(self, email: str, password: str) -> UserProfile:
        row = db.get_user_by_email((email or "").strip())
        if row is None or not verify_password(password or "", row["password_hash"]):
            logger.info("Sign in failed for %s", email)
            raise AuthError("Invalid login credentials")

        profile = self.ensure_user_profile(row["id"])
        logger.info("Sign in successful: %s", profile.id)
        self._start_session(profile)
        return profile

    def sign_out(self) -> None:
        user_id = self.session.pop(SESSION_KEY, None)
        if user_id:
            logger.info("Sign out successful: %s", user_id)
        self.events.emit(SIGNED_OUT, None)

    def ensure_user_profile(self, user_id: str) -> UserProfile:
        row = db.get_user(user_id)
        if row is not None:
            if not row["name"]:
                row = db.update_user(user_id, name=row["email"].split("@")[0] or "User")
            return UserProfile.from_row(row)
        raise AuthError("No authenticated user found")

    def update_user_profile(self, user_id: str, **updates: Any) -> UserProfile:
        if "email" in updates and updates["email"] is not None:
            updates["email"] = validate_email(updates["email"])
        row = db.update_user(user_id, **updates)
        if row is None:
            raise AuthError("No authenticated user found")
        profile = UserProfile.from_row(row)
        self.events.emit(USER_UPDATED, profile)
        return profile

    def _start_session(self, profile: UserProfile) -> None:
        self.session[SESSION_KEY] = profile.id
        self.events.emit(SIGNED_IN, profile)
