from __future__ import annotations

import pytest

from storefront.errors import AuthError, ValidationError
from storefront.services.auth import (
    SESSION_KEY,
    SIGNED_IN,
    SIGNED_OUT,
    USER_UPDATED,
    AuthEvents,
    IdentityProvider,
    hash_password,
    verify_password,
)


def test_password_hash_roundtrip() -> None:
    encoded = hash_password("secret1", iterations=1000)
    assert encoded.startswith("pbkdf2_sha256$1000$")
    assert verify_password("secret1", encoded)
    assert not verify_password("secret2", encoded)
    assert not verify_password("secret1", "garbage")


def test_sign_up_signs_session_in_and_emits() -> None:
    events = AuthEvents()
    seen = []
    events.subscribe(lambda event, user: seen.append((event, user.email if user else None)))
    session: dict = {}

    profile = IdentityProvider(session, events).sign_up("Meena@Example.com", "secret1", "Meena")

    assert profile.email == "meena@example.com"
    assert profile.name == "Meena"
    assert session[SESSION_KEY] == profile.id
    assert seen == [(SIGNED_IN, "meena@example.com")]


def test_sign_up_rejects_duplicate_email(user) -> None:
    with pytest.raises(AuthError, match="already registered"):
        IdentityProvider({}).sign_up(user.email, "secret1", "Someone")


@pytest.mark.parametrize(
    ("email", "password", "name"),
    [("bad-email", "secret1", "X"), ("x@example.com", "123", "X"), ("x@example.com", "secret1", "  ")],
)
def test_sign_up_validation(email: str, password: str, name: str) -> None:
    with pytest.raises(ValidationError):
        IdentityProvider({}).sign_up(email, password, name)


def test_sign_in_and_out(user) -> None:
    events = AuthEvents()
    seen = []
    events.subscribe(lambda event, u: seen.append(event))
    session: dict = {}
    provider = IdentityProvider(session, events)

    profile = provider.sign_in("ASHA@example.com", "secret1")
    assert profile.id == user.id
    assert provider.current_user().id == user.id

    provider.sign_out()
    assert provider.current_user() is None
    assert SESSION_KEY not in session
    assert seen == [SIGNED_IN, SIGNED_OUT]


def test_sign_in_wrong_password(user) -> None:
    session: dict = {}
    with pytest.raises(AuthError, match="Invalid login credentials"):
        IdentityProvider(session).sign_in(user.email, "nope")
    assert SESSION_KEY not in session


def test_unsubscribe_stops_notifications(user) -> None:
    events = AuthEvents()
    seen = []
    unsubscribe = events.subscribe(lambda event, u: seen.append(event))
    unsubscribe()
    IdentityProvider({}, events).sign_in(user.email, "secret1")
    assert seen == []


def test_current_user_drops_stale_session() -> None:
    session = {SESSION_KEY: "ghost"}
    assert IdentityProvider(session).current_user() is None
    assert SESSION_KEY not in session


def test_update_profile_emits_user_updated(user) -> None:
    events = AuthEvents()
    seen = []
    events.subscribe(lambda event, u: seen.append((event, u.phone)))
    profile = IdentityProvider({}, events).update_user_profile(user.id, phone="9000000001")
    assert profile.phone == "9000000001"
    assert seen == [(USER_UPDATED, "9000000001")]


def test_ensure_user_profile_unknown_user() -> None:
    with pytest.raises(AuthError):
        IdentityProvider({}).ensure_user_profile("ghost")
