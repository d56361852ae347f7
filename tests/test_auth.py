import hashlib
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from ageless.config import settings
from ageless.models_sqlalchemy.models import PasswordResetToken
from ageless.services import auth
from ageless.services.errors import ValidationFailed
from ageless.services.passwords import make_phpass_hash, verify_password

NEW_PASSWORD = "Gilt#Edges2047"


def _legacy_user(make_user, stored):
    return make_user(password_hash=None, legacy_password_hash=stored, legacy_password_type="phpass")


def test_legacy_phpass_login_migrates_to_pbkdf2(db, make_user):
    user = _legacy_user(make_user, make_phpass_hash("deckle-edge", salt="qrstuvwx"))

    with patch.object(settings, "AUTH_LEGACY_WP_ENABLED", True), \
            patch.object(settings, "AUTH_LEGACY_WP_CUTOFF_DATE", None):
        assert auth.authenticate_user(db, user.email, "wrong-edge") is None
        migrated = auth.authenticate_user(db, user.email.upper(), "deckle-edge")

    assert migrated.id == user.id
    assert migrated.legacy_password_hash is None
    assert migrated.legacy_password_type is None
    assert migrated.password_migrated_at is not None
    assert migrated.password_hash.startswith("pbkdf2_sha256$")
    assert verify_password("deckle-edge", migrated.password_hash)

    # the migrated account no longer depends on the legacy window
    with patch.object(settings, "AUTH_LEGACY_WP_ENABLED", False):
        assert auth.authenticate_user(db, user.email, "deckle-edge").id == user.id


def test_legacy_md5_login_migrates(db, make_user):
    user = make_user(
        password_hash=None,
        legacy_password_hash=hashlib.md5(b"half-calf").hexdigest(),
        legacy_password_type="md5",
    )
    with patch.object(settings, "AUTH_LEGACY_WP_ENABLED", True), \
            patch.object(settings, "AUTH_LEGACY_WP_CUTOFF_DATE", None):
        migrated = auth.authenticate_user(db, user.email, "half-calf")
    assert migrated.legacy_password_hash is None
    assert verify_password("half-calf", migrated.password_hash)


def test_legacy_login_refused_when_window_closed(db, make_user):
    stored = make_phpass_hash("deckle-edge", salt="qrstuvwx")
    user = _legacy_user(make_user, stored)

    with patch.object(settings, "AUTH_LEGACY_WP_ENABLED", False):
        assert auth.authenticate_user(db, user.email, "deckle-edge") is None
    with patch.object(settings, "AUTH_LEGACY_WP_ENABLED", True), \
            patch.object(settings, "AUTH_LEGACY_WP_CUTOFF_DATE", "2020-01-01"):
        assert auth.authenticate_user(db, user.email, "deckle-edge") is None

    db.refresh(user)
    assert user.legacy_password_hash == stored
    assert user.password_hash is None
    assert user.password_migrated_at is None


def test_password_reset_is_single_use(db, make_user):
    user = make_user()
    assert auth.create_password_reset(db, "nobody@bookmail.com") is None

    raw = auth.create_password_reset(db, user.email)
    record = db.query(PasswordResetToken).one()
    assert record.token_hash != raw
    assert timedelta(minutes=59) < record.expires_at - datetime.utcnow() <= timedelta(hours=1)

    with pytest.raises(ValidationFailed, match="Password must be at least 12 characters long"):
        auth.reset_password(db, raw, "short")

    auth.reset_password(db, raw, NEW_PASSWORD)
    db.refresh(user)
    assert verify_password(NEW_PASSWORD, user.password_hash)

    with pytest.raises(ValidationFailed, match="Reset token is invalid or has expired"):
        auth.reset_password(db, raw, "Another#Binding99")
    with pytest.raises(ValidationFailed, match="Reset token is invalid or has expired"):
        auth.reset_password(db, "not-a-token", NEW_PASSWORD)


def test_password_reset_expires_after_an_hour(db, make_user):
    user = make_user()
    raw = auth.create_password_reset(db, user.email)
    record = db.query(PasswordResetToken).one()
    record.expires_at = datetime.utcnow() - timedelta(seconds=1)
    db.commit()

    with pytest.raises(ValidationFailed, match="Reset token is invalid or has expired"):
        auth.reset_password(db, raw, NEW_PASSWORD)
    db.refresh(user)
    assert not verify_password(NEW_PASSWORD, user.password_hash)


def test_password_reset_clears_legacy_hash(db, make_user):
    user = _legacy_user(make_user, make_phpass_hash("deckle-edge"))
    raw = auth.create_password_reset(db, user.email)

    reset = auth.reset_password(db, raw, NEW_PASSWORD)
    assert reset.legacy_password_hash is None
    assert reset.legacy_password_type is None
    assert auth.authenticate_user(db, user.email, NEW_PASSWORD).id == user.id
