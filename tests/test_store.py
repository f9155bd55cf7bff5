"""Tests for auth/store.py -- IdentityStore CRUD, lookups and credential updates.

Uses a fresh in-memory SQLite database per test (see conftest.store).
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import PASSCODE_FIELD, PASSWORD_FIELD, Identity, IdentityStatus


def _add(store, identity_id, email="a@example.com", slug=None, status=IdentityStatus.active):
    identity = Identity(id=identity_id, email=email, slug=slug, label=identity_id.upper(), status=status)
    return store.create_identity(identity, password_hash="bcrypt:pw-" + identity_id, passcode_hash="bcrypt:pc-" + identity_id)


class TestIdentityLifecycle:
    def test_create_and_get(self, store):
        assert _add(store, "id-1", slug="alice") == "id-1"
        identity = store.get_identity("id-1")
        assert identity.slug == "alice"
        assert identity.label == "ID-1"
        assert identity.status == IdentityStatus.active
        assert identity.email_verified is False
        assert identity.created_at

    def test_get_missing_returns_none(self, store):
        assert store.get_identity("nope") is None

    def test_duplicate_id_rejected(self, store):
        _add(store, "id-1")
        with pytest.raises(IntegrityError):
            _add(store, "id-1")

    def test_duplicate_slug_rejected(self, store):
        _add(store, "id-1", slug="alice")
        with pytest.raises(IntegrityError):
            _add(store, "id-2", slug="alice")

    def test_set_status(self, store):
        _add(store, "id-1")
        assert store.set_status("id-1", IdentityStatus.inactive) is True
        assert store.get_identity("id-1").status == IdentityStatus.inactive
        assert store.set_status("missing", IdentityStatus.inactive) is False

    def test_delete(self, store):
        _add(store, "id-1")
        assert store.delete_identity("id-1") is True
        assert store.get_identity("id-1") is None
        assert store.delete_identity("id-1") is False

    def test_get_identities_ordered_and_skips_unknown(self, store):
        _add(store, "id-b")
        _add(store, "id-a")
        assert [i.id for i in store.get_identities(["id-b", "ghost", "id-a"])] == ["id-a", "id-b"]
        assert store.get_identities([]) == []

    def test_get_candidates(self, store):
        _add(store, "id-b")
        _add(store, "id-a")
        assert [(c.identity_id, c.label) for c in store.get_candidates(["id-b", "id-a"])] == [
            ("id-a", "ID-A"),
            ("id-b", "ID-B"),
        ]
        assert store.get_candidates([]) == []


class TestLookups:
    def test_by_id_or_slug(self, store):
        _add(store, "https://example.com/i/1", slug="alice")
        assert store.lookup_by_id_or_slug("alice") == "https://example.com/i/1"
        assert store.lookup_by_id_or_slug("https://example.com/i/1") == "https://example.com/i/1"
        assert store.lookup_by_id_or_slug("bob") is None

    def test_by_email_returns_all_sharing(self, store):
        _add(store, "id-1", email="shared@example.com")
        _add(store, "id-2", email="shared@example.com")
        _add(store, "id-3", email="other@example.com")
        assert store.lookup_by_email("shared@example.com") == ["id-1", "id-2"]

    def test_by_email_active_only(self, store):
        _add(store, "id-1", email="shared@example.com")
        _add(store, "id-2", email="shared@example.com", status=IdentityStatus.inactive)
        assert store.lookup_by_email("shared@example.com") == ["id-1"]
        assert store.lookup_by_email("shared@example.com", active_only=False) == ["id-1", "id-2"]


class TestCredentialFields:
    def test_fetch_requested_fields_only(self, store):
        _add(store, "id-1")
        record = store.get_credential_fields("id-1", {PASSWORD_FIELD})
        assert record.password_hash == "bcrypt:pw-id-1"
        assert record.passcode_hash is None
        assert record.status == IdentityStatus.active

    def test_fetch_missing_identity(self, store):
        assert store.get_credential_fields("nope", {PASSCODE_FIELD}) is None

    def test_fetch_unknown_field_rejected(self, store):
        with pytest.raises(ValueError):
            store.get_credential_fields("id-1", {"email"})

    def test_update(self, store):
        _add(store, "id-1")
        assert store.update_credentials("id-1", password_hash="bcrypt:new", email_verified=True) is True
        record = store.get_credential_fields("id-1", {PASSWORD_FIELD, PASSCODE_FIELD})
        assert record.password_hash == "bcrypt:new"
        assert record.passcode_hash == "bcrypt:pc-id-1"
        assert store.get_identity("id-1").email_verified is True

    def test_update_missing_identity(self, store):
        assert store.update_credentials("nope", password_hash="bcrypt:new") is False

    def test_update_rejects_other_columns(self, store):
        _add(store, "id-1")
        with pytest.raises(ValueError):
            store.update_credentials("id-1", role="admin")
        assert store.get_identity("id-1").role == "user"

    def test_update_nothing(self, store):
        _add(store, "id-1")
        assert store.update_credentials("id-1") is False

    def test_ping(self, store):
        assert store.ping() is True
