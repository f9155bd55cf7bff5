"""Tests for auth/dispatch.py -- PasscodeDispatcher.

Covers:
- one event per batch, carrying a working passcode per identity
- contact point mismatch: nothing rotated, nothing emitted
- a failing rotation aborts the batch before the event
- caller-supplied secrets are ignored
- send_passcodes_for resolution and active filtering
"""

from types import SimpleNamespace

import pytest

from auth.errors import ContactPointMismatchError, NotFoundError
from auth.models import PASSCODE_FIELD, PASSCODE_SENT_EVENT, Identity, IdentityStatus, PasscodeSent, PasscodeUsage
from conftest import add_identity


def _passcode_hash(store, identity_id):
    return store.get_credential_fields(identity_id, {PASSCODE_FIELD}).passcode_hash


class TestSendPasscodes:
    def test_single_event_for_shared_contact_point(self, manager, dispatcher, emitter):
        a = add_identity(manager, "id-1", "shared@example.com")
        b = add_identity(manager, "id-2", "shared@example.com")
        dispatcher.send_passcodes([a, b], PasscodeUsage.reset)

        emitter.emit.assert_called_once()
        event_type, payload = emitter.emit.call_args.args
        assert event_type == PASSCODE_SENT_EVENT
        assert isinstance(payload, PasscodeSent)
        assert payload.usage == PasscodeUsage.reset
        assert payload.contact_point == "shared@example.com"
        assert [identity_id for identity_id, _ in payload.passcodes] == ["id-1", "id-2"]
        for identity_id, passcode in payload.passcodes:
            assert manager.verify_passcode(identity_id, passcode) is True

    def test_usage_accepts_string(self, manager, dispatcher, emitter):
        a = add_identity(manager, "id-1", "a@example.com")
        dispatcher.send_passcodes([a], "verify")
        assert emitter.emit.call_args.args[1].usage == PasscodeUsage.verify

    def test_unknown_usage_rejected(self, manager, dispatcher, emitter):
        a = add_identity(manager, "id-1", "a@example.com")
        with pytest.raises(ValueError):
            dispatcher.send_passcodes([a], "login")
        emitter.emit.assert_not_called()

    def test_duplicates_collapsed(self, manager, dispatcher, emitter):
        a = add_identity(manager, "id-1", "a@example.com")
        dispatcher.send_passcodes([a, a], PasscodeUsage.reset)
        assert len(emitter.emit.call_args.args[1].passcodes) == 1

    def test_empty_batch_is_noop(self, dispatcher, emitter):
        dispatcher.send_passcodes([], PasscodeUsage.reset)
        emitter.emit.assert_not_called()

    def test_mixed_contact_points_write_nothing(self, manager, store, dispatcher, emitter):
        a = add_identity(manager, "id-1", "a@example.com")
        b = add_identity(manager, "id-2", "b@example.com")
        before = {i: _passcode_hash(store, i) for i in ("id-1", "id-2")}
        with pytest.raises(ContactPointMismatchError):
            dispatcher.send_passcodes([a, b], PasscodeUsage.reset)
        assert {i: _passcode_hash(store, i) for i in ("id-1", "id-2")} == before
        emitter.emit.assert_not_called()

    def test_failed_rotation_emits_nothing(self, manager, dispatcher, emitter):
        a = add_identity(manager, "id-1", "shared@example.com")
        ghost = Identity(id="ghost", email="shared@example.com")
        with pytest.raises(NotFoundError):
            dispatcher.send_passcodes([a, ghost], PasscodeUsage.reset)
        emitter.emit.assert_not_called()

    def test_caller_secrets_ignored(self, manager, dispatcher, emitter):
        add_identity(manager, "id-1", "a@example.com", "original-pw")
        smuggled = SimpleNamespace(id="id-1", email="a@example.com", password="chosen", passcode="chosen")
        dispatcher.send_passcodes([smuggled], PasscodeUsage.reset)
        (_identity_id, passcode), = emitter.emit.call_args.args[1].passcodes
        assert passcode != "chosen"
        assert manager.verify_password("id-1", "original-pw") is True
        assert manager.verify_passcode("id-1", "chosen") is False


class TestSendPasscodesFor:
    def test_email_reaches_every_active_identity(self, manager, store, dispatcher, emitter):
        add_identity(manager, "id-1", "shared@example.com")
        add_identity(manager, "id-2", "shared@example.com")
        add_identity(manager, "id-3", "shared@example.com")
        store.set_status("id-3", IdentityStatus.inactive)
        assert dispatcher.send_passcodes_for("shared@example.com", "reset") == ["id-1", "id-2"]
        emitter.emit.assert_called_once()

    def test_slug(self, manager, dispatcher, emitter):
        add_identity(manager, "id-1", "a@example.com", slug="alice")
        assert dispatcher.send_passcodes_for("alice", "verify") == ["id-1"]

    def test_unknown_identifier(self, dispatcher, emitter):
        with pytest.raises(NotFoundError):
            dispatcher.send_passcodes_for("nobody@example.com", "reset")
        emitter.emit.assert_not_called()

    def test_inactive_slug_not_registered(self, manager, store, dispatcher, emitter):
        add_identity(manager, "id-1", "a@example.com", slug="alice")
        store.set_status("id-1", IdentityStatus.inactive)
        with pytest.raises(NotFoundError):
            dispatcher.send_passcodes_for("alice", "reset")
        emitter.emit.assert_not_called()
