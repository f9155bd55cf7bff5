"""
auth/dispatch.py -- Batch passcode issuing for reset and verify flows.

send_passcodes() gives every identity behind one contact point a fresh
passcode and emits ONE passcode-sent event carrying all of them, so the
delivery collaborator sends a single message listing each identity.

All-or-nothing:
  The contact point check runs before any passcode is rotated. A batch that
  mixes contact points raises ContactPointMismatchError with nothing written
  and nothing emitted; a partial notification would reveal which identities
  exist. The event is emitted only after every rotation succeeded.

Secrets in, never:
  Only identity.id and identity.email are read from the inputs. The change
  request is built here, empty, so no caller-chosen password or passcode can
  travel through this path.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from auth.credentials import CredentialManager
from auth.errors import ContactPointMismatchError, NotFoundError
from auth.events import EventEmitter
from auth.models import PASSCODE_SENT_EVENT, Identity, IdentityStatus, PasscodeSent, PasscodeUsage

logger = logging.getLogger("authn.dispatch")


class PasscodeDispatcher:
    def __init__(self, manager: CredentialManager, emitter: EventEmitter) -> None:
        self.manager = manager
        self.emitter = emitter

    def send_passcodes(self, identities: Sequence[Identity], usage: PasscodeUsage | str) -> None:
        """Rotate and announce passcodes for identities sharing one contact point."""
        usage = PasscodeUsage(usage)
        unique: dict[str, Identity] = {}
        for identity in identities:
            unique.setdefault(identity.id, identity)
        if not unique:
            return

        contact_points = {identity.email for identity in unique.values()}
        if len(contact_points) != 1:
            logger.warning("Passcode batch rejected: %d contact points in one batch", len(contact_points))
            raise ContactPointMismatchError()
        contact_point = contact_points.pop()

        passcodes: list[tuple[str, str]] = []
        for identity_id in unique:
            passcodes.append((identity_id, self.manager.issue_passcode(identity_id)))

        self.emitter.emit(
            PASSCODE_SENT_EVENT,
            PasscodeSent(usage=usage, contact_point=contact_point, passcodes=tuple(passcodes)),
        )
        logger.info("Issued %d passcode(s) for usage=%s", len(passcodes), usage.value)

    def send_passcodes_for(self, identifier: str, usage: PasscodeUsage | str) -> list[str]:
        """Resolve identifier and send passcodes to every active identity behind it.

        Returns the ids that received a passcode. Raises NotFoundError when the
        identifier is not registered.
        """
        ids = self.manager.resolver.resolve_identifier(identifier, error_if_missing=True)
        identities = [
            identity for identity in self.manager.store.get_identities(ids) if identity.status == IdentityStatus.active
        ]
        if not identities:
            raise NotFoundError("The given identifier is not registered.", identifier=identifier)
        self.send_passcodes(identities, usage)
        return [identity.id for identity in identities]
