"""
auth/credentials.py -- Credential manager: login, credential changes, verification.

Pattern: ordered pipeline of fallible steps. A credential change runs
  authorize -> verify old password -> verify old passcode
            -> hash new password -> generate + hash passcode -> persist
and stops at the first failure. Every step before persist is read-only, so
an aborted change leaves nothing behind. Persist is one conditional UPDATE.

Passcode rotation:
  Every successful change writes a fresh passcode hash, even when the caller
  only changed the password. Any reset/verify link issued earlier stops
  working as soon as a credential operation succeeds.

Legacy hashes:
  verify_password() / verify_passcode() re-hash a secret that matched a
  legacy-tagged hash and store the result (one extra UPDATE). Inside
  set_credentials() the same upgrade is folded into the single final write.

Timing [C1]:
  login() runs a bcrypt verification even when the identifier resolves to
  nothing, or only to inactive or vanished identities, so an attacker cannot
  enumerate identifiers by response time.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import time

from auth.errors import (
    InvalidLoginError,
    InvalidPasscodeError,
    InvalidPasswordError,
    MalformedHashError,
    NotFoundError,
    OperationTimeoutError,
    PasswordResetFailedError,
    PermissionDeniedError,
)
from auth.hashing import dummy_hash, hash_secret, is_tagged_hash, verify_hash
from auth.models import (
    PASSCODE_FIELD,
    PASSWORD_FIELD,
    Ambiguous,
    Authenticated,
    CredentialChange,
    CredentialChangeRequest,
    Identity,
    IdentityStatus,
    LoginOutcome,
)
from auth.passcodes import generate_passcode
from auth.permissions import IDENTITY_EDIT, IdentityAuthorizer
from auth.resolver import IdentifierResolver
from auth.store import IdentityStore
from core.config import get_settings

logger = logging.getLogger("authn.credentials")

_FIELD_NAMES = {PASSWORD_FIELD: "password", PASSCODE_FIELD: "passcode"}


def _provisioned_hash(secret: str, hashed: bool, name: str) -> str:
    if not hashed:
        return hash_secret(secret)
    if not is_tagged_hash(secret):
        raise MalformedHashError(f"Pre-hashed {name} is not a supported tagged hash.")
    return secret


class _Deadline:
    """Monotonic deadline checked between pipeline steps. None means unbounded."""

    def __init__(self, timeout: float | None) -> None:
        self._expires = time.monotonic() + timeout if timeout else None

    def check(self, step: str) -> None:
        if self._expires is not None and time.monotonic() > self._expires:
            logger.warning("Credential operation timed out after step %s", step)
            raise OperationTimeoutError(step=step)


class CredentialManager:
    """The authentication core.

    Collaborators are injected so tests and other deployments can swap them:
      store      -- IdentityStore (credential fields + identity lookups)
      resolver   -- IdentifierResolver over the same store
      authorizer -- object with check_permission(actor, permission, resource)
    """

    def __init__(
        self,
        store: IdentityStore,
        resolver: IdentifierResolver | None = None,
        authorizer=None,
        timeout: float | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver or IdentifierResolver(store)
        self.authorizer = authorizer or IdentityAuthorizer()
        if timeout is None:
            timeout = get_settings().operation_timeout_seconds or None
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def create_identity(
        self,
        identity: Identity,
        password: str | None = None,
        password_hashed: bool = False,
        passcode: str | None = None,
        passcode_hashed: bool = False,
    ) -> str:
        """Provision credentials for a new identity and insert it.

        Called synchronously by the identity-creation workflow. Without a
        password, a random one nobody knows is generated and hashed, so every
        identity goes through the same verification path. Without a passcode,
        a fresh one is generated. password_hashed / passcode_hashed=True store
        the given value as an existing tagged hash instead of hashing it, for
        identities imported from another system.
        """
        if password is None:
            password, password_hashed = generate_passcode(), False
        if passcode is None:
            passcode, passcode_hashed = generate_passcode(), False
        password_hash = _provisioned_hash(password, password_hashed, "password")
        passcode_hash = _provisioned_hash(passcode, passcode_hashed, "passcode")
        self.store.create_identity(identity, password_hash=password_hash, passcode_hash=passcode_hash)
        logger.info("Provisioned credentials for identity %s", identity.id)
        return identity.id

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, identifier: str, password: str, identity_id: str | None = None) -> LoginOutcome:
        """Authenticate identifier + password.

        Returns Authenticated when exactly one candidate matches, Ambiguous when
        several identities sharing the email matched. identity_id narrows the
        candidates to an explicit choice made after an Ambiguous outcome.

        Raises InvalidLoginError (generic) when nothing matches.
        """
        candidates = self.resolver.resolve_identifier(identifier)
        if identity_id is not None:
            candidates = [c for c in candidates if c == identity_id]
        if not candidates:
            verify_hash(dummy_hash(), password)  # [C1]
            logger.info("Login failed: no candidate identities")
            raise InvalidLoginError()

        matches: list[str] = []
        verified = 0
        for candidate in candidates:
            try:
                if self.verify_password(candidate, password):
                    matches.append(candidate)
            except NotFoundError:
                # Inactive, or deleted since resolution.
                continue
            verified += 1

        if not matches:
            if not verified:
                verify_hash(dummy_hash(), password)  # [C1]
            logger.info("Login failed: password did not match %d candidate(s)", len(candidates))
            raise InvalidLoginError()
        if len(matches) == 1:
            logger.info("Login succeeded for identity %s", matches[0])
            return Authenticated(identity_id=matches[0])

        matched = self.store.get_candidates(matches)
        logger.info("Login ambiguous: %d identities matched", len(matched))
        return Ambiguous(
            contact_point=identifier.strip(),
            candidates={c.identity_id: c.label for c in matched},
        )

    # ------------------------------------------------------------------
    # Credential changes
    # ------------------------------------------------------------------

    def set_credentials(
        self,
        actor: Identity | None,
        target_id: str,
        request: CredentialChangeRequest,
        timeout: float | None = None,
    ) -> CredentialChange:
        """Check old secrets, write new ones, and always rotate the passcode.

        actor None is the system. Raises PermissionDeniedError,
        InvalidPasswordError, InvalidPasscodeError, NotFoundError or
        OperationTimeoutError; in every case nothing has been written.
        """
        change, _passcode = self._apply_credentials(actor, target_id, request, timeout)
        return change

    def issue_passcode(self, identity_id: str, timeout: float | None = None) -> str:
        """Rotate an identity's passcode as the system and return the new plaintext.

        No old secret is checked and no password is changed. The plaintext is
        meant for the passcode-sent event only.
        """
        _change, passcode = self._apply_credentials(None, identity_id, CredentialChangeRequest(), timeout)
        return passcode

    def _apply_credentials(
        self,
        actor: Identity | None,
        target_id: str,
        request: CredentialChangeRequest,
        timeout: float | None,
    ) -> tuple[CredentialChange, str]:
        deadline = _Deadline(timeout if timeout is not None else self.timeout)

        self.authorizer.check_permission(actor, IDENTITY_EDIT, target_id)
        deadline.check("authorize")

        changes: dict[str, str] = {}
        password_is_legacy = False
        if request.old_password is not None:
            matched, password_is_legacy = self._check_field(target_id, PASSWORD_FIELD, request.old_password)
            if not matched:
                raise InvalidPasswordError()
            deadline.check("verify_password")

        if request.old_passcode is not None:
            matched, _legacy = self._check_field(target_id, PASSCODE_FIELD, request.old_passcode)
            if not matched:
                raise InvalidPasscodeError()
            deadline.check("verify_passcode")

        if request.new_password is not None:
            changes[PASSWORD_FIELD] = hash_secret(request.new_password)
        elif password_is_legacy:
            changes[PASSWORD_FIELD] = hash_secret(request.old_password)
        deadline.check("hash_password")

        passcode = generate_passcode()
        changes[PASSCODE_FIELD] = hash_secret(passcode)
        deadline.check("hash_passcode")

        if not self.store.update_credentials(target_id, **changes):
            raise NotFoundError("Could not set identity credentials. Identity not found.", identity_id=target_id)

        logger.info("Credentials updated for identity %s (fields=%s)", target_id, ",".join(sorted(changes)))
        return CredentialChange(identity_id=target_id, fields=frozenset(changes)), passcode

    def reset_password(self, identifier: str, passcode: str, new_password: str) -> str:
        """Set a new password for whichever identity behind identifier owns passcode.

        Candidates are tried in turn, each acting on itself; the first one
        whose passcode verifies gets the new password. Returns its id, or
        raises PasswordResetFailedError when none does.
        """
        for identity_id in self.resolver.resolve_identifier(identifier):
            actor = self.store.get_identity(identity_id)
            if actor is None:
                continue
            request = CredentialChangeRequest(old_passcode=passcode, new_password=new_password)
            try:
                self.set_credentials(actor, identity_id, request)
            except (InvalidPasscodeError, NotFoundError, PermissionDeniedError):
                continue
            logger.info("Password reset for identity %s", identity_id)
            return identity_id
        raise PasswordResetFailedError(identifier=identifier)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_password(self, identity_id: str, password: str) -> bool:
        return self._verify_field(identity_id, PASSWORD_FIELD, password)

    def verify_passcode(self, identity_id: str, passcode: str) -> bool:
        return self._verify_field(identity_id, PASSCODE_FIELD, passcode)

    def verify_email_with_passcode(self, actor: Identity | None, target_id: str, passcode: str) -> bool:
        """Mark the target's email verified if passcode matches.

        A mismatch returns False. On success the passcode is consumed: the
        verified flag and a fresh passcode hash are written together.
        """
        self.authorizer.check_permission(actor, IDENTITY_EDIT, target_id)
        matched, _legacy = self._check_field(target_id, PASSCODE_FIELD, passcode)
        if not matched:
            return False
        fresh = hash_secret(generate_passcode())
        if not self.store.update_credentials(target_id, email_verified=True, passcode_hash=fresh):
            raise NotFoundError("Could not verify identity email. Identity not found.", identity_id=target_id)
        logger.info("Email verified for identity %s", target_id)
        return True

    def _check_field(self, identity_id: str, field: str, secret: str) -> tuple[bool, bool]:
        """Verify secret against one stored hash field. Read-only.

        Raises NotFoundError when there is no active identity with that field set.
        """
        name = _FIELD_NAMES[field]
        record = self.store.get_credential_fields(identity_id, {field})
        if record is None:
            raise NotFoundError(f"Could not verify identity {name}. Identity not found.", identity_id=identity_id)
        if record.status != IdentityStatus.active:
            raise NotFoundError(f"Could not verify identity {name}. Identity is not active.", identity_id=identity_id)
        stored = getattr(record, field)
        if not stored:
            raise NotFoundError(f"Could not verify identity {name}. No {name} set.", identity_id=identity_id)
        try:
            return verify_hash(stored, secret)
        except MalformedHashError:
            logger.error("Stored %s hash for identity %s is malformed", name, identity_id)
            raise

    def _verify_field(self, identity_id: str, field: str, secret: str) -> bool:
        matched, legacy = self._check_field(identity_id, field, secret)
        if matched and legacy:
            # Upgrade-on-verify: the secret is known-good, store it under the current algorithm.
            self.store.update_credentials(identity_id, **{field: hash_secret(secret)})
            logger.info("Upgraded legacy %s hash for identity %s", _FIELD_NAMES[field], identity_id)
        return matched
