"""
auth/models.py -- Domain dataclasses for identities and credentials.

Pattern: Data class (pure data container, zero logic). Stores, the credential
manager and routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class IdentityStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    deleted = "deleted"


class PasscodeUsage(str, Enum):
    reset = "reset"
    verify = "verify"


# Credential field names as stored. Also the values reported in
# CredentialChange.fields.
PASSWORD_FIELD = "password_hash"
PASSCODE_FIELD = "passcode_hash"


@dataclass
class Identity:
    """An account identity as the store sees it, minus credential hashes.

    email is the contact point used for passcode delivery. Several identities
    may share one email address; slug is unique when set.
    """

    id: str
    email: str
    label: str = ""
    slug: str | None = None
    role: str = "user"  # "user" or "admin"
    status: IdentityStatus = IdentityStatus.active
    email_verified: bool = False
    created_at: str | None = None


@dataclass
class CredentialRecord:
    """The credential fields of one identity, fetched for verification.

    Fields not requested from the store are left as None.
    """

    identity_id: str
    status: IdentityStatus
    password_hash: str | None = None
    passcode_hash: str | None = None


@dataclass(frozen=True)
class IdentityCandidate:
    """Transient resolution result; never persisted."""

    identity_id: str
    label: str


@dataclass(frozen=True)
class CredentialChangeRequest:
    """Inputs to CredentialManager.set_credentials.

    old_password / old_passcode, when given, must verify before anything is
    written. new_password, when given, replaces the stored password.
    """

    old_password: str | None = None
    old_passcode: str | None = None
    new_password: str | None = None


@dataclass(frozen=True)
class CredentialChange:
    """Which credential fields a set_credentials call rewrote. Never carries plaintext."""

    identity_id: str
    fields: frozenset[str] = frozenset()


# ---------------------------------------------------------------------------
# Login outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Authenticated:
    identity_id: str


@dataclass(frozen=True)
class Ambiguous:
    """More than one identity sharing the contact point matched the password.

    The login is not completed; the caller re-submits with an explicit id.
    """

    contact_point: str
    candidates: dict[str, str] = field(default_factory=dict)  # identity_id -> label


LoginOutcome = Union[Authenticated, Ambiguous]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

PASSCODE_SENT_EVENT = "authn.Identity.passcodeSent"


@dataclass(frozen=True)
class PasscodeSent:
    """Payload of the passcode-sent event consumed by the delivery collaborator."""

    usage: PasscodeUsage
    contact_point: str
    passcodes: tuple[tuple[str, str], ...] = ()  # (identity_id, plaintext passcode)
