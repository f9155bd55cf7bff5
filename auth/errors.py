"""
auth/errors.py -- Error taxonomy for the credential subsystem.

Every failure the core raises is a CredentialError subclass carrying:
  code        -- stable machine-readable identifier (API error envelope)
  http_status -- status the HTTP layer maps the error to
  public      -- whether the message may be shown to an unauthenticated caller

Verification mismatches are NOT errors. verify_* functions return False;
only malformed input or state raises.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class CredentialError(Exception):
    """Base class for all credential subsystem failures."""

    code = "credential_error"
    http_status = 400
    public = False
    default_message = "The credential operation failed."

    def __init__(self, message: str | None = None, **details) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InvalidLoginError(CredentialError):
    """Generic login failure. Never says whether the identifier or the password was wrong."""

    code = "invalid_login"
    public = True
    default_message = "The identifier and password combination is incorrect."


class InvalidPasswordError(CredentialError):
    code = "invalid_password"
    default_message = "Could not update identity credentials; invalid password."


class InvalidPasscodeError(CredentialError):
    code = "invalid_passcode"
    default_message = "Could not update identity credentials; invalid passcode."


class MalformedHashError(CredentialError):
    """A stored hash has an unknown tag or a corrupt body. Data integrity fault."""

    code = "malformed_hash"
    http_status = 500
    default_message = "Could not verify password hash. Invalid input."


class NotFoundError(CredentialError):
    code = "not_found"
    http_status = 404
    default_message = "Identity not found."


class PermissionDeniedError(CredentialError):
    code = "permission_denied"
    http_status = 403
    default_message = "Permission denied."


class ContactPointMismatchError(CredentialError):
    code = "contact_point_mismatch"
    default_message = (
        "Could not send identity passcodes. The identities do not all have the same contact point."
    )


class HashingError(CredentialError):
    """The hashing backend failed. Fatal; callers do not retry."""

    code = "hashing_failure"
    http_status = 500
    default_message = "Could not compute password hash."


class OperationTimeoutError(CredentialError):
    code = "operation_timeout"
    http_status = 504
    default_message = "The credential operation timed out before completing."


class PasswordResetFailedError(CredentialError):
    code = "password_reset_failed"
    http_status = 403
    public = True
    default_message = "The password reset failed for the given identity."
