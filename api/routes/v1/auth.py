"""
api/routes/v1/auth.py -- Password login and passcode flows.

Routes:
  POST /api/v1/authn-password/login         -- identifier + password; identity id or ambiguity list
  POST /api/v1/authn-password/passcode      -- send a reset/verify passcode to the contact point
  POST /api/v1/authn-password/reset         -- identifier + passcode + new password
  POST /api/v1/authn-password/verify-email  -- identifier + passcode; marks the email verified

No session is issued here. A successful login returns the identity id; the
caller establishes whatever session it uses.

Every route is a plain `def`. FastAPI runs those in its worker thread pool,
which keeps bcrypt off the event loop.

Security:
  [H2] POST /login is rate-limited (LOGIN_RATE_LIMIT, default 10/minute per IP).
  [C1] Login failures are uniform: the same invalid_login error whether the
       identifier or the password was wrong.
  [M5] Cache-Control: no-store on login responses.
  Credential errors are rendered by the CredentialError handler in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AmbiguousLoginResponse,
    LoginRequest,
    LoginResponse,
    PasscodeRequest,
    PasswordResetRequest,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from auth.credentials import CredentialManager
from auth.dispatch import PasscodeDispatcher
from auth.errors import NotFoundError, PermissionDeniedError
from auth.models import Authenticated, PasscodeUsage
from core.config import get_settings

# Auth policy: every route below is public. Proof of identity is the password
# (login) or the passcode delivered to the contact point (reset, verify-email).
router = APIRouter()


@limiter.limit(lambda: get_settings().login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/authn-password/login")
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with an id, slug or email plus password.

    200 {"identity": id} when one identity matched.
    200 {"email": ..., "identities": {id: label}} when several identities sharing
        the email matched; re-submit with "id" set to the chosen identity.
    400 invalid_login otherwise.
    """
    manager: CredentialManager = request.app.state.credentials
    outcome = manager.login(body.identifier, body.password, identity_id=body.id)
    if isinstance(outcome, Authenticated):
        content = LoginResponse(identity=outcome.identity_id).model_dump()
    else:
        content = AmbiguousLoginResponse.from_outcome(outcome).model_dump()
    resp = JSONResponse(status_code=200, content=content)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/authn-password/passcode", status_code=204)
def send_passcode(
    request: Request,
    body: PasscodeRequest,
    usage: PasscodeUsage = Query(default=PasscodeUsage.reset),
) -> Response:
    """Send a fresh passcode to the contact point behind identifier.

    Every active identity matching the identifier gets a new passcode; they
    all travel in one message. 404 when the identifier is not registered.
    """
    dispatcher: PasscodeDispatcher = request.app.state.dispatcher
    dispatcher.send_passcodes_for(body.identifier, usage)
    return Response(status_code=204)


@router.post("/authn-password/reset", status_code=204)
def reset_password(request: Request, body: PasswordResetRequest) -> Response:
    """Set a new password using a passcode. 403 password_reset_failed on any mismatch."""
    manager: CredentialManager = request.app.state.credentials
    manager.reset_password(body.identifier, body.passcode, body.new_password)
    return Response(status_code=204)


@router.post("/authn-password/verify-email", response_model=VerifyEmailResponse)
def verify_email(request: Request, body: VerifyEmailRequest) -> VerifyEmailResponse:
    """Mark the email of the identity owning passcode as verified.

    Each identity behind the identifier is tried acting on itself; a wrong
    passcode is a normal {"verified": false} answer, not an error.
    """
    manager: CredentialManager = request.app.state.credentials
    for identity_id in manager.resolver.resolve_identifier(body.identifier):
        actor = manager.store.get_identity(identity_id)
        if actor is None:
            continue
        try:
            if manager.verify_email_with_passcode(actor, identity_id, body.passcode):
                return VerifyEmailResponse(verified=True)
        except (NotFoundError, PermissionDeniedError):
            continue
    return VerifyEmailResponse(verified=False)
