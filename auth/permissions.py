"""
auth/permissions.py -- Authorization checks for credential changes.

check_permission(actor, permission, resource) raises PermissionDeniedError
when actor may not perform permission on resource, and returns None otherwise.

Default policy (IdentityAuthorizer):
  actor is None          -> the system itself; always allowed
  actor.role == "admin"  -> allowed on any identity
  actor.id == resource   -> an identity may edit its own credentials
  anything else          -> denied

Inactive actors are denied regardless of role.
"""

from __future__ import annotations

import logging

from auth.errors import PermissionDeniedError
from auth.models import Identity, IdentityStatus

logger = logging.getLogger("authn.permissions")

IDENTITY_EDIT = "IDENTITY_EDIT"


class IdentityAuthorizer:
    def check_permission(self, actor: Identity | None, permission: str, resource: str) -> None:
        if actor is None:
            return
        if actor.status != IdentityStatus.active:
            logger.warning("Permission %s denied: actor %s is not active", permission, actor.id)
            raise PermissionDeniedError(permission=permission)
        if actor.role == "admin" or actor.id == resource:
            return
        logger.warning("Permission %s denied: actor %s on %s", permission, actor.id, resource)
        raise PermissionDeniedError(permission=permission)
