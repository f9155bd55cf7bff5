"""
auth/resolver.py -- Map a user-supplied identifier to candidate identity ids.

An identifier is one of:
  - an email address (contains "@") -> every ACTIVE identity using it as a
    contact point; several identities may share one address;
  - an identity id or slug           -> at most one identity.

Order of the returned ids is not significant.
"""

from __future__ import annotations

import logging

from auth.errors import NotFoundError
from auth.store import IdentityStore

logger = logging.getLogger("authn.resolver")


class IdentifierResolver:
    def __init__(self, store: IdentityStore) -> None:
        self.store = store

    def resolve_identity_slug(self, name: str, error_if_missing: bool = False) -> str | None:
        """Return the id of the identity whose id or slug is name.

        Returns None when nothing matches, or raises NotFoundError if
        error_if_missing is set.
        """
        identity_id = self.store.lookup_by_id_or_slug(name)
        if identity_id is None and error_if_missing:
            raise NotFoundError("Identity not found.", identifier=name)
        return identity_id

    def resolve_email(self, email: str) -> list[str]:
        """Return the ids of all active identities with this email address."""
        return self.store.lookup_by_email(email, active_only=True)

    def resolve_identifier(self, identifier: str, error_if_missing: bool = False) -> list[str]:
        """Return the candidate identity ids for an id, slug or email address.

        An empty list is a normal result unless error_if_missing is set, in
        which case NotFoundError is raised instead.
        """
        identifier = (identifier or "").strip()
        if "@" in identifier:
            ids = self.resolve_email(identifier)
        else:
            identity_id = self.resolve_identity_slug(identifier) if identifier else None
            ids = [identity_id] if identity_id is not None else []
        logger.debug("Identifier resolved to %d candidate(s)", len(ids))
        if not ids and error_if_missing:
            raise NotFoundError("Identity not found.", identifier=identifier)
        return ids
