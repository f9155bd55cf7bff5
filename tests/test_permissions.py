"""Tests for auth/permissions.py -- IdentityAuthorizer default policy."""

import pytest

from auth.errors import PermissionDeniedError
from auth.models import Identity, IdentityStatus
from auth.permissions import IDENTITY_EDIT, IdentityAuthorizer

authorizer = IdentityAuthorizer()


class TestIdentityAuthorizer:
    def test_system_actor(self):
        assert authorizer.check_permission(None, IDENTITY_EDIT, "id-1") is None

    def test_self(self):
        authorizer.check_permission(Identity(id="id-1", email="a@example.com"), IDENTITY_EDIT, "id-1")

    def test_admin(self):
        admin = Identity(id="root", email="root@example.com", role="admin")
        authorizer.check_permission(admin, IDENTITY_EDIT, "id-1")

    def test_other_user(self):
        with pytest.raises(PermissionDeniedError) as exc_info:
            authorizer.check_permission(Identity(id="id-2", email="b@example.com"), IDENTITY_EDIT, "id-1")
        assert exc_info.value.details == {"permission": IDENTITY_EDIT}

    @pytest.mark.parametrize("status", [IdentityStatus.inactive, IdentityStatus.deleted])
    def test_inactive_admin(self, status):
        admin = Identity(id="root", email="root@example.com", role="admin", status=status)
        with pytest.raises(PermissionDeniedError):
            authorizer.check_permission(admin, IDENTITY_EDIT, "root")
