"""Unit tests for auth/service.py and auth/store.py.

Covers:
- register: hashes the password, returns a password-free view and a token
- register: duplicate email (any case) and duplicate username -> Conflict
- login: fresh token on success; one generic message for every failure
- login: correct password on an inactive account -> Unauthorized
- change_password / update_profile / get_profile
- admin_update guards: self-deactivation, last admin
"""

from __future__ import annotations

import dataclasses

import pytest

from auth.models import ProfilePatch, Registration, RequestIdentity, Role
from auth.service import AuthService
from auth.tokens import verify_password
from core.errors import Conflict, NotFound, Unauthorized, ValidationError


@pytest.fixture
def service(accounts, codec) -> AuthService:
    return AuthService(accounts, codec)


def _registration(email: str = "Buyer@Example.com", **overrides) -> Registration:
    fields = dict(email=email, password="hunter22", first_name="Bo", last_name="Buyer")
    fields.update(overrides)
    return Registration(**fields)


def _identity(view) -> RequestIdentity:
    return RequestIdentity(subject_id=view.id, email=view.email, role=view.role)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegister:
    def test_register_hashes_password_and_hides_it(self, service, accounts, codec):
        view, token = service.register(_registration())

        stored = accounts.get_by_id(view.id)
        assert stored.password_hash != "hunter22"
        assert verify_password("hunter22", stored.password_hash)
        field_names = {f.name for f in dataclasses.fields(view)}
        assert not any("password" in name for name in field_names)
        assert codec.verify(token).subject_id == view.id

    def test_register_defaults(self, service):
        view, _ = service.register(_registration())
        assert view.email == "buyer@example.com"
        assert view.role is Role.user
        assert view.is_active is True
        assert view.is_verified is False
        assert view.username is None

    def test_duplicate_email_is_case_insensitive(self, service):
        service.register(_registration("dup@example.com"))
        with pytest.raises(Conflict):
            service.register(_registration("DUP@example.com"))

    def test_duplicate_username_conflicts(self, service):
        service.register(_registration("one@example.com", username="trader"))
        with pytest.raises(Conflict):
            service.register(_registration("two@example.com", username="trader"))

    def test_accounts_without_username_do_not_collide(self, service):
        service.register(_registration("one@example.com"))
        view, _ = service.register(_registration("two@example.com"))
        assert view.username is None


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_login_issues_a_new_valid_token(self, service, codec):
        _, register_token = service.register(_registration())
        view, login_token = service.login("buyer@example.com", "hunter22")
        assert login_token != register_token
        assert codec.verify(login_token).subject_id == view.id
        # earlier tokens are not revoked
        assert codec.verify(register_token).subject_id == view.id

    def test_login_email_lookup_ignores_case(self, service):
        service.register(_registration())
        view, _ = service.login("BUYER@EXAMPLE.COM", "hunter22")
        assert view.email == "buyer@example.com"

    def test_wrong_password(self, service):
        service.register(_registration())
        with pytest.raises(Unauthorized) as exc_info:
            service.login("buyer@example.com", "nope-nope")
        assert exc_info.value.message == "Invalid email or password"

    def test_unknown_email(self, service):
        with pytest.raises(Unauthorized) as exc_info:
            service.login("ghost@example.com", "hunter22")
        assert exc_info.value.message == "Invalid email or password"

    def test_inactive_account_cannot_login_with_correct_password(self, service, accounts):
        view, _ = service.register(_registration())
        accounts.update_account(view.id, is_active=False)
        with pytest.raises(Unauthorized) as exc_info:
            service.login("buyer@example.com", "hunter22")
        assert exc_info.value.message == "Invalid email or password"


# ---------------------------------------------------------------------------
# Self-service
# ---------------------------------------------------------------------------


class TestSelfService:
    def test_change_password(self, service):
        view, _ = service.register(_registration())
        service.change_password(_identity(view), "hunter22", "new-secret")
        service.login("buyer@example.com", "new-secret")
        with pytest.raises(Unauthorized):
            service.login("buyer@example.com", "hunter22")

    def test_change_password_requires_current(self, service):
        view, _ = service.register(_registration())
        with pytest.raises(Unauthorized) as exc_info:
            service.change_password(_identity(view), "wrong", "new-secret")
        assert exc_info.value.message == "Current password is incorrect"

    def test_update_profile_is_partial(self, service):
        view, _ = service.register(_registration(city="Pune", phone="111"))
        updated = service.update_profile(_identity(view), ProfilePatch(city="Mumbai"))
        assert updated.city == "Mumbai"
        assert updated.phone == "111"
        assert updated.first_name == "Bo"

    def test_update_profile_empty_string_is_a_value(self, service):
        view, _ = service.register(_registration(phone="111"))
        updated = service.update_profile(_identity(view), ProfilePatch(phone=""))
        assert updated.phone == ""

    def test_profile_of_deactivated_account_is_not_found(self, service, accounts):
        view, _ = service.register(_registration())
        accounts.update_account(view.id, is_active=False)
        with pytest.raises(NotFound):
            service.get_profile(_identity(view))

    def test_store_rejects_non_profile_fields(self, accounts, service):
        view, _ = service.register(_registration())
        with pytest.raises(ValueError):
            accounts.update_profile(view.id, {"email": "evil@example.com"})


# ---------------------------------------------------------------------------
# Admin updates
# ---------------------------------------------------------------------------


class TestAdminUpdate:
    def test_promote_and_verify(self, service):
        admin = service.ensure_admin("root@example.com", "rootpass", "Ro", "Ot")
        user, _ = service.register(_registration())
        updated = service.admin_update(_identity(admin), user.id, role=Role.admin, is_verified=True)
        assert updated.role is Role.admin
        assert updated.is_verified is True

    def test_cannot_deactivate_self(self, service):
        admin = service.ensure_admin("root@example.com", "rootpass", "Ro", "Ot")
        with pytest.raises(ValidationError):
            service.admin_update(_identity(admin), admin.id, is_active=False)

    def test_cannot_demote_last_admin(self, service):
        admin = service.ensure_admin("root@example.com", "rootpass", "Ro", "Ot")
        with pytest.raises(ValidationError):
            service.admin_update(_identity(admin), admin.id, role=Role.user)

    def test_can_demote_when_another_admin_remains(self, service):
        first = service.ensure_admin("root@example.com", "rootpass", "Ro", "Ot")
        second = service.ensure_admin("second@example.com", "rootpass", "Se", "Cond")
        updated = service.admin_update(_identity(first), second.id, role=Role.user)
        assert updated.role is Role.user

    def test_empty_update_rejected(self, service):
        admin = service.ensure_admin("root@example.com", "rootpass", "Ro", "Ot")
        with pytest.raises(ValidationError):
            service.admin_update(_identity(admin), admin.id)

    def test_unknown_account(self, service):
        admin = service.ensure_admin("root@example.com", "rootpass", "Ro", "Ot")
        with pytest.raises(NotFound):
            service.admin_update(_identity(admin), 9999, is_verified=True)

    def test_ensure_admin_promotes_existing_account(self, service):
        user, _ = service.register(_registration())
        promoted = service.ensure_admin("buyer@example.com", "ignored", "X", "Y")
        assert promoted.id == user.id
        assert promoted.role is Role.admin
        # password unchanged
        service.login("buyer@example.com", "hunter22")
