"""
auth/service.py -- Authentication Service: register, login, profile, password.

AuthService is the only code that turns plaintext passwords into hashes or
compares them. Routes hand it validated request data; it hands back
AccountView objects (never Account) together with freshly minted tokens.

Security:
  Login never reveals which half of the credential pair was wrong. Unknown
  email, inactive account and wrong password all raise the same
  Unauthorized("Invalid email or password"), and all three paths spend one
  bcrypt verification so response time does not leak account existence.

  Registration checks for an existing email first (friendly message), but
  the UNIQUE constraints in auth/store.py are the real guard: a concurrent
  registration that slips past the check surfaces as IntegrityError and is
  mapped to the same Conflict kind.

  Admin updates refuse self-deactivation and refuse to deactivate or demote
  the last active admin, so there is always a recovery path that does not
  need direct database access.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.models import (
    Account,
    AccountView,
    ProfilePatch,
    Registration,
    RequestIdentity,
    Role,
    is_privileged,
)
from auth.store import AccountStore
from auth.tokens import TokenCodec, burn_password_check, hash_password, verify_password
from core.errors import Conflict, NotFound, Unauthorized, ValidationError

logger = logging.getLogger("bechdo.auth")

_BAD_CREDENTIALS = "Invalid email or password"


class AuthService:
    """Account registration, login and self-service operations.

    Usage:
        service = AuthService(AccountStore(db), TokenCodec(key, 3600))
        view, token = service.register(Registration(...))
        view, token = service.login("a@x.com", "secret1")
    """

    def __init__(self, accounts: AccountStore, codec: TokenCodec) -> None:
        self.accounts = accounts
        self.codec = codec

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def register(self, data: Registration) -> tuple[AccountView, str]:
        """Create a user account and return it with a token for immediate use."""
        if self.accounts.get_by_email(data.email) is not None:
            raise Conflict("User already exists with this email")

        account = Account(
            email=data.email,
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            username=data.username or None,
            phone=data.phone,
            address=data.address,
            city=data.city,
            state=data.state,
            pin_code=data.pin_code,
            role=Role.user,
            is_active=True,
            is_verified=False,
        )
        try:
            account_id = self.accounts.create(account)
        except IntegrityError as exc:
            raise Conflict("A user with this email or username already exists.") from exc

        created = self._require_account(account_id)
        logger.info("Account registered: id=%d", account_id)
        return created.view(), self._issue(created)

    def login(self, email: str, password: str) -> tuple[AccountView, str]:
        """Verify credentials and mint a new token. Earlier tokens stay valid."""
        account = self.accounts.get_by_email(email)
        if account is None:
            burn_password_check(password)
            logger.warning("Login failed: unknown email")
            raise Unauthorized(_BAD_CREDENTIALS)

        password_ok = verify_password(password, account.password_hash)
        if not account.is_active:
            logger.warning("Login failed: inactive account id=%d", account.id)
            raise Unauthorized(_BAD_CREDENTIALS)
        if not password_ok:
            logger.warning("Login failed: bad password for id=%d", account.id)
            raise Unauthorized(_BAD_CREDENTIALS)

        logger.info("Login succeeded: id=%d", account.id)
        return account.view(), self._issue(account)

    # ------------------------------------------------------------------
    # Authenticated self-service
    # ------------------------------------------------------------------

    def get_profile(self, identity: RequestIdentity) -> AccountView:
        return self._require_live(identity.subject_id).view()

    def update_profile(self, identity: RequestIdentity, patch: ProfilePatch) -> AccountView:
        """Apply only the supplied profile fields; everything else is left alone."""
        self._require_live(identity.subject_id)
        changes = patch.changes()
        self.accounts.update_profile(identity.subject_id, changes)
        if changes:
            logger.info("Profile updated: id=%d fields=%s", identity.subject_id, sorted(changes))
        return self._require_account(identity.subject_id).view()

    def change_password(self, identity: RequestIdentity, current: str, new: str) -> None:
        """Replace the password after re-verifying the current one.

        Outstanding tokens are not revoked; they expire on their own schedule.
        """
        account = self._require_live(identity.subject_id)
        if not verify_password(current, account.password_hash):
            logger.warning("Password change rejected: wrong current password for id=%d", account.id)
            raise Unauthorized("Current password is incorrect")
        self.accounts.update_password_hash(account.id, hash_password(new))
        logger.info("Password changed: id=%d", account.id)

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def list_accounts(self) -> list[AccountView]:
        return [a.view() for a in self.accounts.list_accounts()]

    def admin_update(
        self,
        actor: RequestIdentity,
        account_id: int,
        role: Role | None = None,
        is_active: bool | None = None,
        is_verified: bool | None = None,
    ) -> AccountView:
        """Change another account's role or flags, with lock-out guards."""
        target = self.accounts.get_by_id(account_id)
        if target is None:
            raise NotFound("User not found")

        updates: dict = {}
        losing_admin = False
        if role is not None:
            if is_privileged(target.role) and not is_privileged(role):
                losing_admin = True
            updates["role"] = role
        if is_active is not None:
            if not is_active and target.id == actor.subject_id:
                raise ValidationError("You cannot deactivate your own account.")
            if not is_active and is_privileged(target.role):
                losing_admin = True
            updates["is_active"] = is_active
        if is_verified is not None:
            updates["is_verified"] = is_verified

        if not updates:
            raise ValidationError("No fields to update.")
        if losing_admin and target.is_active and self.accounts.count_active_admins() <= 1:
            raise ValidationError("Cannot deactivate or demote the last active admin account.")

        self.accounts.update_account(account_id, **updates)
        logger.info("Account id=%d updated by admin id=%d: %s", account_id, actor.subject_id, sorted(updates))
        return self._require_account(account_id).view()

    def ensure_admin(self, email: str, password: str, first_name: str, last_name: str) -> AccountView:
        """Create an admin account, or promote and reactivate an existing one.

        Used by the operator CLI. An existing account keeps its password.
        """
        existing = self.accounts.get_by_email(email)
        if existing is not None:
            self.accounts.update_account(existing.id, role=Role.admin, is_active=True)
            logger.info("Existing account promoted to admin: id=%d", existing.id)
            return self._require_account(existing.id).view()

        account_id = self.accounts.create(
            Account(
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                role=Role.admin,
                is_verified=True,
            )
        )
        logger.info("Admin account created: id=%d", account_id)
        return self._require_account(account_id).view()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue(self, account: Account) -> str:
        return self.codec.issue(account.id, account.email, account.role)

    def _require_account(self, account_id: int) -> Account:
        account = self.accounts.get_by_id(account_id)
        if account is None:
            raise NotFound("User not found")
        return account

    def _require_live(self, account_id: int) -> Account:
        account = self._require_account(account_id)
        if not account.is_active:
            raise NotFound("User not found")
        return account
