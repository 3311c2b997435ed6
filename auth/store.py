"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper (same as catalog/store.py).
AccountStore is the repository; _row_to_account is the mapper.
Route, gate and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email is lower-cased before every write and lookup, so the UNIQUE index on
  email is effectively case-insensitive on every backend.

  username is UNIQUE but nullable. Both SQLite and PostgreSQL treat NULLs as
  distinct in UNIQUE constraints, which is exactly what "optional but unique"
  needs.

  Accounts are never deleted here. Deactivation flips is_active; the
  deleted_at column exists for the shared lifecycle type and is only ever
  filtered on.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Integer, String, Table, Text, func, select

from auth.models import PROFILE_FIELDS, Account, Role
from core.db import Database, metadata
from core.lifecycle import from_column

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(100), unique=True),  # NULL = not chosen
    Column("password_hash", Text, nullable=False),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("phone", String(30), nullable=False, server_default=""),
    Column("address", Text, nullable=False, server_default=""),
    Column("city", String(100), nullable=False, server_default=""),
    Column("state", String(100), nullable=False, server_default=""),
    Column("pin_code", String(20), nullable=False, server_default=""),
    Column("role", String(20), nullable=False, server_default=Role.user.value),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("is_verified", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32)),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore(Database("sqlite:///:memory:"))
        account_id = store.create(Account(email="a@x.com", password_hash=..., first_name="A", last_name="B"))
        account = store.get_by_email("A@x.com")
    """

    # Columns update_account() may touch. Validated before any SQL is built so
    # a caller cannot smuggle email/username/password_hash through **fields.
    _ADMIN_FIELDS: frozenset = frozenset({"role", "is_active", "is_verified"})

    def __init__(self, db: Database) -> None:
        self.db = db
        db.create_schema()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email or username already
        exists. The service turns that into Conflict; it is the only reliable
        guard against two registrations racing on the same email.
        """
        now = _now_iso()
        with self.db.engine.connect() as conn:
            result = conn.execute(
                users.insert().values(
                    email=normalize_email(account.email),
                    username=account.username or None,
                    password_hash=account.password_hash,
                    first_name=account.first_name,
                    last_name=account.last_name,
                    phone=account.phone,
                    address=account.address,
                    city=account.city,
                    state=account.state,
                    pin_code=account.pin_code,
                    role=Role(account.role).value,
                    is_active=account.is_active,
                    is_verified=account.is_verified,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, account_id: int) -> Account | None:
        """Look up a live (not soft-deleted) account by primary key."""
        with self.db.engine.connect() as conn:
            row = conn.execute(
                users.select().where(users.c.id == account_id, users.c.deleted_at.is_(None))
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Look up a live account by email, case-insensitively. Returns None if not found."""
        with self.db.engine.connect() as conn:
            row = conn.execute(
                users.select().where(users.c.email == normalize_email(email), users.c.deleted_at.is_(None))
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self) -> list[Account]:
        """Return all live accounts ordered by id. Admin-only operation."""
        with self.db.engine.connect() as conn:
            rows = conn.execute(users.select().where(users.c.deleted_at.is_(None)).order_by(users.c.id)).fetchall()
        return [_row_to_account(r) for r in rows]

    def update_profile(self, account_id: int, changes: dict[str, str]) -> bool:
        """Apply a partial profile update. Returns True if a row was updated.

        Only PROFILE_FIELDS are accepted; anything else raises ValueError
        rather than being silently ignored.
        """
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Not a profile field: {sorted(unknown)!r}")
        if not changes:
            return self.get_by_id(account_id) is not None
        with self.db.engine.connect() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.id == account_id, users.c.deleted_at.is_(None))
                .values(**changes, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def update_password_hash(self, account_id: int, password_hash: str) -> bool:
        with self.db.engine.connect() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.id == account_id, users.c.deleted_at.is_(None))
                .values(password_hash=password_hash, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def update_account(self, account_id: int, **fields) -> bool:
        """Update administrative flags (role, is_active, is_verified).

        Returns True if a row was updated, False if account_id was not found.
        """
        unknown = set(fields) - self._ADMIN_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {sorted(unknown)!r}")
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        with self.db.engine.connect() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.id == account_id, users.c.deleted_at.is_(None))
                .values(**fields, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def count_active_admins(self) -> int:
        """Return the number of active admin accounts.

        Used by the admin routes to refuse deactivating or demoting the last
        admin.
        """
        with self.db.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(users)
                .where(
                    users.c.role == Role.admin.value,
                    users.c.is_active.is_(True),
                    users.c.deleted_at.is_(None),
                )
            ).scalar()
        return result or 0

    def count_accounts(self, active_only: bool = False) -> int:
        query = select(func.count()).select_from(users).where(users.c.deleted_at.is_(None))
        if active_only:
            query = query.where(users.c.is_active.is_(True))
        with self.db.engine.connect() as conn:
            return conn.execute(query).scalar() or 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        username=row.username,
        password_hash=row.password_hash,
        first_name=row.first_name,
        last_name=row.last_name,
        phone=row.phone or "",
        address=row.address or "",
        city=row.city or "",
        state=row.state or "",
        pin_code=row.pin_code or "",
        role=Role(row.role),
        is_active=bool(row.is_active),
        is_verified=bool(row.is_verified),
        created_at=row.created_at,
        updated_at=row.updated_at,
        lifecycle=from_column(row.deleted_at),
    )
