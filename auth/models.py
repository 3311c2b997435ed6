"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost zero logic). Stores, the
service and the gate do the work; these types only fix the shape.

Account carries the password hash and never leaves the auth layer as-is.
Anything that is serialized outward -- responses, the owner embedded in a
listing -- is an AccountView, which has no password field at all.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from core.lifecycle import ACTIVE, Lifecycle


class Role(str, Enum):
    user = "user"
    admin = "admin"


def is_privileged(role: Role) -> bool:
    """Return True if the role may act on resources it does not own.

    Every Role member is listed. Adding a role without deciding its answer
    here fails loudly instead of silently inheriting a default.
    """
    if role is Role.admin:
        return True
    if role is Role.user:
        return False
    raise ValueError(f"Unhandled role: {role!r}")


@dataclass
class Account:
    """A marketplace account.

    email is stored lower-cased, which is what makes the UNIQUE index
    case-insensitive. username is optional; None (never "") means unset.

    id is None before the record is written to the database.
    """

    email: str
    password_hash: str
    first_name: str
    last_name: str
    role: Role = Role.user
    id: Optional[int] = None
    username: Optional[str] = None
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pin_code: str = ""
    is_active: bool = True
    is_verified: bool = False
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""
    lifecycle: Lifecycle = field(default=ACTIVE)

    def view(self) -> AccountView:
        return AccountView(
            id=self.id,
            email=self.email,
            username=self.username,
            first_name=self.first_name,
            last_name=self.last_name,
            phone=self.phone,
            address=self.address,
            city=self.city,
            state=self.state,
            pin_code=self.pin_code,
            role=self.role,
            is_active=self.is_active,
            is_verified=self.is_verified,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class AccountView:
    """Outward projection of an Account. Has no password field by construction."""

    id: int
    email: str
    username: Optional[str]
    first_name: str
    last_name: str
    phone: str
    address: str
    city: str
    state: str
    pin_code: str
    role: Role
    is_active: bool
    is_verified: bool
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class Registration:
    email: str
    password: str
    first_name: str
    last_name: str
    username: Optional[str] = None
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pin_code: str = ""


# Fields a user may change about themselves. email, username, role and the
# password hash are deliberately absent.
PROFILE_FIELDS = ("first_name", "last_name", "phone", "address", "city", "state", "pin_code")


@dataclass(frozen=True)
class ProfilePatch:
    """Partial profile update. None means "not supplied"; "" is a real value."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pin_code: Optional[str] = None

    def changes(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in PROFILE_FIELDS if getattr(self, name) is not None}


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a bearer token. Timestamps are epoch seconds."""

    subject_id: int
    email: str
    role: Role
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class RequestIdentity:
    """Who is calling, for the lifetime of one request.

    Built by the authentication stage of the gate from verified TokenClaims
    and attached to request.state. Never shared between requests.
    """

    subject_id: int
    email: str
    role: Role

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> RequestIdentity:
        return cls(subject_id=claims.subject_id, email=claims.email, role=claims.role)
