"""
API request and response models for the Bech-Do REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two with the to_*/from_* helpers below.

Partial updates (ProfileUpdate, ListingUpdate, AccountAdminPatch):
  Presence is explicit. A field the client did not send is absent from
  model_fields_set and is left unchanged; a field sent as JSON null is
  rejected with 400 rather than being guessed at. An empty string is a value.
  Unknown keys are rejected (extra="forbid"), so email, username, role and
  password cannot be slipped into a profile update.

Separation of concerns: auth/ + catalog/ models = domain truth;
api/ models = API contract.
"""

from typing import Annotated, Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from auth.models import AccountView, ProfilePatch, Registration, Role
from catalog.models import Category, CategoryStat, ListingPatch, ListingStatus, ListingView, NewListing, Page

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace, a dot in the domain. Deliverability
# is not our problem; uniqueness is, and the store lower-cases before comparing.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt ignores everything past 72 bytes; refuse rather than truncate.
PASSWORD_MIN = 6
PASSWORD_MAX = 72

_Email = Annotated[str, Field(pattern=EMAIL_PATTERN, max_length=255)]
_Password = Annotated[str, Field(min_length=PASSWORD_MIN, max_length=PASSWORD_MAX)]
_ImageUri = Annotated[str, Field(min_length=1, max_length=2048)]


def _reject_null(value: Any) -> Any:
    if value is None:
        raise ValueError("must not be null; omit the field to leave it unchanged")
    return value


# ---------------------------------------------------------------------------
# Auth requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    firstName/lastName are accepted as aliases of first_name/last_name.
    An empty username is treated as "no username".
    Passwords are taken byte-for-byte; every other string is stripped.
    """

    email: _Email
    password: _Password
    first_name: str = Field(min_length=1, max_length=100, validation_alias=AliasChoices("first_name", "firstName"))
    last_name: str = Field(min_length=1, max_length=100, validation_alias=AliasChoices("last_name", "lastName"))
    username: Optional[str] = Field(default=None, max_length=100)
    phone: str = Field(default="", max_length=30)
    address: str = Field(default="", max_length=500)
    city: str = Field(default="", max_length=100)
    state: str = Field(default="", max_length=100)
    pin_code: str = Field(default="", max_length=20)

    @field_validator(
        "email", "first_name", "last_name", "username", "phone", "address", "city", "state", "pin_code", mode="before"
    )
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("username")
    @classmethod
    def blank_username_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def to_registration(self) -> Registration:
        return Registration(
            email=self.email,
            password=self.password,
            first_name=self.first_name,
            last_name=self.last_name,
            username=self.username,
            phone=self.phone,
            address=self.address,
            city=self.city,
            state=self.state,
            pin_code=self.pin_code,
        )


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/v1/user/profile. Only supplied fields change."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    first_name: Optional[str] = Field(
        default=None, min_length=1, max_length=100, validation_alias=AliasChoices("first_name", "firstName")
    )
    last_name: Optional[str] = Field(
        default=None, min_length=1, max_length=100, validation_alias=AliasChoices("last_name", "lastName")
    )
    phone: Optional[str] = Field(default=None, max_length=30)
    address: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    pin_code: Optional[str] = Field(default=None, max_length=20)

    @field_validator("*", mode="before")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        return _reject_null(v)

    def to_patch(self) -> ProfilePatch:
        return ProfilePatch(**{name: getattr(self, name) for name in self.model_fields_set})


class ChangePasswordRequest(BaseModel):
    """Request body for PUT /api/v1/user/change-password."""

    current_password: str = Field(min_length=1, max_length=PASSWORD_MAX)
    new_password: _Password


# ---------------------------------------------------------------------------
# Account responses
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """An account as seen from outside. There is no password field to leak."""

    model_config = ConfigDict(frozen=True)

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

    @classmethod
    def from_view(cls, view: AccountView) -> "AccountResponse":
        return cls(
            id=view.id,
            email=view.email,
            username=view.username,
            first_name=view.first_name,
            last_name=view.last_name,
            phone=view.phone,
            address=view.address,
            city=view.city,
            state=view.state,
            pin_code=view.pin_code,
            role=view.role,
            is_active=view.is_active,
            is_verified=view.is_verified,
            created_at=view.created_at,
            updated_at=view.updated_at,
        )


class AuthResponse(BaseModel):
    """Returned by register (201) and login (200)."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int
    user: AccountResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Listing requests
# ---------------------------------------------------------------------------


class ListingCreate(BaseModel):
    """Request body for POST /api/v1/products."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=5000)
    price: float = Field(ge=0, allow_inf_nan=False)
    images: list[_ImageUri] = Field(min_length=1, max_length=20)
    condition: str = Field(min_length=1, max_length=50)
    location: str = Field(min_length=1, max_length=200)
    is_negotiable: bool = False
    category_id: int = Field(gt=0)

    def to_new_listing(self) -> NewListing:
        return NewListing(
            category_id=self.category_id,
            title=self.title,
            description=self.description,
            price=self.price,
            images=tuple(self.images),
            condition=self.condition,
            location=self.location,
            is_negotiable=self.is_negotiable,
        )


class ListingUpdate(BaseModel):
    """Request body for PUT /api/v1/products/{id}. Only supplied fields change."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    price: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    images: Optional[list[_ImageUri]] = Field(default=None, min_length=1, max_length=20)
    condition: Optional[str] = Field(default=None, min_length=1, max_length=50)
    location: Optional[str] = Field(default=None, max_length=200)
    is_negotiable: Optional[bool] = None
    category_id: Optional[int] = Field(default=None, gt=0)
    status: Optional[ListingStatus] = None

    @field_validator("*", mode="before")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        return _reject_null(v)

    def to_patch(self) -> ListingPatch:
        values = {name: getattr(self, name) for name in self.model_fields_set}
        if "images" in values:
            values["images"] = tuple(values["images"])
        return ListingPatch(**values)


# ---------------------------------------------------------------------------
# Listing responses
# ---------------------------------------------------------------------------


class CategoryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    slug: str
    description: str
    icon: str
    is_active: bool

    @classmethod
    def from_category(cls, category: Category) -> "CategoryResponse":
        return cls(
            id=category.id,
            name=category.name,
            slug=category.slug,
            description=category.description,
            icon=category.icon,
            is_active=category.is_active,
        )


class ListingResponse(BaseModel):
    """A listing with its owner and category expanded."""

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: str
    price: float
    images: list[str]
    condition: str
    location: str
    is_negotiable: bool
    status: ListingStatus
    view_count: int
    created_at: str
    updated_at: str
    sold_at: Optional[str] = None
    owner: AccountResponse
    category: CategoryResponse

    @classmethod
    def from_view(cls, view: ListingView) -> "ListingResponse":
        return cls(
            id=view.id,
            title=view.title,
            description=view.description,
            price=view.price,
            images=list(view.images),
            condition=view.condition,
            location=view.location,
            is_negotiable=view.is_negotiable,
            status=view.status,
            view_count=view.view_count,
            created_at=view.created_at,
            updated_at=view.updated_at,
            sold_at=view.sold_at,
            owner=AccountResponse.from_view(view.owner),
            category=CategoryResponse.from_category(view.category),
        )


class PaginationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    page_size: int
    total_count: int
    total_pages: int
    has_next: bool
    has_prev: bool


class ListingPageResponse(BaseModel):
    """Envelope for every paginated listing endpoint."""

    model_config = ConfigDict(frozen=True)

    items: list[ListingResponse]
    pagination: PaginationResponse

    @classmethod
    def from_page(cls, page: Page) -> "ListingPageResponse":
        p = page.pagination
        return cls(
            items=[ListingResponse.from_view(v) for v in page.items],
            pagination=PaginationResponse(
                page=p.page,
                page_size=p.page_size,
                total_count=p.total_count,
                total_pages=p.total_pages,
                has_next=p.has_next,
                has_prev=p.has_prev,
            ),
        )


class CategoryListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[CategoryResponse]


class CategoryStatRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_id: int
    category_name: str
    icon: str
    product_count: int

    @classmethod
    def from_stat(cls, stat: CategoryStat) -> "CategoryStatRow":
        return cls(
            category_id=stat.category.id,
            category_name=stat.category.name,
            icon=stat.category.icon,
            product_count=stat.product_count,
        )


class CategoryStatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[CategoryStatRow]


# ---------------------------------------------------------------------------
# Admin models
# ---------------------------------------------------------------------------


class AccountAdminPatch(BaseModel):
    """Request body for PATCH /api/v1/admin/users/{id}."""

    model_config = ConfigDict(extra="forbid")

    role: Optional[Role] = None
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None

    @field_validator("*", mode="before")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        return _reject_null(v)


class AccountListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[AccountResponse]


class DashboardResponse(BaseModel):
    """Response for GET /api/v1/admin/dashboard."""

    model_config = ConfigDict(frozen=True)

    total_users: int
    active_users: int
    total_products: int
    products_by_status: dict[str, int]
    total_categories: int


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Uniform error envelope returned by every exception handler."""

    model_config = ConfigDict(frozen=True)

    error: str


class HealthStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: int = 0
    products: int = 0
    categories: int = 0


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "connected"
    stats: HealthStats = Field(default_factory=HealthStats)
