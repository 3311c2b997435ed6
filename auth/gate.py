"""
auth/gate.py -- Authorization Gate: an explicit pipeline of named stages.

A stage is a plain function `stage(request, ctx) -> ctx`. It either returns a
new GateContext or raises Unauthorized / Forbidden, which halts the pipeline
before the route handler runs. pipeline(*stages) folds the stages into one
FastAPI dependency:

    @router.get("/user/profile")
    def profile(identity: RequestIdentity = Depends(authenticated)): ...

    @router.get("/admin/users")
    def users(identity: RequestIdentity = Depends(admin_only)): ...

Stages:
  authenticate       Authorization: Bearer <token> -> ctx.identity
  require_role(...)  ctx.identity.role must be one of the given roles

The gate never touches the database. A token stays valid until it expires
even if the account is later deactivated; routes that read the account
(profile, password) see the deactivation and answer 404.

Ownership ("is this your listing?") is not a gate concern -- it needs the
resource, so it lives in catalog/service.py.

Layer rule: no imports from api/ or catalog/. fastapi.Request is imported for
the dependency signature only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Optional

from fastapi import Request

from auth.models import RequestIdentity, Role
from auth.tokens import InvalidTokenError, TokenCodec
from core.errors import Forbidden, Unauthorized

logger = logging.getLogger("bechdo.auth")


@dataclass(frozen=True)
class GateContext:
    identity: Optional[RequestIdentity] = None


Stage = Callable[[Request, GateContext], GateContext]


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def authenticate(request: Request, ctx: GateContext) -> GateContext:
    """Verify the bearer token and attach the caller's identity."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Authorization header required")

    codec: TokenCodec = request.app.state.token_codec
    try:
        claims = codec.verify(token)
    except InvalidTokenError as exc:
        logger.info("Rejected bearer token (%s) on %s %s", exc.reason, request.method, request.url.path)
        raise Unauthorized("Invalid or expired token") from exc

    return replace(ctx, identity=RequestIdentity.from_claims(claims))


def require_role(*roles: Role) -> Stage:
    """Build a stage that admits only callers holding one of `roles`."""
    allowed = frozenset(roles)
    only_admin = allowed == {Role.admin}

    def check_role(request: Request, ctx: GateContext) -> GateContext:
        if ctx.identity is None:
            raise Unauthorized("Authorization header required")
        if ctx.identity.role not in allowed:
            raise Forbidden("Admin access required" if only_admin else None)
        return ctx

    check_role.__name__ = "require_role(" + ",".join(sorted(r.value for r in allowed)) + ")"
    return check_role


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def pipeline(*stages: Stage) -> Callable[[Request], RequestIdentity]:
    """Compose stages into a FastAPI dependency returning the RequestIdentity.

    The identity is also stored on request.state for the lifetime of the
    request (the request log reads it; nothing else should).
    """

    def gate(request: Request) -> RequestIdentity:
        ctx = GateContext()
        for stage in stages:
            ctx = stage(request, ctx)
        if ctx.identity is None:
            raise Unauthorized("Authorization header required")
        request.state.identity = ctx.identity
        return ctx.identity

    return gate


authenticated = pipeline(authenticate)
admin_only = pipeline(authenticate, require_role(Role.admin))
