"""
Authorization Guard

FastAPI dependencies applied as pre-conditions to protected routes:

    get_current_identity  - valid bearer token required (401/403)
    require_admin         - authenticated AND stored role is exactly "admin"
    ensure_owner          - authenticated email equals the email in the request

They compose by short-circuiting AND: require_admin depends on
get_current_identity, so authentication always runs first, and no data is
read for the operation until every guard has passed.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bistro.core.exceptions import Forbidden
from bistro.core.security import TokenClaims, TokenService
from bistro.database import get_db
from bistro.models import User, UserRole
from bistro.services.payment import BasePaymentService

logger = logging.getLogger(__name__)


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_payment_service(request: Request) -> BasePaymentService:
    return request.app.state.payment_service


async def get_current_identity(
    authorization: Optional[str] = Header(None),
    token_service: TokenService = Depends(get_token_service),
) -> TokenClaims:
    """Authentication check: decode the bearer token into identity claims."""
    return token_service.verify_header(authorization)


def is_admin_role(role) -> bool:
    """Only the exact admin role is privileged."""
    return role == UserRole.ADMIN or role == UserRole.ADMIN.value


async def require_admin(
    identity: TokenClaims = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> TokenClaims:
    """
    Admin check against the identity store.

    The role claim inside the token is ignored; the stored role decides.
    """
    result = await db.execute(select(User.role).where(User.email == identity.email))
    role = result.scalar_one_or_none()

    if not is_admin_role(role):
        logger.warning(f"Admin access denied for {identity.email} (role={getattr(role, 'value', role)})")
        raise Forbidden("Administrator role required")

    return identity


def ensure_owner(identity: TokenClaims, email: Optional[str]) -> None:
    """Ownership check: the token must belong to the identity named in the request."""
    if not email or identity.email.lower() != email.strip().lower():
        logger.warning(f"Ownership check failed: token={identity.email} requested={email}")
        raise Forbidden("Token does not belong to the requested identity")
