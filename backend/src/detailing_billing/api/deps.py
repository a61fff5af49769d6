"""FastAPI dependencies for database sessions, the Stripe gateway and authentication."""
from typing import AsyncGenerator, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from detailing_billing.adapters.stripe_adapter import PaymentGateway
from detailing_billing.auth.jwt import JWTAuth
from detailing_billing.models.business import Business
from detailing_billing.services.business_service import BusinessService

logger = structlog.get_logger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Database session dependency.

    Routes commit explicitly; anything left uncommitted when the route raises
    is rolled back.

    Yields:
        AsyncSession: Database session for the request lifecycle
    """
    async with request.app.state.session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def get_gateway(request: Request) -> PaymentGateway:
    """Stripe gateway built once at application start-up."""
    return request.app.state.gateway


def get_jwt_auth(request: Request) -> JWTAuth:
    return request.app.state.jwt_auth


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    jwt_auth: JWTAuth = Depends(get_jwt_auth),
) -> dict:
    """
    Get current authenticated user from a Supabase access token.

    Args:
        credentials: HTTP Bearer token from request header
        jwt_auth: Token verifier

    Returns:
        dict: Decoded token claims (``sub`` is the owner id)

    Raises:
        HTTPException: If token is invalid, expired, or missing
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials

    try:
        payload = jwt_auth.verify_access_token(token)
    except jwt.ExpiredSignatureError:
        logger.warning("token_expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        logger.warning("invalid_token", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    structlog.contextvars.bind_contextvars(user_id=payload["sub"])
    return payload


async def get_current_business(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Business:
    """
    Business owned by the authenticated user.

    Raises:
        HTTPException: 404 if the user has not completed a subscription checkout
    """
    business = await BusinessService(db).get_by_owner(current_user["sub"])
    if business is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No business found for the current user",
        )
    return business
