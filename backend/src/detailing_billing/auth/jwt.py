"""Verification of Supabase Auth access tokens.

Supabase signs user access tokens with the project's JWT secret (HS256). The
``sub`` claim is the auth user id, which is the business ``owner_id``.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import jwt

from detailing_billing.config import Settings


class JWTAuth:
    """JWT verification handler for Supabase access tokens."""

    def __init__(self, secret: str, audience: str = "authenticated"):
        """Initialize JWT auth with the shared project secret."""
        self.algorithm = "HS256"
        self.secret = secret
        self.audience = audience

    @classmethod
    def from_settings(cls, config: Settings) -> "JWTAuth":
        return cls(config.supabase_jwt_secret, config.supabase_jwt_audience)

    def create_access_token(
        self,
        user_id: str,
        email: Optional[str] = None,
        expires_in: timedelta = timedelta(hours=1),
        additional_claims: Optional[Dict] = None,
    ) -> str:
        """
        Create an access token shaped like the ones Supabase issues.

        Used by local tooling and tests; production tokens come from Supabase Auth.

        Args:
            user_id: Auth user id
            email: User email
            expires_in: Token lifetime
            additional_claims: Additional JWT claims

        Returns:
            Encoded JWT token
        """
        now = datetime.now(timezone.utc)
        claims = {
            "sub": user_id,
            "email": email,
            "aud": self.audience,
            "role": "authenticated",
            "iat": now,
            "exp": now + expires_in,
        }
        if additional_claims:
            claims.update(additional_claims)
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> Dict:
        """
        Verify and decode an access token.

        Args:
            token: JWT access token

        Returns:
            Decoded token claims

        Raises:
            jwt.ExpiredSignatureError: If token is expired
            jwt.InvalidTokenError: If token is invalid or has no subject
        """
        payload = jwt.decode(
            token,
            self.secret,
            algorithms=[self.algorithm],
            audience=self.audience,
            options={"require": ["sub", "exp"]},
        )
        if not payload.get("sub"):
            raise jwt.InvalidTokenError("Token has no subject")
        return payload
