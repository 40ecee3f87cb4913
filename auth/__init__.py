"""Authentication module for bearer tokens issued by the managed auth provider.

This module provides:
1. JWT verification (signature, expiry, audience) of Supabase access tokens
2. FastAPI dependencies exposing the authenticated user id to routes

Tokens are never issued here; sign-up and sign-in happen against the provider.
"""

import logging
from typing import Optional, Dict, Any
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError

from config import settings_conf
from database import normalize_id

# Configure logging
logger = logging.getLogger(__name__)

class AuthError(Exception):
    """Base exception for authentication errors."""
    pass

class TokenExpiredError(AuthError):
    """Raised when a token has expired."""
    pass

class AuthManager:
    """Verifies provider-issued access tokens."""

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        audience: Optional[str] = None
    ):
        """Initialize auth manager.

        Args:
            secret: JWT signing secret. Defaults to the jwt_secret setting.
            algorithm: JWT algorithm. Defaults to the jwt_algorithm setting.
            audience: Expected audience claim. Defaults to the jwt_audience setting.
        """
        self.secret = secret if secret is not None else settings_conf['jwt_secret']
        self.algorithm = algorithm or settings_conf['jwt_algorithm']
        self.audience = audience if audience is not None else settings_conf['jwt_audience']

    def decode(self, token: str) -> Dict[str, Any]:
        """Decode and verify a token.

        Args:
            token: The bearer token

        Returns:
            The verified claims

        Raises:
            TokenExpiredError: If the token has expired
            AuthError: For any other verification failure
        """
        if not self.secret:
            raise AuthError("Token verification is not configured")
        if not token:
            raise AuthError("Missing token")

        options = {} if self.audience else {'verify_aud': False}
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience or None,
                options=options
            )
        except ExpiredSignatureError:
            raise TokenExpiredError("Session has expired")
        except JWTError as e:
            raise AuthError(f"Invalid token: {str(e)}")

    def verify_token(self, token: str) -> str:
        """Verify a token and return the authenticated user id.

        Raises:
            AuthError: If the token is invalid or carries no subject
        """
        claims = self.decode(token)
        subject = claims.get('sub')
        if not subject:
            raise AuthError("Token has no subject")
        user_id = normalize_id(subject)
        if user_id is None:
            raise AuthError("Token subject is not a valid user id")
        return user_id

# Create global instance
manager = AuthManager()

# FastAPI security scheme; missing credentials are reported as 401 below
auth_scheme = HTTPBearer(
    auto_error=False,
    description="Supabase access token"
)

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"}
    )

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)
) -> str:
    """FastAPI dependency for getting the authenticated user id.

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        return manager.verify_token(credentials.credentials)
    except AuthError as e:
        logger.debug(f"Rejected token: {e}")
        raise _unauthorized(str(e))

async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)
) -> Optional[str]:
    """Like get_current_user, but returns None when no token was sent.

    A token that is present but invalid is still rejected with 401.
    """
    if credentials is None:
        return None
    return await get_current_user(credentials)

# Export public interface
__all__ = [
    'manager',
    'AuthManager',
    'auth_scheme',
    'get_current_user',
    'get_optional_user',
    'AuthError',
    'TokenExpiredError'
]
