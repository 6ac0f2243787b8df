"""
Security Utilities.

Resolves the caller's identity for the poll and hook endpoints. Tokens are
normally issued by the storefront's auth service; issue_access_token mints
compatible ones for development (`cli.py --service token`) and tests.

Claims:
    sub   - user id (poll channel owner)
    role  - role name (security.yaml roles.claim); roles.admin may read the
            admin channel and call the order hooks
    type  - must be "access"
    aud   - security.yaml jwt.audience
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from jose import JWTError, jwt

from storefront.backend.core.config import get_app_config, get_settings
from storefront.backend.core.exceptions import AuthenticationError
from storefront.backend.core.logging import get_logger
from storefront.backend.core.utils import utc_now

logger = get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""

    user_id: str
    role: str
    is_admin: bool


def issue_access_token(user_id: str, role: str, expires_delta: timedelta | None = None) -> str:
    """Mint an access token for `user_id` with `role`; expiry defaults to jwt.access_token_expire_minutes."""
    jwt_config = get_app_config().security.jwt
    lifetime = expires_delta or timedelta(minutes=jwt_config.access_token_expire_minutes)
    claims = {
        "sub": user_id,
        get_app_config().security.roles.claim: role,
        "type": ACCESS_TOKEN_TYPE,
        "aud": jwt_config.audience,
        "exp": utc_now() + lifetime,
    }
    return jwt.encode(claims, get_settings().jwt_secret, algorithm=jwt_config.algorithm)


def decode_token(token: str) -> dict[str, Any]:
    """
    Verify signature, expiry, audience and token type; return the claims.

    Raises:
        AuthenticationError: Token is invalid, expired or not an access token
    """
    jwt_config = get_app_config().security.jwt
    try:
        claims = jwt.decode(
            token,
            get_settings().jwt_secret,
            algorithms=[jwt_config.algorithm],
            audience=jwt_config.audience,
        )
    except JWTError as e:
        logger.warning("Token decode failed", extra={"error": str(e)})
        raise AuthenticationError("Invalid or expired token") from e

    if claims.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        logger.warning("Rejected non-access token", extra={"token_type": claims.get("type")})
        raise AuthenticationError("Access token required")
    return claims


def principal_from_claims(claims: dict[str, Any]) -> Principal:
    """
    Build a Principal from decoded token claims. A missing role means a plain user.

    Raises:
        AuthenticationError: If the token carries no subject
    """
    roles = get_app_config().security.roles
    user_id = claims.get("sub")
    if not user_id:
        raise AuthenticationError("Token has no subject")

    role = str(claims.get(roles.claim) or roles.user).upper()
    return Principal(user_id=str(user_id), role=role, is_admin=role == roles.admin.upper())
