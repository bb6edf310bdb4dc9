"""
Authentication dependencies and the shared ArisanSystem
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import get_config
from ..identity import AuthenticationError, Identity, JWTIdentityProvider
from ..logging_config import get_logger, log_action
from ..system import ArisanSystem


security = HTTPBearer(auto_error=False)
logger = get_logger("arisan.api")

_system: Optional[ArisanSystem] = None


# Dependency to get the arisan system
def get_system() -> ArisanSystem:
    global _system
    if _system is None:
        _system = ArisanSystem()
    return _system


def get_identity_provider() -> JWTIdentityProvider:
    config = get_config()
    return JWTIdentityProvider(config.jwt_secret, config.jwt_algorithm)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    provider: JWTIdentityProvider = Depends(get_identity_provider)
) -> Identity:
    """Validate the bearer token and return the caller"""
    if not get_config().auth_enabled:
        # Local development and tests: trust the X-User-Id header
        return Identity(user_id=x_user_id or "test_user", email=x_user_email)

    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return provider.authenticate(credentials.credentials)
    except AuthenticationError as e:
        log_action(logger, "warning", f"Authentication failed: {e}",
                   action="authenticate", resource="auth")
        raise HTTPException(status_code=401, detail=str(e))
