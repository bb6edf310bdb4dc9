"""
Identity Module

Resolves the caller of an operation. The engine only needs a user id (and
optionally email and name); where they come from is up to the provider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt


class AuthenticationError(Exception):
    """Raised when a token is missing, expired or invalid"""


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None


class IdentityProvider(ABC):
    """Turns a bearer token into an Identity"""

    @abstractmethod
    def authenticate(self, token: str) -> Identity:
        """
        Raises:
            AuthenticationError: If the token cannot be trusted
        """
        pass


class JWTIdentityProvider(IdentityProvider):
    """HS256 JWTs with the user id in `sub`"""

    def __init__(self, secret: str, algorithm: str = "HS256",
                 token_lifetime: timedelta = timedelta(hours=24)):
        if not secret:
            raise ValueError("JWT secret is required")
        self.secret = secret
        self.algorithm = algorithm
        self.token_lifetime = token_lifetime

    def issue_token(self, identity: Identity, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        payload = {
            "sub": identity.user_id,
            "iat": now,
            "exp": now + self.token_lifetime,
        }
        if identity.email:
            payload["email"] = identity.email
        if identity.name:
            payload["name"] = identity.name
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def authenticate(self, token: str) -> Identity:
        if not token:
            raise AuthenticationError("Not authenticated")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Invalid token") from e

        user_id = payload.get("sub")
        if not user_id:
            raise AuthenticationError("Invalid token")
        return Identity(user_id=user_id, email=payload.get("email"), name=payload.get("name"))

