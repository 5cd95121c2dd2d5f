import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from edu_admin.core.config import (
    CRON_SECRET,
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
    JWT_ALGORITHM,
    JWT_SECRET_KEY,
)
from edu_admin.core.exceptions import AuthenticationError, ConfigurationError
from edu_admin.core.permissions import Actor, SYSTEM_ACTOR

logger = logging.getLogger(__name__)

# auto_error=False: отсутствие заголовка отдаем как 401 в общем формате
jwt_security = HTTPBearer(
    scheme_name="JWT Token",
    description="Enter your JWT token",
    auto_error=False,
)


class JWTManager:
    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: str = JWT_ALGORITHM,
        expire_minutes: int = JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
    ):
        self.secret_key = secret_key or JWT_SECRET_KEY
        self.algorithm = algorithm
        self.access_token_expire_minutes = expire_minutes

    def _require_secret(self) -> str:
        if not self.secret_key:
            raise ConfigurationError("JWT_SECRET_KEY", "JWT secret key is not configured")
        return self.secret_key

    def create_access_token(
        self, user_id: str, role: str, extra_data: Dict[str, Any] = None
    ) -> str:
        """
        Create JWT access token with user id and role

        Args:
            user_id: Identifier of the staff user
            role: User's role (CURATOR, COORDINATOR, ADMIN, SUPERADMIN, ...)
            extra_data: Additional data to include in token

        Returns:
            JWT token string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "role": role,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "iat": now,
            "type": "access_token",
        }
        if extra_data:
            payload.update(extra_data)

        token = jwt.encode(payload, self._require_secret(), algorithm=self.algorithm)
        logger.debug(f"JWT token created for user: {user_id}, role: {role}")
        return token

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Decode and verify JWT token

        Raises:
            AuthenticationError: If token is invalid, expired or of a wrong type
        """
        try:
            payload = jwt.decode(
                token, self._require_secret(), algorithms=[self.algorithm]
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token has expired")
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            logger.warning("Invalid JWT token provided")
            raise AuthenticationError("Invalid token")

        if payload.get("type") != "access_token":
            raise AuthenticationError("Invalid token type")

        if not payload.get("sub"):
            raise AuthenticationError("Token has no subject")

        return payload


jwt_manager = JWTManager()


async def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(jwt_security),
) -> Actor:
    """Dependency: actor with capabilities resolved from the token role"""
    if credentials is None or not credentials.credentials.strip():
        raise AuthenticationError("Authentication data is required")

    payload = jwt_manager.decode_token(credentials.credentials)
    actor = Actor.from_role(payload["sub"], payload.get("role"))
    # для лога запроса
    request.state.actor_id = actor.id
    return actor


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> Actor:
    """
    Проверка секрета для планировщика (Authorization: Bearer <CRON_SECRET>)

    Raises:
        ConfigurationError: Если секрет не настроен
        AuthenticationError: Если секрет неверный
    """
    if not CRON_SECRET:
        raise ConfigurationError("CRON_SECRET", "Cron secret not configured on server")

    if not authorization:
        raise AuthenticationError("Authorization header is required")

    expected = f"Bearer {CRON_SECRET}"
    if not hmac.compare_digest(authorization, expected):
        raise AuthenticationError("Invalid cron secret")

    return SYSTEM_ACTOR
