"""Session JWT and service-role key verification"""

import hmac
import logging
from datetime import UTC, datetime, timedelta

import jwt

logger = logging.getLogger(__name__)


class AuthService:
    """Verify user session tokens and the privileged service-role key"""

    def __init__(
        self,
        secret_key: str,
        service_role_key: str,
        algorithm: str = "HS256",
    ):
        if not secret_key:
            raise ValueError("JWT secret key cannot be empty")
        if not service_role_key:
            raise ValueError("Service role key cannot be empty")

        self.secret_key = secret_key
        self.service_role_key = service_role_key
        self.algorithm = algorithm

    def create_access_token(self, profile_id: str, expires_in: timedelta = timedelta(days=7)) -> str:
        """Issue a session token for a profile (used by scripts and tests)"""
        now = datetime.now(UTC)
        payload = {"sub": profile_id, "iat": now, "exp": now + expires_in}
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> dict | None:
        """Return the token payload, or None if it is invalid or expired"""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            return None

        if not payload.get("sub"):
            logger.warning("Token missing sub")
            return None
        return payload

    def verify_service_key(self, presented: str | None) -> bool:
        if not presented:
            return False
        return hmac.compare_digest(presented.encode(), self.service_role_key.encode())
