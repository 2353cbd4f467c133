"""Signed session cookie service"""

import logging
from datetime import UTC, datetime, timedelta

import jwt

logger = logging.getLogger(__name__)


class AuthService:
    """Handle JWT creation and validation for the session cookie.

    The JWT only names the session (``sub``) and its Twitch user (``uid``);
    the token pair itself stays in the session store.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_days: int = 30):
        if not secret_key:
            raise ValueError("JWT secret key cannot be empty")

        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_days = expire_days

    def create_session_token(self, session_id: str, user_id: str) -> str:
        """Create a signed cookie value for a session"""
        now = datetime.now(UTC)

        payload = {
            "sub": session_id,
            "uid": user_id,
            "exp": now + timedelta(days=self.expire_days),
            "iat": now,
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        logger.debug(f"Session token created for user: {user_id}")

        return token

    def verify_token(self, token: str) -> dict | None:
        """Verify a session token and return the payload if valid"""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])

            if payload.get("sub") is None:
                logger.warning("Token missing sub")
                return None

            return payload

        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            return None
