import uuid
from datetime import UTC, datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from pydantic import ValidationError

from isuite.core.config import Settings
from isuite.core.logging import logger
from isuite.schemas.auth import User


# Session token signing / verification
class CredentialStore:
    """
    Signs and verifies the session token carried in the `session` cookie.

    The token is a JWT holding the user record plus the standard
    `iat`/`exp` claims. Nothing is stored server-side: a token is valid iff
    its signature checks out against `secret_key` and it has not expired.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_days: int = 7):
        if not secret_key:
            raise ValueError("A signing secret is required")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.expire_days = expire_days

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialStore":
        """Build the store from the process settings, warning about the fallback secret."""
        if settings.uses_insecure_secret:
            log = logger.error if settings.is_production else logger.warning
            log("auth_secret_not_configured_using_insecure_default", environment=settings.ENVIRONMENT.value)
        return cls(
            secret_key=settings.signing_secret,
            algorithm=settings.JWT_ALGORITHM,
            expire_days=settings.SESSION_EXPIRE_DAYS,
        )

    @property
    def max_age_seconds(self) -> int:
        return int(timedelta(days=self.expire_days).total_seconds())

    def issue(self, user: User, now: Optional[datetime] = None) -> str:
        """Creates a new signed session token.

        Args:
            user: The identity to embed
            now: Issue time, defaults to the current UTC time

        Returns:
            str: The encoded token
        """
        issued_at = now or datetime.now(UTC)
        expire = issued_at + timedelta(days=self.expire_days)

        # the payload is what gets encoded into the token
        to_encode = {
            "user": user.model_dump(),
            "sub": user.id,
            "iat": issued_at,
            "exp": expire,
            # JTI (JWT ID): A unique identifier for this specific token instance.
            "jti": uuid.uuid4().hex,
        }
        encoded_jwt = jwt.encode(to_encode, self._secret_key, algorithm=self.algorithm)
        logger.debug("session_token_issued", user_id=user.id, expires_at=expire.isoformat())
        return encoded_jwt

    def verify(self, token: Optional[str]) -> Optional[User]:
        """
        Decodes and verifies a token. Returns the embedded user if valid,
        None for any structural, signature or expiry problem.
        """
        if not token:
            return None

        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            # If the signature is invalid or token is expired, jose raises JWTError
            logger.info("invalid_or_expired_token", error=str(e))
            return None

        user_data = payload.get("user")
        if not isinstance(user_data, dict):
            logger.info("token_missing_user_claim")
            return None

        try:
            return User.model_validate(user_data)
        except ValidationError as e:
            logger.info("token_user_claim_malformed", error=str(e))
            return None
