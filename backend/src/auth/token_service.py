"""
JWT Token Service

Issues and verifies the bearer access tokens used by the API and the
realtime stream.
"""

from datetime import UTC, datetime, timedelta
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt


class TokenService:
    """Service for JWT token operations"""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 30,
    ):
        """
        Initialize token service

        Args:
            secret_key: Secret key for JWT signing
            algorithm: JWT algorithm (default: HS256)
            access_token_expire_minutes: Access token expiration in minutes (default: 30)
        """
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes

    def create_access_token(self, user_id: UUID, additional_claims: Optional[dict] = None) -> str:
        """
        Create JWT access token

        Args:
            user_id: User UUID
            additional_claims: Optional additional claims to include

        Returns:
            Encoded JWT token string
        """
        now = datetime.now(UTC)
        claims = {
            "sub": str(user_id),
            "type": "access",
            "iat": now,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
        }

        if additional_claims:
            claims.update(additional_claims)

        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Optional[dict]:
        """Decode and validate a JWT; None if the signature or expiry is invalid."""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None

    def verify_access_token(self, token: str) -> Optional[UUID]:
        """
        Verify access token and extract user ID

        Returns:
            User UUID if valid access token, None otherwise
        """
        payload = self.decode_token(token)
        if payload is None or payload.get("type") != "access":
            return None

        user_id_str = payload.get("sub")
        if user_id_str is None:
            return None

        try:
            return UUID(user_id_str)
        except ValueError:
            return None
