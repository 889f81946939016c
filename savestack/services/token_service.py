"""Access-token decoding for sessions issued by the identity provider."""

from datetime import datetime
from typing import Any, Optional

from jose import jwt, JWTError

from savestack.config import Settings, get_settings
from savestack.models import Session


class TokenError(Exception):
    """Exception raised for token-related errors."""
    pass


class TokenService:
    """Turns identity-provider JWTs into sessions.

    Tokens are issued elsewhere; this service only verifies them.
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.secret_key = settings.identity_jwt_secret
        self.algorithm = settings.identity_jwt_algorithm
        self.audience = settings.identity_jwt_audience or None

    def decode_access_token(self, token: str) -> dict[str, Any]:
        """Decode and validate an access token.

        Args:
            token: JWT access token

        Returns:
            Token payload dictionary

        Raises:
            TokenError: If token is invalid or expired
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
            )
        except JWTError as e:
            raise TokenError(f"Invalid token: {str(e)}")

        if not payload.get("sub"):
            raise TokenError("Token has no subject")

        return payload

    def session_from_token(self, token: str) -> Session:
        """Build a session from a verified access token."""
        payload = self.decode_access_token(token)
        issued_at = payload.get("iat")
        return Session(
            user_id=str(payload["sub"]),
            email=payload.get("email"),
            issued_at=datetime.utcfromtimestamp(issued_at) if issued_at else datetime.utcnow(),
        )


# Singleton instance
_token_service: Optional[TokenService] = None


def get_token_service() -> TokenService:
    """Get the token service singleton."""
    global _token_service
    if _token_service is None:
        _token_service = TokenService()
    return _token_service


def reset_token_service() -> None:
    """Reset the token service singleton (for testing)."""
    global _token_service
    _token_service = None
