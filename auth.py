import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Header, Request

from errors import Unauthorized

logger = logging.getLogger(__name__)


class TokenVerifier:
    """Checks HMAC-signed bearer tokens and extracts the caller's user id."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def verify(self, token: Optional[str]) -> str:
        if not token:
            raise Unauthorized("No token provided")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise Unauthorized("Token expired")
        except jwt.InvalidTokenError as e:
            logger.debug("Rejected token: %s", e)
            raise Unauthorized("Invalid token")
        user_id = payload.get("userId") or payload.get("sub")
        if not user_id:
            raise Unauthorized("Invalid token")
        return str(user_id)

    def sign(self, user_id: str, expires_in: timedelta = timedelta(days=7)) -> str:
        """Mint a token the way the login service does. Used by tooling and tests."""
        now = datetime.now(timezone.utc)
        payload = {"userId": user_id, "iat": now, "exp": now + expires_in}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized("Invalid Authorization header")
    return parts[1]


def get_current_user(request: Request, authorization: Optional[str] = Header(None)) -> str:
    """Dependency yielding the caller's user id, or failing with 401."""
    verifier: TokenVerifier = request.app.state.verifier
    return verifier.verify(bearer_token(authorization))
