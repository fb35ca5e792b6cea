"""Bearer token validation.

The gateway consumes access tokens issued elsewhere. Tokens must be signed
with the shared secret and carry ``sub`` and ``exp``; ``tenant_id`` is
informational, since tenant membership comes from role assignments.
"""

import time

import jwt

from resourcegate.auth.types import TokenClaims

REQUIRED_CLAIMS = ["sub", "exp"]


class JWTError(Exception):
    """A bearer token could not be accepted."""


class TokenExpiredError(JWTError):
    pass


class InvalidTokenError(JWTError):
    pass


class JWTService:
    """HS256 token decoding with optional clock leeway.

    ``generate_access_token`` signs tokens in the same shape; it is used by
    tests and local tooling, not by any HTTP route.
    """

    ACCESS_TOKEN_TTL = 15 * 60

    def __init__(self, secret_key: str, algorithm: str = "HS256", leeway: int = 0):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._leeway = leeway

    def decode_token(self, token: str) -> TokenClaims:
        """Verify signature and expiry, returning the claims.

        Raises:
            TokenExpiredError: ``exp`` is in the past (beyond the leeway)
            InvalidTokenError: Bad signature, malformed token or missing claims
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                leeway=self._leeway,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e

        return TokenClaims(
            user_id=str(payload["sub"]),
            tenant_id=payload.get("tenant_id"),
            exp=payload["exp"],
            iat=payload.get("iat", 0),
            type=payload.get("type", "access"),
        )

    def generate_access_token(self, user_id: str, tenant_id: str | None = None, ttl: int | None = None) -> str:
        issued = int(time.time())
        lifetime = self.ACCESS_TOKEN_TTL if ttl is None else ttl
        payload = {"sub": user_id, "iat": issued, "exp": issued + lifetime, "type": "access"}
        if tenant_id:
            payload["tenant_id"] = tenant_id
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
