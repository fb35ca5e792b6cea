"""Authentication middleware for FastAPI."""

import logging
from collections.abc import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from resourcegate.auth.jwt_service import JWTError, JWTService
from resourcegate.auth.types import Caller, RoleAssignment

logger = logging.getLogger(__name__)

AssignmentSource = Callable[[str], tuple[RoleAssignment, ...]]


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that extracts the JWT from the Authorization header.

    The middleware:
    1. Extracts the Bearer token
    2. Decodes and validates it
    3. Loads the user's role assignments once for the request
    4. Sets request.state.caller and request.state.token_claims

    Missing or invalid tokens leave the caller as None. Rejection is the
    permission evaluator's job, since an absent caller is simply denied.
    """

    def __init__(self, app, jwt_service: JWTService, assignments: AssignmentSource):
        super().__init__(app)
        self._jwt_service = jwt_service
        self._assignments = assignments

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.caller = None
        request.state.token_claims = None

        if self._should_skip_auth(request.url.path):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header[7:]
            try:
                claims = self._jwt_service.decode_token(token)
                if claims.type == "access" and claims.user_id:
                    request.state.token_claims = claims
                    request.state.caller = Caller(
                        user_id=claims.user_id,
                        assignments=self._assignments(claims.user_id),
                    )
            except JWTError as e:
                logger.debug("Rejected bearer token: %s", e)

        return await call_next(request)

    def _should_skip_auth(self, path: str) -> bool:
        skip_paths = ["/docs", "/openapi.json", "/redoc", "/health"]
        return any(path.startswith(p) for p in skip_paths)


def get_caller(request: Request) -> Caller | None:
    return getattr(request.state, "caller", None)
