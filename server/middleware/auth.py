"""Authentication middleware for route protection."""

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.logging import get_logger

logger = get_logger(__name__)

# Public routes that don't require authentication
PUBLIC_PATHS = frozenset([
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/api/auth/status",
    "/api/auth/login",
    "/api/auth/register",
    "/api/auth/logout",
])


def session_cache_key(user_id: str) -> str:
    return f"session-user:{user_id}"


def unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


class AuthMiddleware(BaseHTTPMiddleware):
    """Reject requests without a valid session cookie before any handler runs."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in PUBLIC_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        settings = container.settings()
        token = request.cookies.get(settings.jwt_cookie_name)
        if not token:
            return unauthorized()

        user_auth = container.user_auth_service()
        payload = user_auth.verify_token(token)
        if not payload or not payload.get("sub"):
            return unauthorized()

        # Verified accounts are memoized so each request skips the users table
        session_cache = container.session_cache()
        key = session_cache_key(payload["sub"])
        user = session_cache.get(key)
        if user is None:
            account = await user_auth.get_user_by_id(int(payload["sub"]))
            if not account or not account.is_active:
                logger.info("Session rejected for unknown or disabled user", user_id=payload["sub"])
                return unauthorized()
            user = {"id": account.id, "email": account.email, "name": account.name}
            session_cache.set(key, user)

        request.state.user_id = user["id"]
        request.state.user_email = user["email"]
        request.state.user_name = user["name"]

        return await call_next(request)
