"""Authentication routes for login, registration and session management."""

from typing import Optional

from fastapi import APIRouter, Depends, Response, Request
from pydantic import BaseModel, EmailStr

from constants import USERS_CACHE_PREFIX
from core.container import container
from core.config import Settings
from core.cache import TTLCache
from core.errors import NotFoundError, UnauthorizedError, ValidationError
from core.logging import get_logger
from middleware.auth import session_cache_key
from services.user_auth import UserAuthService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    name: str
    position: Optional[str] = None
    department: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


def get_user_auth_service() -> UserAuthService:
    return container.user_auth_service()


def get_settings() -> Settings:
    return container.settings()


def get_session_cache() -> TTLCache:
    return container.session_cache()


def user_payload(user) -> dict:
    return {"id": user.id, "email": user.email, "name": user.name,
            "position": user.position, "department": user.department}


def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.jwt_cookie_name,
        value=token,
        httponly=True,
        secure=settings.jwt_cookie_secure,
        samesite=settings.jwt_cookie_samesite,
        max_age=settings.jwt_expire_minutes * 60
    )


@router.get("/status")
async def get_auth_status(
    request: Request,
    user_auth: UserAuthService = Depends(get_user_auth_service),
    settings: Settings = Depends(get_settings)
):
    """Report whether the caller holds a valid session."""
    token = request.cookies.get(settings.jwt_cookie_name)
    user = await user_auth.get_current_user(token) if token else None

    return {
        "authenticated": user is not None,
        "user": user_payload(user) if user else None,
    }


@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    response: Response,
    user_auth: UserAuthService = Depends(get_user_auth_service),
    settings: Settings = Depends(get_settings)
):
    """Create an employee account and start a session."""
    user, error = await user_auth.register(
        email=request.email,
        password=request.password,
        name=request.name,
        position=request.position,
        department=request.department,
    )

    if error:
        raise ValidationError(error)

    # New employee must show up in the cached directory
    container.cache().delete_pattern(USERS_CACHE_PREFIX)

    set_session_cookie(response, user_auth.create_access_token(user), settings)
    return {"success": True, "user": user_payload(user)}


@router.post("/login")
async def login(
    request: LoginRequest,
    response: Response,
    user_auth: UserAuthService = Depends(get_user_auth_service),
    settings: Settings = Depends(get_settings)
):
    """
    Login with email and password.
    Sets HttpOnly cookie with JWT token.
    """
    user, error = await user_auth.login(email=request.email, password=request.password)

    if error:
        raise UnauthorizedError(error)

    set_session_cookie(response, user_auth.create_access_token(user), settings)
    return {"success": True, "user": user_payload(user)}


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    user_auth: UserAuthService = Depends(get_user_auth_service),
    session_cache: TTLCache = Depends(get_session_cache),
    settings: Settings = Depends(get_settings)
):
    """Clear the session cookie and forget the memoized user."""
    token = request.cookies.get(settings.jwt_cookie_name)
    payload = user_auth.verify_token(token) if token else None
    if payload and payload.get("sub"):
        session_cache.delete(session_cache_key(payload["sub"]))
        await user_auth.database.update_presence(int(payload["sub"]), is_online=False)

    response.delete_cookie(
        key=settings.jwt_cookie_name,
        httponly=True,
        secure=settings.jwt_cookie_secure,
        samesite=settings.jwt_cookie_samesite
    )
    return {"success": True}


@router.get("/me")
async def get_current_user(
    request: Request,
    user_auth: UserAuthService = Depends(get_user_auth_service),
):
    """Current authenticated user (session checked by the auth middleware)."""
    user = await user_auth.get_user_by_id(request.state.user_id)
    if not user:
        raise NotFoundError("User not found")
    return user_payload(user)
