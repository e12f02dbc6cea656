"""User authentication service with JWT session handling."""

from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any

from jose import jwt, JWTError
from sqlmodel import select

from core.config import Settings
from core.database import Database
from core.logging import get_logger
from models.auth import User

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 8


class UserAuthService:
    """Handles registration, login and JWT session tokens."""

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings
        self._algorithm = "HS256"

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email address."""
        async with self.database.get_session() as session:
            result = await session.execute(
                select(User).where(User.email == email.lower().strip())
            )
            return result.scalars().first()

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        async with self.database.get_session() as session:
            return await session.get(User, user_id)

    async def register(
        self, email: str, password: str, name: str,
        position: Optional[str] = None, department: Optional[str] = None
    ) -> tuple[Optional[User], Optional[str]]:
        """
        Register a new employee account.
        Returns (user, None) on success, (None, error_message) on failure.
        """
        if await self.get_user_by_email(email):
            return None, "Email already registered"

        if len(password) < MIN_PASSWORD_LENGTH:
            return None, f"Password must be at least {MIN_PASSWORD_LENGTH} characters"

        if not name.strip():
            return None, "Name is required"

        user = User.create(email=email, password=password, name=name,
                           position=position, department=department)
        user = await self.database.add_user(user)

        logger.info("User registered", email=user.email, user_id=user.id)
        return user, None

    async def login(
        self, email: str, password: str
    ) -> tuple[Optional[User], Optional[str]]:
        """
        Authenticate user and return user object.
        Returns (user, None) on success, (None, error_message) on failure.
        """
        user = await self.get_user_by_email(email)
        if not user or not user.verify_password(password):
            return None, "Invalid email or password"

        if not user.is_active:
            return None, "Account is disabled"

        await self.database.update_presence(user.id, is_online=True)
        logger.info("User logged in", email=user.email, user_id=user.id)
        return user, None

    def create_access_token(self, user: User) -> str:
        """Create JWT access token for user."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "name": user.name,
            "exp": now + timedelta(minutes=self.settings.jwt_expire_minutes),
            "iat": now,
        }
        return jwt.encode(payload, self.settings.jwt_secret_key, algorithm=self._algorithm)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Verify JWT token and return payload.
        Returns None if token is invalid or expired.
        """
        try:
            return jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self._algorithm]
            )
        except JWTError as e:
            logger.debug("Token verification failed", error=str(e))
            return None

    async def get_current_user(self, token: str) -> Optional[User]:
        """Get current user from token."""
        payload = self.verify_token(token)
        if not payload or not payload.get("sub"):
            return None

        return await self.get_user_by_id(int(payload["sub"]))
