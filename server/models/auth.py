"""Employee accounts used for authentication and the directory."""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, Column, DateTime
from sqlalchemy import func
import bcrypt


class User(SQLModel, table=True):
    """Employee account."""

    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True, max_length=255)
    password_hash: str = Field(max_length=255)
    name: str = Field(max_length=100)
    initials: Optional[str] = Field(default=None, max_length=10)
    position: Optional[str] = Field(default=None, max_length=100)
    department: Optional[str] = Field(default=None, index=True, max_length=100)
    status: str = Field(default="WORKING", max_length=50)
    avatar: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = Field(default=True)
    is_online: bool = Field(default=False)
    last_seen: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )

    def set_password(self, password: str) -> None:
        """Hash and set password using bcrypt."""
        salt = bcrypt.gensalt()
        self.password_hash = bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')

    def verify_password(self, password: str) -> bool:
        """Verify password against stored hash."""
        return bcrypt.checkpw(
            password.encode('utf-8'),
            self.password_hash.encode('utf-8')
        )

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "position": self.position,
            "department": self.department,
            "avatar": self.avatar,
            "initials": self.initials,
            "status": self.status,
        }

    @classmethod
    def create(cls, email: str, password: str, name: str, **profile) -> "User":
        """Factory method to create a user with hashed password."""
        name = name.strip()
        user = cls(
            email=email.lower().strip(),
            password_hash="",  # Will be set below
            name=name,
            initials=profile.pop("initials", None) or "".join(part[0] for part in name.split() if part),
            **profile
        )
        user.set_password(password)
        return user
