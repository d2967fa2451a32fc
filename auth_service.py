"""Account registration, login and bearer token validation."""

import datetime
import logging
import os
import secrets

import bcrypt
from jose import JWTError, jwt

from db import UserRepository
from models import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 72  # bcrypt limit


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


class SessionService:
    """Issue and validate JWT bearer tokens for registered users."""

    def __init__(
        self,
        users: UserRepository,
        secret: str | None = None,
        expire_minutes: int = 30 * 24 * 60,
    ) -> None:
        self.users = users
        self.secret = secret or os.environ.get("WOD_JWT_SECRET") or secrets.token_urlsafe(32)
        self.expire_minutes = expire_minutes

    def register(self, email: str, password: str, username: str | None = None) -> str:
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValueError("a valid email is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValueError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
        if len(password.encode("utf-8")) > MAX_PASSWORD_LENGTH:
            raise ValueError(f"password must be at most {MAX_PASSWORD_LENGTH} bytes")
        user_id = self.users.add(email, hash_password(password), username or None)
        logger.info("registered user", extra={"wod_user_id": user_id})
        return user_id

    def login(self, email: str, password: str) -> str:
        email = (email or "").strip().lower()
        creds = self.users.fetch_credentials(email)
        if creds is None or not verify_password(password or "", creds[1]):
            logger.info("failed login attempt")
            raise PermissionError("invalid email or password")
        return self.create_token(creds[0])

    def create_token(self, user_id: str) -> str:
        expire = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
            minutes=self.expire_minutes
        )
        return jwt.encode({"sub": user_id, "exp": expire}, self.secret, algorithm=ALGORITHM)

    def user_id_from_token(self, token: str | None) -> str:
        if not token:
            raise PermissionError("not authenticated")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except JWTError:
            raise PermissionError("invalid authentication credentials")
        user_id = payload.get("sub")
        if not user_id:
            raise PermissionError("invalid token payload")
        return user_id

    def current_user(self, token: str | None) -> User:
        user_id = self.user_id_from_token(token)
        try:
            return self.users.fetch_detail(user_id)
        except LookupError:
            raise PermissionError("user no longer exists")
