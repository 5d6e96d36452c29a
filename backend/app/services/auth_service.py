import logging
from datetime import datetime, timezone

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.utils.errors import AuthenticationError, DuplicateError
from app.utils.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


def _user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


class AuthService:
    async def register(self, db: AsyncSession, email: str, password: str, first_name: str, last_name: str) -> dict:
        email = email.lower()
        existing = await db.scalar(select(User).where(User.email == email))
        if existing:
            raise DuplicateError("User already exists", code="USER_EXISTS")

        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        user = User(
            email=email,
            password_hash=await run_in_threadpool(hash_password, password),
            first_name=first_name,
            last_name=last_name,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent registration for the same email.
            await db.rollback()
            raise DuplicateError("User already exists", code="USER_EXISTS") from exc
        await db.refresh(user)
        logger.info("Registered user %s", user.id)

        return {"token": create_access_token(user.id, user.email), "user": _user_payload(user)}

    async def login(self, db: AsyncSession, email: str, password: str) -> dict:
        user = await db.scalar(select(User).where(User.email == email.lower()))
        if not user or not await run_in_threadpool(verify_password, user.password_hash, password):
            raise AuthenticationError("Invalid credentials", code="INVALID_CREDENTIALS")

        return {"token": create_access_token(user.id, user.email), "user": _user_payload(user)}


auth_service = AuthService()
