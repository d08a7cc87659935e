"""
HealthyMeal Authentication Service
Verifies bearer tokens issued by the managed auth service and maps their
subjects to internal users
"""

from typing import Any, Dict, Optional

import structlog
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.errors import AppError
from models.users import AuthUserMap, User

logger = structlog.get_logger()


class TokenVerifier:
    """Decodes access tokens signed by the auth service"""

    def __init__(self, secret_key: str, algorithm: str = "HS256", audience: Optional[str] = None):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.audience = audience

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenVerifier":
        return cls(
            settings.AUTH_JWT_SECRET,
            algorithm=settings.AUTH_JWT_ALGORITHM,
            audience=settings.AUTH_JWT_AUDIENCE or None,
        )

    def decode(self, token: str) -> Dict[str, Any]:
        """Verify and decode JWT token"""
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError as e:
            raise AppError.authentication(f"Invalid token: {str(e)}")

    def verify(self, token: str) -> str:
        """Return the token subject (auth user id)"""
        if not token:
            raise AppError.authentication()
        payload = self.decode(token)
        subject = payload.get("sub")
        if not subject or not isinstance(subject, str):
            raise AppError.authentication("Token has no subject")
        return subject


class UserMappingService:
    """Resolves auth subjects to internal ``users.user_id`` values"""

    async def _find(self, db: AsyncSession, auth_user_id: str) -> Optional[str]:
        result = await db.execute(
            select(AuthUserMap.user_id).where(AuthUserMap.auth_user_id == auth_user_id).limit(1)
        )
        return result.scalar_one_or_none()

    async def resolve_owner_id(self, db: AsyncSession, auth_user_id: str) -> str:
        """
        Return the internal user id for ``auth_user_id``

        Creates the user row and its mapping on first use.
        """
        try:
            user_id = await self._find(db, auth_user_id)
            if user_id:
                return user_id

            user = User(preferences={})
            db.add(user)
            await db.flush()
            db.add(AuthUserMap(auth_user_id=auth_user_id, user_id=user.user_id))
            await db.commit()
            logger.info("Created internal user for auth subject", user_id=user.user_id)
            return user.user_id

        except IntegrityError:
            # Another request created the mapping first
            await db.rollback()
            user_id = await self._find(db, auth_user_id)
            if user_id:
                return user_id
            raise AppError.persistence("Failed to resolve user")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to resolve/create user mapping", error=str(e))
            raise AppError.persistence("Failed to resolve user")
