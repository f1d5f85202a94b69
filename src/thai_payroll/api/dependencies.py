"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from thai_payroll.config import Settings, get_settings
from thai_payroll.database import init_db

SALARY_EDIT_PERMISSION = "employee_salary.edit"


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives a request."""
    _, factory = init_db()
    return factory


async def get_db_session(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


@dataclass(frozen=True)
class ActingUser:
    """Caller identity taken from request headers."""

    user_id: str | None = None
    permissions: frozenset[str] = field(default_factory=frozenset)

    def can(self, permission: str) -> bool:
        return permission in self.permissions


async def get_acting_user(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_permissions: Annotated[str | None, Header()] = None,
) -> ActingUser:
    """Extract the acting user from X-User-ID / X-User-Permissions."""
    permissions = frozenset(
        p.strip() for p in (x_user_permissions or "").split(",") if p.strip()
    )
    return ActingUser(user_id=x_user_id or None, permissions=permissions)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
CurrentUser = Annotated[ActingUser, Depends(get_acting_user)]
