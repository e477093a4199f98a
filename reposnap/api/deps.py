"""Shared API dependencies: DB session, settings, caller role."""

from __future__ import annotations

import secrets
from collections.abc import AsyncGenerator
from enum import IntEnum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposnap.config import Settings
from reposnap.services.notify_service import ChangeNotifier

security = HTTPBearer(auto_error=False)


class Role(IntEnum):
    """Access levels, ordered so that a higher role includes the lower ones."""

    VIEWER = 1
    EDITOR = 2
    OWNER = 3


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Get the session factory, for services that open one session per batch."""
    factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    return factory


def get_notifier(request: Request) -> ChangeNotifier:
    """Get the change notifier from app state."""
    notifier: ChangeNotifier = request.app.state.notifier
    return notifier


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


def get_current_role(
    settings: Annotated[Settings, Depends(get_settings)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> Role:
    """Resolve the caller's role from its bearer token. Raises 401 if unknown."""
    if credentials is not None:
        for token, role_name in settings.access_tokens.items():
            if secrets.compare_digest(credentials.credentials, token):
                try:
                    return Role[role_name.upper()]
                except KeyError:
                    break
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_viewer(role: Annotated[Role, Depends(get_current_role)]) -> Role:
    """Require any known role."""
    return role


def require_editor(role: Annotated[Role, Depends(get_current_role)]) -> Role:
    """Require editor role. Raises 403 for viewers."""
    if role < Role.EDITOR:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Editor role required",
        )
    return role
