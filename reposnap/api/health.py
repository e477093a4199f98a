"""Liveness probe: database reachability and registered repository count."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reposnap.api.deps import get_session
from reposnap.models.repo import Repository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

VERSION = "0.1.0"


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    repositories: int | None = None


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> HealthResponse:
    """Report "degraded" when the repositories table cannot be read."""
    try:
        count = (
            await session.execute(select(func.count()).select_from(Repository))
        ).scalar_one()
    except SQLAlchemyError:
        logger.warning("Health check could not read repositories", exc_info=True)
        return HealthResponse(status="degraded", version=VERSION, database="error")
    return HealthResponse(status="ok", version=VERSION, database="ok", repositories=count)
