"""Repository for day preparation records (one per team and business day)."""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import DayPreparationDB

logger = logging.getLogger(__name__)


class DayPreparationRepository:
    """Repository for day preparation records."""

    async def get(self, session: AsyncSession, team_id: str, day: date) -> Optional[DayPreparationDB]:
        result = await session.execute(
            select(DayPreparationDB).where(
                DayPreparationDB.team_id == team_id,
                DayPreparationDB.date == day,
            )
        )
        return result.scalar_one_or_none()

    async def mark_prepared(
        self,
        session: AsyncSession,
        team_id: str,
        day: date,
        prepared_at: datetime,
        prepared_by_id: Optional[str] = None,
    ) -> DayPreparationDB:
        """Insert or refresh the record for (team, day)."""
        record = await self.get(session, team_id, day)
        if record is None:
            try:
                async with session.begin_nested():
                    record = DayPreparationDB(
                        team_id=team_id,
                        date=day,
                        prepared_at=prepared_at,
                        prepared_by_id=prepared_by_id,
                    )
                    session.add(record)
                    await session.flush()
                return record
            except IntegrityError:
                # A concurrent pass recorded the day first
                logger.debug(f"Day {day} for team {team_id} already recorded")
                record = await self.get(session, team_id, day)

        record.prepared_at = prepared_at
        if prepared_by_id:
            record.prepared_by_id = prepared_by_id
        await session.flush()
        return record


# Singleton
_preparation_repo: Optional[DayPreparationRepository] = None


def get_preparation_repository() -> DayPreparationRepository:
    """Get the day preparation repository singleton."""
    global _preparation_repo
    if _preparation_repo is None:
        _preparation_repo = DayPreparationRepository()
    return _preparation_repo
