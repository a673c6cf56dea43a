"""
Audit log repository.

Entries are written in their own session so that an audit record survives
independently of the operation it describes.
"""

import logging
from typing import Optional, List, Dict, Any
from datetime import datetime

from sqlalchemy import select

from ..connection import get_database, Database
from ..models import AuditLogDB

logger = logging.getLogger(__name__)


class AuditRepository:
    """Repository for audit log operations."""

    def __init__(self, db: Optional[Database] = None):
        self._db = db

    @property
    def db(self) -> Database:
        return self._db or get_database()

    async def create(
        self,
        action: str,
        user_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        level: str = "info",
        timestamp: Optional[datetime] = None,
    ) -> Optional[AuditLogDB]:
        """Write an audit entry. Returns None on failure."""
        try:
            async with self.db.session() as session:
                entry = AuditLogDB(
                    action=action,
                    user_id=user_id,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    details=details,
                    level=level,
                    timestamp=timestamp or datetime.now(),
                )
                session.add(entry)
                await session.flush()

                logger.debug(f"Audit log: {action} on {entity_type}/{entity_id} by {user_id}")
                return entry

        except Exception as e:
            logger.error(f"Error creating audit log: {e}")
            return None

    async def get_entity_history(self, entity_type: str, entity_id: str) -> List[AuditLogDB]:
        """All entries for one entity, newest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(AuditLogDB)
                .where(AuditLogDB.entity_type == entity_type, AuditLogDB.entity_id == entity_id)
                .order_by(AuditLogDB.timestamp.desc(), AuditLogDB.id.desc())
            )
            return list(result.scalars().all())


# Singleton
_audit_repo: Optional[AuditRepository] = None


def get_audit_repository() -> AuditRepository:
    """Get the audit repository singleton."""
    global _audit_repo
    if _audit_repo is None:
        _audit_repo = AuditRepository()
    return _audit_repo
