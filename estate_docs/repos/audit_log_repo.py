import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from models.enums import AuditAction
from models.models import AuditLogEntry


class AuditLogRepo:
    """Append-only: no update or delete."""

    def __init__(self, db):
        self.db = db

    async def add(self, entry: AuditLogEntry) -> AuditLogEntry:
        try:
            self.db.add(entry)
            await self.db.flush()
            return entry
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def list(
        self,
        document_id: uuid.UUID,
        action: Optional[AuditAction] = None,
        actor_id: Optional[uuid.UUID] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditLogEntry]:
        stmt = select(AuditLogEntry).where(AuditLogEntry.document_id == document_id)
        if action is not None:
            stmt = stmt.where(AuditLogEntry.action == action)
        if actor_id is not None:
            stmt = stmt.where(AuditLogEntry.actor_id == actor_id)
        if since is not None:
            stmt = stmt.where(AuditLogEntry.created_at >= since)
        if until is not None:
            stmt = stmt.where(AuditLogEntry.created_at <= until)
        stmt = stmt.order_by(AuditLogEntry.created_at).offset(offset).limit(limit)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())
