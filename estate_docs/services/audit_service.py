import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from core.date_helper import utcnow
from models.enums import AuditAction
from models.models import AuditLogEntry
from repos.audit_log_repo import AuditLogRepo

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Appends audit entries inside the caller's unit of work.

    The recorder never commits: an entry lands together with the state
    change it describes, or not at all.
    """

    def __init__(self, db, clock: Callable[[], datetime] = utcnow):
        self.repo: AuditLogRepo = AuditLogRepo(db)
        self.clock = clock

    async def record(
        self,
        document_id: uuid.UUID,
        action: AuditAction,
        actor_id: Optional[uuid.UUID] = None,
        details: Optional[dict] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            document_id=document_id,
            action=action,
            actor_id=actor_id,
            details=_jsonable(details or {}),
            created_at=self.clock(),
        )
        await self.repo.add(entry)
        logger.debug(
            "Audit %s on document %s by %s", action.value, document_id, actor_id
        )
        return entry

    async def history(
        self,
        document_id: uuid.UUID,
        action: Optional[AuditAction] = None,
        actor_id: Optional[uuid.UUID] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditLogEntry]:
        return await self.repo.list(
            document_id,
            action=action,
            actor_id=actor_id,
            since=since,
            until=until,
            limit=limit,
            offset=offset,
        )


def _jsonable(value):
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (uuid.UUID, datetime)):
        return str(value)
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    return value
