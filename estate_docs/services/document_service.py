import logging
import uuid
from typing import Callable, Optional

from core.date_helper import as_naive_utc, utcnow
from core.errors import ResourceNotFound
from core.event_publish import publish_event
from core.settings import settings
from models.enums import AuditAction, DocumentStatus
from models.models import AuditLogEntry, Document
from repos.actor_repo import ActorRepo
from repos.document_repo import DocumentRepo
from schemas.schema import DocumentCreate

from .audit_service import AuditRecorder

logger = logging.getLogger(__name__)


class DocumentService:
    def __init__(self, db, events: Callable = publish_event, clock: Callable = utcnow):
        self.db = db
        self.repo: DocumentRepo = DocumentRepo(db)
        self.actors: ActorRepo = ActorRepo(db)
        self.audit: AuditRecorder = AuditRecorder(db, clock=clock)
        self.events = events
        self.clock = clock

    async def upload(self, data: DocumentCreate, actor_id: uuid.UUID) -> Document:
        if not await self.actors.get_property(data.property_id):
            raise ResourceNotFound("Property not found", property_id=data.property_id)

        now = self.clock()
        document = Document(
            property_id=data.property_id,
            tenant_id=data.tenant_id,
            uploaded_by_id=actor_id,
            title=data.title,
            document_type=data.document_type,
            storage_url=data.storage_url,
            jurisdiction=data.jurisdiction,
            processed_text=data.processed_text,
            status=DocumentStatus.DRAFT,
            expiration_date=(
                as_naive_utc(data.expiration_date) if data.expiration_date else None
            ),
            renewal_period_days=(
                data.renewal_period_days or settings.DEFAULT_RENEWAL_PERIOD_DAYS
            ),
            created_at=now,
            updated_at=now,
        )
        try:
            await self.repo.add(document)
            await self.audit.record(
                document.id,
                AuditAction.UPLOAD,
                actor_id,
                {"title": document.title, "document_type": document.document_type},
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Document %s uploaded by %s", document.id, actor_id)
        await self.events(
            "document.uploaded",
            {"document_id": str(document.id), "property_id": str(document.property_id)},
        )
        return document

    async def get(self, document_id: uuid.UUID) -> Document:
        document = await self.repo.get(document_id)
        if not document:
            raise ResourceNotFound("Document not found", document_id=document_id)
        return document

    async def get_with_steps(self, document_id: uuid.UUID) -> Document:
        document = await self.repo.get_with_steps(document_id)
        if not document:
            raise ResourceNotFound("Document not found", document_id=document_id)
        return document

    async def list_for_property(self, property_id: uuid.UUID) -> list[Document]:
        return await self.repo.list_for_property(property_id)

    async def record_access(
        self,
        document_id: uuid.UUID,
        action: AuditAction,
        actor_id: uuid.UUID,
        details: Optional[dict] = None,
    ) -> AuditLogEntry:
        """view, download, share and comment entries."""
        await self.get(document_id)
        try:
            entry = await self.audit.record(document_id, action, actor_id, details)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return entry

    async def history(self, document_id: uuid.UUID, **filters) -> list[AuditLogEntry]:
        await self.get(document_id)
        return await self.audit.history(document_id, **filters)
