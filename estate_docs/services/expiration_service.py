import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from core.date_helper import add_days, as_naive_utc, utcnow, whole_days_between
from core.errors import ResourceNotFound, StaleStepState, ValidationError
from core.event_publish import publish_event
from core.settings import settings
from email_notify.notification_service import NotificationSink, notification_sink
from models.enums import AuditAction, DocumentStatus, ExpirationStatus, NotificationType
from models.models import Document
from repos.document_repo import DocumentRepo

from .audit_service import AuditRecorder

logger = logging.getLogger(__name__)


def get_expiration_status(
    expiration_date: Optional[datetime],
    now: datetime,
    expiring_soon_days: int = settings.EXPIRING_SOON_DAYS,
) -> ExpirationStatus:
    if expiration_date is None:
        return ExpirationStatus.NO_EXPIRATION
    if as_naive_utc(now) > as_naive_utc(expiration_date):
        return ExpirationStatus.EXPIRED
    if whole_days_between(now, expiration_date) <= expiring_soon_days:
        return ExpirationStatus.EXPIRING_SOON
    return ExpirationStatus.VALID


@dataclass(frozen=True)
class RenewalPreview:
    status: ExpirationStatus
    expiration_date: Optional[datetime]
    days_until_expiration: Optional[int]
    next_expiration_date: Optional[datetime]


def renewal_preview(
    expiration_date: Optional[datetime],
    renewal_period_days: int,
    now: datetime,
) -> RenewalPreview:
    if expiration_date is None:
        return RenewalPreview(ExpirationStatus.NO_EXPIRATION, None, None, None)
    return RenewalPreview(
        status=get_expiration_status(expiration_date, now),
        expiration_date=expiration_date,
        days_until_expiration=whole_days_between(now, expiration_date),
        next_expiration_date=add_days(expiration_date, renewal_period_days),
    )


class ExpirationTracker:
    def __init__(
        self,
        db,
        notifier: Optional[NotificationSink] = None,
        events: Callable = publish_event,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.documents: DocumentRepo = DocumentRepo(db)
        self.audit: AuditRecorder = AuditRecorder(db, clock=clock)
        self.notifier = notifier or notification_sink
        self.events = events
        self.clock = clock

    async def _get_document(self, document_id: uuid.UUID) -> Document:
        document = await self.documents.get(document_id)
        if not document:
            raise ResourceNotFound("Document not found", document_id=document_id)
        return document

    async def preview(self, document_id: uuid.UUID) -> RenewalPreview:
        document = await self._get_document(document_id)
        return renewal_preview(
            document.expiration_date, document.renewal_period_days, self.clock()
        )

    async def renew(
        self,
        document_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
        renewal_period_days: Optional[int] = None,
    ) -> Document:
        """Extend from the previous boundary, never from now."""
        document = await self._get_document(document_id)
        if document.expiration_date is None:
            raise ValidationError(
                "Document has no expiration date to renew", document_id=document_id
            )

        period = renewal_period_days or document.renewal_period_days
        if period <= 0:
            raise ValidationError("Renewal period must be positive")

        old_expiration = document.expiration_date
        new_expiration = add_days(old_expiration, period)
        now = self.clock()

        new_status = None
        if document.status == DocumentStatus.EXPIRED and new_expiration > now:
            new_status = DocumentStatus.APPROVED

        try:
            won = await self.documents.update_expiration(
                document_id, old_expiration, new_expiration, new_status
            )
            if not won:
                raise StaleStepState(
                    "Document was renewed concurrently", document_id=document_id
                )
            await self.audit.record(
                document_id,
                AuditAction.RENEW,
                actor_id,
                {
                    "previous_expiration": old_expiration,
                    "new_expiration": new_expiration,
                    "renewal_period_days": period,
                    "status": new_status,
                },
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Document %s renewed: %s -> %s", document_id, old_expiration, new_expiration
        )
        document = await self._get_document(document_id)
        data = {
            "document_id": str(document_id),
            "expiration_date": new_expiration.isoformat(),
        }
        await self.events("document.renewed", data)
        await self.notifier.notify(
            document.property_id,
            NotificationType.DOCUMENT_RENEWED,
            "Document renewed",
            f"'{document.title}' now expires on {new_expiration:%Y-%m-%d}.",
            data,
        )
        return document

    async def refresh_status(self, document_id: uuid.UUID) -> Document:
        """Lazily move an approved document past its expiration date to expired."""
        document = await self._get_document(document_id)
        now = self.clock()
        if (
            document.status != DocumentStatus.APPROVED
            or get_expiration_status(document.expiration_date, now)
            != ExpirationStatus.EXPIRED
        ):
            return document

        try:
            won = await self.documents.transition_status(
                document_id, [DocumentStatus.APPROVED], DocumentStatus.EXPIRED
            )
            if won:
                await self.audit.record(
                    document_id,
                    AuditAction.EXPIRE,
                    None,
                    {"expiration_date": document.expiration_date},
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if won:
            logger.info("Document %s expired", document_id)
            await self.events("document.expired", {"document_id": str(document_id)})
        return await self._get_document(document_id)

    async def expire_due(self) -> int:
        """Sweep approved documents whose expiration date has passed."""
        expired = 0
        for document in await self.documents.list_expiring_before(self.clock()):
            document_id = document.id
            refreshed = await self.refresh_status(document_id)
            if refreshed.status == DocumentStatus.EXPIRED:
                expired += 1
        return expired
