import logging
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional

from core.date_helper import utcnow
from core.errors import (
    AlreadyStarted,
    AlreadyTerminal,
    ExternalServiceUnavailable,
    ResourceNotFound,
)
from core.event_publish import publish_event
from email_notify.notification_service import NotificationSink, notification_sink
from models.enums import AuditAction, NotificationType, VerificationStatus, VerificationType
from models.models import VerificationResult
from repos.document_repo import DocumentRepo
from repos.verification_repo import VerificationRepo
from schemas.schema import VerificationCallback
from verifiers.document_verifier import DocumentVerifierClient, document_verifier

from .audit_service import AuditRecorder

logger = logging.getLogger(__name__)

INITIATION_FAILED_NOTE = "Failed to initiate verification process"
INITIATION_FAILED_FIELD = "verification_initiation"


@dataclass(frozen=True)
class CallbackOutcome:
    status: str
    verification: Optional[VerificationResult] = None

    @property
    def applied(self) -> bool:
        return self.status == "ok"


class VerificationService:
    def __init__(
        self,
        db,
        verifier: Optional[DocumentVerifierClient] = None,
        notifier: Optional[NotificationSink] = None,
        events: Callable = publish_event,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.repo: VerificationRepo = VerificationRepo(db)
        self.documents: DocumentRepo = DocumentRepo(db)
        self.audit: AuditRecorder = AuditRecorder(db, clock=clock)
        self.verifier = verifier or document_verifier
        self.notifier = notifier or notification_sink
        self.events = events
        self.clock = clock

    async def initiate(
        self,
        document_id: uuid.UUID,
        verification_type: VerificationType,
        expected_fields: Optional[List[str]] = None,
        subject: Optional[dict] = None,
        step_id: Optional[uuid.UUID] = None,
        actor_id: Optional[uuid.UUID] = None,
        retry_of_id: Optional[uuid.UUID] = None,
    ) -> VerificationResult:
        """Create a pending row and hand the document to the verifier.

        A transport failure is recorded on the row as a failed initiation
        and the row is returned; it is not raised.
        """
        document = await self.documents.get(document_id)
        if not document:
            raise ResourceNotFound("Document not found", document_id=document_id)

        now = self.clock()
        verification = VerificationResult(
            document_id=document_id,
            step_id=step_id,
            retry_of_id=retry_of_id,
            verification_type=verification_type,
            status=VerificationStatus.PENDING,
            expected_fields=list(expected_fields or []),
            subject=dict(subject) if subject else None,
            verified_fields=[],
            failed_fields=[],
            confidence=0.0,
            created_at=now,
            updated_at=now,
        )
        try:
            await self.repo.add(verification)
            await self.audit.record(
                document_id,
                AuditAction.VERIFY,
                actor_id,
                {
                    "verification_id": verification.id,
                    "type": verification_type,
                    "event": "initiated",
                    "retry_of_id": retry_of_id,
                },
            )
            # Committed before the call so an early callback can find the row.
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        payload = {
            **(subject or {}),
            "verificationId": str(verification.id),
            "documentId": str(document_id),
            "documentUrl": document.storage_url,
            "type": verification_type.value,
            "expectedFields": verification.expected_fields,
        }
        try:
            response = await self.verifier.submit(verification_type, payload)
        except ExternalServiceUnavailable as e:
            logger.warning(
                "Verification %s could not be initiated: %s", verification.id, e.detail
            )
            await self._mark_initiation_failed(verification.id)
            return await self.repo.get(verification.id)

        reference = (response or {}).get("id") or (response or {}).get("reference")
        if reference:
            await self.repo.set_reference(verification.id, str(reference))
            await self.db.commit()

        await self.events(
            "verification.initiated",
            {"verification_id": str(verification.id), "document_id": str(document_id)},
        )
        return await self.repo.get(verification.id)

    async def _mark_initiation_failed(self, verification_id: uuid.UUID) -> None:
        now = self.clock()
        try:
            await self.repo.complete_pending(
                verification_id,
                status=VerificationStatus.FAILED,
                verified_fields=[],
                failed_fields=[INITIATION_FAILED_FIELD],
                confidence=0.0,
                notes=INITIATION_FAILED_NOTE,
                updated_at=now,
                completed_at=now,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def handle_callback(self, payload: VerificationCallback) -> CallbackOutcome:
        verification = await self.repo.find_for_callback(payload.id)
        if not verification:
            logger.warning("Verification callback for unknown id %s", payload.id)
            return CallbackOutcome("unknown verification")

        if verification.status != VerificationStatus.PENDING:
            logger.warning(
                "Ignoring callback for verification %s already %s",
                verification.id,
                verification.status.value,
            )
            return CallbackOutcome("already processed", verification)

        verification_id = verification.id
        new_status = (
            VerificationStatus.VERIFIED if payload.succeeded else VerificationStatus.FAILED
        )
        now = self.clock()
        values = {"status": new_status, "updated_at": now, "completed_at": now}
        if payload.succeeded:
            values.update(
                verified_fields=payload.results.verified_fields,
                failed_fields=payload.results.failed_fields,
                confidence=payload.results.confidence,
                notes=payload.results.notes,
            )
        else:
            values.update(
                failed_fields=payload.results.failed_fields,
                notes=payload.results.notes,
            )

        try:
            won = await self.repo.complete_pending(verification_id, **values)
            if not won:
                await self.db.rollback()
                logger.warning(
                    "Verification %s was completed concurrently", verification_id
                )
                return CallbackOutcome(
                    "already processed", await self.repo.get(verification_id)
                )
            await self.audit.record(
                verification.document_id,
                AuditAction.VERIFY,
                None,
                {
                    "verification_id": verification.id,
                    "event": "completed",
                    "status": new_status,
                },
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        verification = await self.repo.get(verification.id)
        await self._announce(verification)
        return CallbackOutcome("ok", verification)

    async def _announce(self, verification: VerificationResult) -> None:
        document = await self.documents.get(verification.document_id)
        outcome = (
            "completed" if verification.status == VerificationStatus.VERIFIED else "failed"
        )
        data = {
            "document_id": str(verification.document_id),
            "verification_id": str(verification.id),
            "status": verification.status.value,
        }
        await self.events(f"verification.{verification.status.value}", data)
        if not document:
            return
        message = f"Document verification {outcome}"
        await self.notifier.notify(
            document.property_id,
            NotificationType.DOCUMENT_VERIFICATION,
            "Document Verification Update",
            message,
            data,
        )
        if document.tenant_id:
            await self.notifier.notify(
                document.tenant_id,
                NotificationType.DOCUMENT_VERIFICATION,
                "Document Verification Update",
                message,
                data,
            )

    async def retry(
        self, verification_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None
    ) -> VerificationResult:
        original = await self.get(verification_id)
        if original.status == VerificationStatus.PENDING:
            raise AlreadyStarted(
                "Verification is still pending", verification_id=verification_id
            )
        if original.status == VerificationStatus.VERIFIED:
            raise AlreadyTerminal(
                "Verification already succeeded", verification_id=verification_id
            )

        return await self.initiate(
            document_id=original.document_id,
            verification_type=original.verification_type,
            expected_fields=original.expected_fields,
            subject=original.subject,
            step_id=original.step_id,
            actor_id=actor_id,
            retry_of_id=original.id,
        )

    async def get(self, verification_id: uuid.UUID) -> VerificationResult:
        verification = await self.repo.get(verification_id)
        if not verification:
            raise ResourceNotFound(
                "Verification not found", verification_id=verification_id
            )
        return verification

    async def list_for_document(self, document_id: uuid.UUID) -> list[VerificationResult]:
        return await self.repo.list_for_document(document_id)
