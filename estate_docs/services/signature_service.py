import logging
import uuid
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from core.date_helper import add_days, utcnow
from core.errors import (
    AlreadyTerminal,
    AuthorizationDenied,
    DuplicatePendingRequest,
    Expired,
    ResourceNotFound,
    ValidationError,
)
from core.event_publish import publish_event
from core.settings import settings
from email_notify.notification_service import NotificationSink, notification_sink
from models.enums import (
    TERMINAL_DOCUMENT_STATUSES,
    AuditAction,
    NotificationType,
    SignatureStatus,
    SignerRole,
)
from models.models import Document, SignatureRequest
from repos.actor_repo import ActorRepo
from repos.document_repo import DocumentRepo
from repos.signature_request_repo import SignatureRequestRepo
from schemas.schema import SignatureEvidence

from .audit_service import AuditRecorder
from .signature_state import all_signed, latest_per_signer
from .workflow_service import WorkflowOrchestrator

logger = logging.getLogger(__name__)

TERMINAL_SIGNATURE_STATUSES = {
    SignatureStatus.SIGNED,
    SignatureStatus.DECLINED,
    SignatureStatus.EXPIRED,
}


class SignatureCoordinator:
    """pending -> signed | declined | expired; terminal states are final."""

    def __init__(
        self,
        db,
        orchestrator: Optional[WorkflowOrchestrator] = None,
        notifier: Optional[NotificationSink] = None,
        events: Callable = publish_event,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.repo: SignatureRequestRepo = SignatureRequestRepo(db)
        self.documents: DocumentRepo = DocumentRepo(db)
        self.actors: ActorRepo = ActorRepo(db)
        self.audit: AuditRecorder = AuditRecorder(db, clock=clock)
        self.notifier = notifier or notification_sink
        self.events = events
        self.clock = clock
        self.orchestrator = orchestrator or WorkflowOrchestrator(
            db, notifier=self.notifier, events=events, clock=clock
        )

    async def _get_document(self, document_id: uuid.UUID) -> Document:
        document = await self.documents.get(document_id)
        if not document:
            raise ResourceNotFound("Document not found", document_id=document_id)
        return document

    async def _get_request(self, request_id: uuid.UUID) -> SignatureRequest:
        request = await self.repo.get(request_id)
        if not request:
            raise ResourceNotFound(
                "Signature request not found", request_id=request_id
            )
        return request

    async def _expire_if_overdue(self, request: SignatureRequest, reason: str = "overdue") -> bool:
        """Lazily move an overdue pending request to expired; the caller commits."""
        now = self.clock()
        if request.status != SignatureStatus.PENDING or not request.is_overdue(now):
            return False

        won = await self.repo.transition(
            request.id,
            [SignatureStatus.PENDING],
            status=SignatureStatus.EXPIRED,
            resolved_at=now,
        )
        if won:
            await self.audit.record(
                request.document_id,
                AuditAction.EXPIRE,
                None,
                {
                    "signature_request_id": request.id,
                    "signer_id": request.signer_id,
                    "reason": reason,
                },
            )
            logger.info("Signature request %s expired", request.id)
        return won

    async def _add_request(
        self,
        document_id: uuid.UUID,
        signer_id: uuid.UUID,
        role: SignerRole,
        expires_in_days: int,
        actor_id: Optional[uuid.UUID],
        replaces_id: Optional[uuid.UUID] = None,
    ) -> SignatureRequest:
        now = self.clock()
        request = SignatureRequest(
            document_id=document_id,
            signer_id=signer_id,
            signer_role=role,
            status=SignatureStatus.PENDING,
            replaces_id=replaces_id,
            created_at=now,
            expires_at=add_days(now, expires_in_days),
        )
        try:
            await self.repo.add(request)
        except IntegrityError:
            await self.db.rollback()
            raise DuplicatePendingRequest(
                "Signer already has a pending request",
                document_id=document_id,
                signer_id=signer_id,
            )
        await self.audit.record(
            document_id,
            AuditAction.REQUEST_SIGNATURE,
            actor_id,
            {
                "signature_request_id": request.id,
                "signer_id": signer_id,
                "signer_role": role,
                "replaces_id": replaces_id,
                "expires_at": request.expires_at,
            },
        )
        return request

    async def _notify_signer(self, request: SignatureRequest, document: Document) -> None:
        signer = await self.actors.get_user(request.signer_id)
        await self.notifier.notify(
            request.signer_id,
            NotificationType.SIGNATURE_REQUEST,
            "Signature requested",
            f"Please sign '{document.title}' before "
            f"{request.expires_at:%Y-%m-%d %H:%M} UTC.",
            {
                "document_id": str(document.id),
                "signature_request_id": str(request.id),
            },
            email=signer.email if signer else None,
        )

    async def create(
        self,
        document_id: uuid.UUID,
        signer_id: uuid.UUID,
        role: SignerRole,
        expires_in_days: Optional[int] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> SignatureRequest:
        if expires_in_days is None:
            expires_in_days = settings.SIGNATURE_EXPIRES_IN_DAYS
        if expires_in_days <= 0:
            raise ValidationError("Expiry must be at least one day")

        document = await self._get_document(document_id)
        if document.status in TERMINAL_DOCUMENT_STATUSES:
            raise AlreadyTerminal(
                f"Document is {document.status.value}", document_id=document_id
            )
        if not await self.actors.get_user(signer_id):
            raise ResourceNotFound("Signer not found", signer_id=signer_id)

        try:
            existing = await self.repo.get_pending(document_id, signer_id)
            if existing and not await self._expire_if_overdue(existing):
                raise DuplicatePendingRequest(
                    "Signer already has a pending request",
                    document_id=document_id,
                    signer_id=signer_id,
                    request_id=existing.id,
                )
            request = await self._add_request(
                document_id, signer_id, role, expires_in_days, actor_id
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Signature request %s created for signer %s on document %s",
            request.id,
            signer_id,
            document_id,
        )
        await self.events(
            "signature.requested",
            {
                "document_id": str(document_id),
                "signature_request_id": str(request.id),
                "signer_id": str(signer_id),
            },
        )
        await self._notify_signer(request, document)
        return request

    async def resend(
        self, request_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None
    ) -> SignatureRequest:
        original = await self._get_request(request_id)
        if original.status in (SignatureStatus.SIGNED, SignatureStatus.DECLINED):
            raise AlreadyTerminal(
                f"Signature request is {original.status.value}", request_id=request_id
            )

        document_id = original.document_id
        signer_id = original.signer_id
        role = original.signer_role
        lifetime = max((original.expires_at - original.created_at).days, 1)

        try:
            if original.status == SignatureStatus.PENDING:
                won = await self.repo.transition(
                    request_id,
                    [SignatureStatus.PENDING],
                    status=SignatureStatus.EXPIRED,
                    resolved_at=self.clock(),
                )
                if not won:
                    current = await self._get_request(request_id)
                    raise AlreadyTerminal(
                        f"Signature request is {current.status.value}",
                        request_id=request_id,
                    )
                await self.audit.record(
                    document_id,
                    AuditAction.EXPIRE,
                    actor_id,
                    {
                        "signature_request_id": request_id,
                        "signer_id": signer_id,
                        "reason": "resent",
                    },
                )
            request = await self._add_request(
                document_id,
                signer_id,
                role,
                lifetime,
                actor_id,
                replaces_id=request_id,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        document = await self._get_document(document_id)
        await self.events(
            "signature.resent",
            {
                "document_id": str(document_id),
                "signature_request_id": str(request.id),
                "replaces_id": str(request_id),
            },
        )
        await self._notify_signer(request, document)
        return request

    async def _expire_and_raise(self, request: SignatureRequest) -> None:
        request_id = request.id
        try:
            await self._expire_if_overdue(request)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        raise Expired("Signature request has expired", request_id=request_id)

    async def _load_for_resolution(
        self, request_id: uuid.UUID, actor_id: uuid.UUID
    ) -> SignatureRequest:
        request = await self._get_request(request_id)
        if request.signer_id != actor_id:
            raise AuthorizationDenied(
                "Only the requested signer can act on this request",
                request_id=request_id,
            )
        if request.status in TERMINAL_SIGNATURE_STATUSES:
            raise AlreadyTerminal(
                f"Signature request is {request.status.value}", request_id=request_id
            )
        if request.is_overdue(self.clock()):
            await self._expire_and_raise(request)
        return request

    async def _raise_lost_resolution(self, request_id: uuid.UUID) -> None:
        current = await self._get_request(request_id)
        if current.status == SignatureStatus.PENDING and current.is_overdue(
            self.clock()
        ):
            await self._expire_and_raise(current)
        if current.status == SignatureStatus.EXPIRED:
            raise Expired("Signature request has expired", request_id=request_id)
        raise AlreadyTerminal(
            f"Signature request is {current.status.value}", request_id=request_id
        )

    async def sign(
        self,
        request_id: uuid.UUID,
        evidence: SignatureEvidence,
        actor_id: uuid.UUID,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SignatureRequest:
        """Record the signer's mark.

        ip_address and user_agent are what the server observed for the
        request, never values supplied by the signer.
        """
        request = await self._load_for_resolution(request_id, actor_id)
        document_id = request.document_id
        now = self.clock()
        stored_evidence = {
            "signed_at": now.isoformat(),
            **evidence.model_dump(),
            "ip_address": ip_address,
            "user_agent": user_agent,
        }

        try:
            won = await self.repo.transition(
                request_id,
                [SignatureStatus.PENDING],
                not_expired_at=now,
                status=SignatureStatus.SIGNED,
                evidence=stored_evidence,
                resolved_at=now,
            )
            if not won:
                await self._raise_lost_resolution(request_id)

            await self.audit.record(
                document_id,
                AuditAction.SIGN,
                actor_id,
                {
                    "signature_request_id": request_id,
                    "signer_role": request.signer_role,
                    "ip_address": ip_address,
                    "user_agent": user_agent,
                },
            )

            requests = await self.repo.list_for_document(document_id)
            complete = all_signed(requests)
            if complete:
                await self.orchestrator.activate_signature_step(document_id)
                await self.orchestrator.sync_document_status(document_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Signature request %s signed by %s", request_id, actor_id)
        document = await self._get_document(document_id)
        data = {
            "document_id": str(document_id),
            "signature_request_id": str(request_id),
            "all_signed": complete,
        }
        await self.events("signature.signed", data)
        await self.notifier.notify(
            document.property_id,
            NotificationType.DOCUMENT_SIGNED,
            "Document signed",
            f"'{document.title}' was signed"
            + (" by all parties." if complete else "."),
            data,
        )
        return await self._get_request(request_id)

    async def decline(
        self,
        request_id: uuid.UUID,
        reason: str,
        actor_id: uuid.UUID,
    ) -> SignatureRequest:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required to decline")

        request = await self._load_for_resolution(request_id, actor_id)
        document_id = request.document_id
        now = self.clock()

        try:
            won = await self.repo.transition(
                request_id,
                [SignatureStatus.PENDING],
                not_expired_at=now,
                status=SignatureStatus.DECLINED,
                decline_reason=reason,
                resolved_at=now,
            )
            if not won:
                await self._raise_lost_resolution(request_id)

            await self.audit.record(
                document_id,
                AuditAction.DECLINE,
                actor_id,
                {"signature_request_id": request_id, "reason": reason},
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Signature request %s declined by %s", request_id, actor_id)
        document = await self._get_document(document_id)
        data = {
            "document_id": str(document_id),
            "signature_request_id": str(request_id),
            "reason": reason,
        }
        await self.events("signature.declined", data)
        await self.notifier.notify(
            document.property_id,
            NotificationType.SIGNATURE_DECLINED,
            "Signature declined",
            f"A signer declined '{document.title}': {reason}",
            data,
        )
        return await self._get_request(request_id)

    async def get(self, request_id: uuid.UUID) -> SignatureRequest:
        request = await self._get_request(request_id)
        try:
            if await self._expire_if_overdue(request):
                await self.db.commit()
                return await self._get_request(request_id)
        except Exception:
            await self.db.rollback()
            raise
        return request

    async def list_for_document(self, document_id: uuid.UUID) -> list[SignatureRequest]:
        await self._get_document(document_id)
        requests = await self.repo.list_for_document(document_id)
        try:
            expired_any = False
            for request in requests:
                expired_any = await self._expire_if_overdue(request) or expired_any
            if expired_any:
                await self.db.commit()
                requests = await self.repo.list_for_document(document_id)
        except Exception:
            await self.db.rollback()
            raise
        return requests

    async def latest_for_document(
        self, document_id: uuid.UUID
    ) -> list[SignatureRequest]:
        requests = await self.list_for_document(document_id)
        return list(latest_per_signer(requests).values())

    async def expire_overdue(self) -> int:
        """Bulk sweep for schedulers; reads expire lazily anyway."""
        overdue = await self.repo.list_overdue_pending(self.clock())
        expired = 0
        try:
            for request in overdue:
                if await self._expire_if_overdue(request):
                    expired += 1
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        if expired:
            logger.info("Expired %s overdue signature requests", expired)
        return expired
