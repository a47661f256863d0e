import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy.exc import IntegrityError

from core.date_helper import add_days, utcnow
from core.errors import (
    AlreadyStarted,
    AlreadyTerminal,
    ClassifierResponseInvalid,
    ComplianceBlocked,
    ExternalServiceUnavailable,
    ResourceNotFound,
    StaleStepState,
    StepOrderViolation,
    ValidationError,
)
from core.event_publish import publish_event
from core.settings import settings
from email_notify.notification_service import NotificationSink, notification_sink
from legal_ai.legal_classifier import LegalClassifierClient
from models.enums import (
    OPEN_STEP_STATUSES,
    AuditAction,
    DocumentStatus,
    NotificationType,
    StepDecision,
    StepName,
    StepStatus,
    VerificationStatus,
    VerificationType,
)
from models.models import Document, VerificationResult, WorkflowStep
from repos.compliance_report_repo import ComplianceReportRepo
from repos.document_repo import DocumentRepo
from repos.signature_request_repo import SignatureRequestRepo
from repos.verification_repo import VerificationRepo
from repos.workflow_step_repo import WorkflowStepRepo
from verifiers.document_verifier import DocumentVerifierClient

from .audit_service import AuditRecorder
from .compliance_service import ComplianceValidator
from .signature_state import all_signed
from .verification_service import VerificationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepDefinition:
    name: str
    requires_validation: bool = False
    requires_signatures: bool = False
    assignee_id: Optional[uuid.UUID] = None
    due_in_days: Optional[int] = None


@dataclass(frozen=True)
class StepOutcome:
    decision: StepDecision
    reason: Optional[str] = None
    verification_id: Optional[uuid.UUID] = None
    report_id: Optional[uuid.UUID] = None
    override_reason: Optional[str] = None


DEFAULT_LEASE_WORKFLOW: tuple[StepDefinition, ...] = (
    StepDefinition(StepName.UPLOAD.value),
    StepDefinition(StepName.TENANT_VERIFICATION.value),
    StepDefinition(StepName.LEGAL_REVIEW.value, requires_validation=True),
    StepDefinition(StepName.LANDLORD_APPROVAL.value, requires_signatures=True),
)

STAGE_STATUS: dict[StepName, DocumentStatus] = {
    StepName.UPLOAD: DocumentStatus.DRAFT,
    StepName.TENANT_VERIFICATION: DocumentStatus.PENDING_VERIFICATION,
    StepName.LEGAL_REVIEW: DocumentStatus.PENDING_VALIDATION,
    StepName.LANDLORD_APPROVAL: DocumentStatus.PENDING_SIGNATURE,
}


def derive_document_status(
    steps: Iterable[WorkflowStep],
    current: DocumentStatus,
    signatures_complete: bool = False,
) -> DocumentStatus:
    """Document status as a function of its steps.

    Expiration is tracked separately, so an expired document stays expired.
    """
    current = DocumentStatus(current)
    if current == DocumentStatus.EXPIRED:
        return current

    ordered = sorted(steps, key=lambda s: s.position)
    if not ordered:
        return current
    if any(s.status == StepStatus.REJECTED for s in ordered):
        return DocumentStatus.REJECTED

    open_steps = [s for s in ordered if s.status != StepStatus.COMPLETED]
    if not open_steps:
        return DocumentStatus.APPROVED

    stage = open_steps[0]
    if stage.requires_signatures:
        return (
            DocumentStatus.SIGNED
            if signatures_complete
            else DocumentStatus.PENDING_SIGNATURE
        )
    if stage.requires_validation:
        return DocumentStatus.PENDING_VALIDATION
    try:
        return STAGE_STATUS[StepName(stage.name)]
    except ValueError:
        return current


class WorkflowOrchestrator:
    def __init__(
        self,
        db,
        verifier: Optional[DocumentVerifierClient] = None,
        classifier: Optional[LegalClassifierClient] = None,
        notifier: Optional[NotificationSink] = None,
        events: Callable = publish_event,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.steps: WorkflowStepRepo = WorkflowStepRepo(db)
        self.documents: DocumentRepo = DocumentRepo(db)
        self.signatures: SignatureRequestRepo = SignatureRequestRepo(db)
        self.verifications: VerificationRepo = VerificationRepo(db)
        self.reports: ComplianceReportRepo = ComplianceReportRepo(db)
        self.audit: AuditRecorder = AuditRecorder(db, clock=clock)
        self.notifier = notifier or notification_sink
        self.events = events
        self.clock = clock
        self.verification: VerificationService = VerificationService(
            db, verifier=verifier, notifier=self.notifier, events=events, clock=clock
        )
        self.compliance: ComplianceValidator = ComplianceValidator(
            db, classifier=classifier, clock=clock
        )

    async def _get_document(self, document_id: uuid.UUID) -> Document:
        document = await self.documents.get(document_id)
        if not document:
            raise ResourceNotFound("Document not found", document_id=document_id)
        return document

    async def _get_step(self, step_id: uuid.UUID) -> WorkflowStep:
        step = await self.steps.get(step_id)
        if not step:
            raise ResourceNotFound("Workflow step not found", step_id=step_id)
        return step

    async def sync_document_status(self, document_id: uuid.UUID) -> DocumentStatus:
        """Recompute the document status and write it with a conditional update."""
        document = await self._get_document(document_id)
        steps = await self.steps.list_for_document(document_id)
        requests = await self.signatures.list_for_document(document_id)
        target = derive_document_status(steps, document.status, all_signed(requests))

        if target != document.status:
            won = await self.documents.transition_status(
                document_id, [document.status], target
            )
            if not won:
                raise StaleStepState(
                    "Document status changed concurrently", document_id=document_id
                )
            logger.info(
                "Document %s status %s -> %s",
                document_id,
                document.status.value,
                target.value,
            )
        return target

    async def _raise_lost_race(self, step_id: uuid.UUID) -> None:
        step = await self._get_step(step_id)
        if step.status in OPEN_STEP_STATUSES and not await self.steps.predecessors_completed(step_id):
            raise StepOrderViolation(
                "An earlier step is not completed", step_id=step_id
            )
        raise StaleStepState(
            f"Step is {step.status.value}, expected pending or in progress",
            step_id=step_id,
        )

    async def _activate(
        self,
        step: WorkflowStep,
        actor_id: Optional[uuid.UUID],
        trigger: str,
    ) -> bool:
        """pending -> in_progress inside the current unit of work."""
        if step.status == StepStatus.IN_PROGRESS:
            return False
        if step.status != StepStatus.PENDING:
            raise AlreadyTerminal(
                f"Step is already {step.status.value}", step_id=step.id
            )
        if not await self.steps.predecessors_completed(step.id):
            raise StepOrderViolation("An earlier step is not completed", step_id=step.id)

        won = await self.steps.transition(
            step.id,
            [StepStatus.PENDING],
            status=StepStatus.IN_PROGRESS,
            started_at=self.clock(),
        )
        if not won:
            await self._raise_lost_race(step.id)

        await self.audit.record(
            step.document_id,
            AuditAction.START,
            actor_id,
            {"step_id": step.id, "step": step.name, "trigger": trigger},
        )
        return True

    async def _notify_parties(
        self, document: Document, title: str, message: str, data: dict
    ) -> None:
        await self.notifier.notify(
            document.property_id, NotificationType.WORKFLOW_UPDATE, title, message, data
        )
        if document.tenant_id:
            await self.notifier.notify(
                document.tenant_id,
                NotificationType.WORKFLOW_UPDATE,
                title,
                message,
                data,
            )

    async def start_workflow(
        self,
        document_id: uuid.UUID,
        definitions: Optional[Sequence[StepDefinition]] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[WorkflowStep]:
        definitions = list(
            DEFAULT_LEASE_WORKFLOW if definitions is None else definitions
        )
        if not definitions:
            raise ValidationError("A workflow needs at least one step")
        names = [d.name for d in definitions]
        if len(set(names)) != len(names):
            raise ValidationError("Step names must be unique within a workflow")

        document = await self._get_document(document_id)
        if await self.steps.has_steps(document_id):
            raise AlreadyStarted("Workflow already started", document_id=document_id)

        now = self.clock()
        steps = [
            WorkflowStep(
                document_id=document_id,
                position=position,
                name=definition.name,
                status=StepStatus.PENDING,
                assignee_id=definition.assignee_id,
                due_date=add_days(
                    now, definition.due_in_days or settings.STEP_DUE_IN_DAYS
                ),
                requires_validation=definition.requires_validation,
                requires_signatures=definition.requires_signatures,
                created_at=now,
            )
            for position, definition in enumerate(definitions)
        ]

        try:
            await self.steps.add_many(steps)
            await self.audit.record(
                document_id,
                AuditAction.START,
                actor_id,
                {"event": "workflow_started", "steps": names},
            )
            await self.sync_document_status(document_id)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise AlreadyStarted("Workflow already started", document_id=document_id)
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Workflow started for document %s with %s steps", document_id, len(steps))
        await self.events(
            "workflow.started", {"document_id": str(document_id), "steps": names}
        )
        await self._notify_parties(
            document,
            "Document workflow started",
            f"Review of '{document.title}' has started.",
            {"document_id": str(document_id)},
        )
        return await self.steps.list_for_document(document_id)

    async def start_step(
        self, step_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None
    ) -> WorkflowStep:
        step = await self._get_step(step_id)
        if step.status == StepStatus.IN_PROGRESS:
            raise AlreadyStarted("Step already in progress", step_id=step_id)

        try:
            await self._activate(step, actor_id, trigger="manual")
            await self.sync_document_status(step.document_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.events(
            "workflow.step_started",
            {"document_id": str(step.document_id), "step_id": str(step_id), "step": step.name},
        )
        if step.assignee_id:
            await self.notifier.notify(
                step.assignee_id,
                NotificationType.WORKFLOW_UPDATE,
                "Workflow step assigned",
                f"The '{step.name}' step is waiting for you.",
                {"document_id": str(step.document_id), "step_id": str(step_id)},
            )
        return await self._get_step(step_id)

    async def _check_approval_gates(
        self, step: WorkflowStep, outcome: StepOutcome
    ) -> None:
        if outcome.verification_id:
            verification = await self.verifications.get(outcome.verification_id)
            if not verification or verification.document_id != step.document_id:
                raise ResourceNotFound(
                    "Verification not found for this document",
                    verification_id=outcome.verification_id,
                )
            if verification.status != VerificationStatus.VERIFIED:
                raise ValidationError(
                    f"Verification is {verification.status.value}, not verified",
                    verification_id=verification.id,
                )

        if step.requires_validation:
            if outcome.report_id:
                report = await self.reports.get(outcome.report_id)
                if not report or report.document_id != step.document_id:
                    raise ResourceNotFound(
                        "Compliance report not found for this document",
                        report_id=outcome.report_id,
                    )
            else:
                report = await self.reports.latest(step.document_id, step.id)

            if (report is None or not report.is_valid) and not (
                outcome.override_reason or ""
            ).strip():
                raise ComplianceBlocked(
                    "No passing compliance report; an override reason is required",
                    step_id=step.id,
                    report_id=report.id if report else None,
                )

        if step.requires_signatures:
            requests = await self.signatures.list_for_document(step.document_id)
            if not all_signed(requests):
                raise ValidationError(
                    "Signatures are still outstanding", step_id=step.id
                )

    async def advance(
        self,
        step_id: uuid.UUID,
        outcome: StepOutcome,
        actor_id: Optional[uuid.UUID] = None,
    ) -> WorkflowStep:
        rejecting = outcome.decision == StepDecision.REJECT
        reason = (outcome.reason or "").strip() or None
        if rejecting and not reason:
            raise ValidationError("A reason is required to reject a step")

        step = await self._get_step(step_id)
        if step.status not in OPEN_STEP_STATUSES:
            raise StaleStepState(
                f"Step is {step.status.value}, expected pending or in progress",
                step_id=step_id,
            )
        if not await self.steps.predecessors_completed(step_id):
            raise StepOrderViolation("An earlier step is not completed", step_id=step_id)

        if not rejecting:
            await self._check_approval_gates(step, outcome)

        new_status = StepStatus.REJECTED if rejecting else StepStatus.COMPLETED
        try:
            won = await self.steps.close(step_id, new_status, self.clock(), reason)
            if not won:
                await self._raise_lost_race(step_id)

            await self.audit.record(
                step.document_id,
                AuditAction.REJECT if rejecting else AuditAction.APPROVE,
                actor_id,
                {
                    "step_id": step_id,
                    "step": step.name,
                    "reason": reason,
                    "verification_id": outcome.verification_id,
                    "report_id": outcome.report_id,
                    "override_reason": outcome.override_reason,
                },
            )
            # Signers may have finished before the steps ahead of the
            # signature step closed.
            if not rejecting and all_signed(
                await self.signatures.list_for_document(step.document_id)
            ):
                await self.activate_signature_step(step.document_id)
            document_status = await self.sync_document_status(step.document_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Step %s (%s) %s by %s", step_id, step.name, new_status.value, actor_id
        )
        data = {
            "document_id": str(step.document_id),
            "step_id": str(step_id),
            "step": step.name,
            "status": new_status.value,
            "document_status": document_status.value,
        }
        await self.events(f"workflow.step_{new_status.value}", data)
        if document_status in (DocumentStatus.APPROVED, DocumentStatus.REJECTED):
            await self.events(f"document.{document_status.value}", data)

        document = await self._get_document(step.document_id)
        await self._notify_parties(
            document,
            "Document workflow update",
            f"Step '{step.name}' was {new_status.value.replace('_', ' ')}.",
            data,
        )
        return await self._get_step(step_id)

    async def validate_step(
        self, step_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None
    ) -> WorkflowStep:
        step = await self._get_step(step_id)
        document_id = step.document_id
        if not step.requires_validation:
            raise ValidationError("Step does not require validation", step_id=step_id)

        try:
            await self._activate(step, actor_id, trigger="validation")
            await self.sync_document_status(step.document_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        document = await self._get_document(step.document_id)
        now = self.clock()
        try:
            report = await self.compliance.validate(
                document.id,
                document.jurisdiction,
                document.document_type,
                step_id=step_id,
            )
        except (ClassifierResponseInvalid, ExternalServiceUnavailable) as e:
            logger.warning("Validation of step %s failed: %s", step_id, e.detail)
            payload = {
                "status": "failed",
                "error": type(e).__name__,
                "detail": e.detail,
                "at": now.isoformat(),
            }
            try:
                await self.steps.set_validation_result(step_id, payload)
                await self.audit.record(
                    step.document_id,
                    AuditAction.VALIDATE,
                    actor_id,
                    {"step_id": step_id, "status": "failed", "error": type(e).__name__},
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise
            return await self._get_step(step_id)

        payload = {
            "status": "completed",
            "report_id": str(report.id),
            "is_valid": report.is_valid,
            "risk_level": report.risk_level.value,
            "at": now.isoformat(),
        }
        try:
            await self.steps.set_validation_result(step_id, payload)
            await self.audit.record(
                step.document_id,
                AuditAction.VALIDATE,
                actor_id,
                {
                    "step_id": step_id,
                    "status": "completed",
                    "report_id": report.id,
                    "is_valid": report.is_valid,
                    "risk_level": report.risk_level,
                },
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.events(
            "workflow.step_validated",
            {
                "document_id": str(step.document_id),
                "step_id": str(step_id),
                "report_id": str(report.id),
                "is_valid": report.is_valid,
            },
        )
        return await self._get_step(step_id)

    async def request_verification(
        self,
        step_id: uuid.UUID,
        verification_type: VerificationType,
        expected_fields: Optional[list[str]] = None,
        subject: Optional[dict] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> VerificationResult:
        step = await self._get_step(step_id)
        try:
            activated = await self._activate(step, actor_id, trigger="verification")
            if activated:
                await self.sync_document_status(step.document_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return await self.verification.initiate(
            document_id=step.document_id,
            verification_type=verification_type,
            expected_fields=expected_fields,
            subject=subject,
            step_id=step_id,
            actor_id=actor_id,
        )

    async def apply_verification(
        self, verification_id: uuid.UUID
    ) -> Optional[WorkflowStep]:
        """Carry a terminal verification result over to its step."""
        verification = await self.verification.get(verification_id)
        if not verification.step_id:
            return None

        step = await self._get_step(verification.step_id)
        if step.status not in OPEN_STEP_STATUSES:
            logger.info(
                "Step %s already %s; verification %s not applied",
                step.id,
                step.status.value,
                verification_id,
            )
            return step

        step_id = step.id
        if verification.status == VerificationStatus.VERIFIED:
            try:
                return await self.advance(
                    step_id,
                    StepOutcome(StepDecision.APPROVE, verification_id=verification_id),
                    actor_id=None,
                )
            except (StaleStepState, ValidationError) as e:
                logger.warning(
                    "Verification %s could not complete step %s: %s",
                    verification_id,
                    step_id,
                    e.detail,
                )
                return await self._get_step(step_id)

        if verification.status == VerificationStatus.FAILED:
            try:
                await self.audit.record(
                    step.document_id,
                    AuditAction.VERIFY,
                    None,
                    {
                        "verification_id": verification_id,
                        "step_id": step.id,
                        "event": "step_blocked",
                        "failed_fields": verification.failed_fields,
                    },
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

            document = await self._get_document(step.document_id)
            await self._notify_parties(
                document,
                "Document verification failed",
                f"Step '{step.name}' is waiting for a successful verification.",
                {
                    "document_id": str(step.document_id),
                    "step_id": str(step.id),
                    "verification_id": str(verification_id),
                },
            )
        return step

    async def activate_signature_step(
        self, document_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None
    ) -> Optional[WorkflowStep]:
        """Start the signature-gated step once every signer has signed.

        Runs inside the caller's unit of work; the caller commits.
        """
        steps = await self.steps.list_for_document(document_id)
        target = next(
            (
                s
                for s in steps
                if s.requires_signatures and s.status != StepStatus.COMPLETED
            ),
            None,
        )
        if target is None or target.status != StepStatus.PENDING:
            return target
        if not await self.steps.predecessors_completed(target.id):
            return target

        try:
            await self._activate(target, actor_id, trigger="signatures_complete")
        except (StaleStepState, AlreadyTerminal) as e:
            logger.info("Signature step %s not activated: %s", target.id, e.detail)
        return await self.steps.get(target.id)

    async def get_steps(self, document_id: uuid.UUID) -> list[WorkflowStep]:
        await self._get_document(document_id)
        return await self.steps.list_for_document(document_id)

