from types import SimpleNamespace

import pytest

from core.errors import (
    AlreadyStarted,
    ComplianceBlocked,
    ExternalServiceUnavailable,
    StaleStepState,
    StepOrderViolation,
    ValidationError,
)
from models.enums import (
    AuditAction,
    DocumentStatus,
    SignerRole,
    StepDecision,
    StepStatus,
    VerificationType,
)
from repos.audit_log_repo import AuditLogRepo
from repos.compliance_report_repo import ComplianceReportRepo
from repos.document_repo import DocumentRepo
from schemas.schema import SignatureEvidence, VerificationCallback
from services.workflow_service import (
    StepDefinition,
    StepOutcome,
    derive_document_status,
)

from .conftest import INVALID_FINDINGS

APPROVE = StepOutcome(StepDecision.APPROVE)
REVIEW_AND_SIGN = [
    StepDefinition("legal_review", requires_validation=True),
    StepDefinition("landlord_approval", requires_signatures=True),
]


async def document_status(db, document_id):
    return (await DocumentRepo(db).get(document_id)).status


def step(position, status, name="custom", validation=False, signatures=False):
    return SimpleNamespace(
        position=position,
        status=status,
        name=name,
        requires_validation=validation,
        requires_signatures=signatures,
    )


def test_derived_status_follows_first_open_step():
    steps = [
        step(0, StepStatus.COMPLETED, "upload"),
        step(1, StepStatus.IN_PROGRESS, "tenant_verification"),
        step(2, StepStatus.PENDING, "legal_review", validation=True),
    ]

    assert derive_document_status(steps, DocumentStatus.DRAFT) == (
        DocumentStatus.PENDING_VERIFICATION
    )


def test_derived_status_for_terminal_outcomes():
    done = [step(0, StepStatus.COMPLETED), step(1, StepStatus.COMPLETED)]
    rejected = [step(0, StepStatus.COMPLETED), step(1, StepStatus.REJECTED)]
    signing = [step(0, StepStatus.COMPLETED), step(1, StepStatus.PENDING, signatures=True)]

    assert derive_document_status(done, DocumentStatus.DRAFT) == DocumentStatus.APPROVED
    assert derive_document_status(rejected, DocumentStatus.DRAFT) == DocumentStatus.REJECTED
    assert derive_document_status(signing, DocumentStatus.DRAFT, True) == DocumentStatus.SIGNED
    assert derive_document_status(done, DocumentStatus.EXPIRED) == DocumentStatus.EXPIRED


async def test_start_workflow_creates_default_lease_steps(
    db, document, landlord, tenant, orchestrator, events, notifier
):
    steps = await orchestrator.start_workflow(document.id, actor_id=landlord.id)

    assert [s.name for s in steps] == [
        "upload",
        "tenant_verification",
        "legal_review",
        "landlord_approval",
    ]
    assert all(s.status == StepStatus.PENDING for s in steps)
    assert steps[2].requires_validation and steps[3].requires_signatures
    assert await document_status(db, document.id) == DocumentStatus.DRAFT
    assert "workflow.started" in events.names
    assert tenant.id in [n["target_id"] for n in notifier.sent]

    with pytest.raises(AlreadyStarted):
        await orchestrator.start_workflow(document.id, actor_id=landlord.id)


async def test_start_workflow_rejects_bad_definitions(document, orchestrator):
    with pytest.raises(ValidationError):
        await orchestrator.start_workflow(document.id, [])
    with pytest.raises(ValidationError):
        await orchestrator.start_workflow(
            document.id, [StepDefinition("review"), StepDefinition("review")]
        )


async def test_steps_complete_in_order(document, landlord, orchestrator):
    steps = await orchestrator.start_workflow(document.id)

    with pytest.raises(StepOrderViolation):
        await orchestrator.advance(steps[1].id, APPROVE, actor_id=landlord.id)
    with pytest.raises(StepOrderViolation):
        await orchestrator.start_step(steps[1].id, actor_id=landlord.id)


async def test_start_step_twice(document, landlord, orchestrator, clock):
    steps = await orchestrator.start_workflow(document.id)

    started = await orchestrator.start_step(steps[0].id, actor_id=landlord.id)
    assert started.status == StepStatus.IN_PROGRESS
    assert started.started_at == clock.now

    with pytest.raises(AlreadyStarted):
        await orchestrator.start_step(steps[0].id, actor_id=landlord.id)


async def test_second_advance_of_a_closed_step_is_stale(
    db, document, landlord, orchestrator
):
    steps = await orchestrator.start_workflow(document.id)
    await orchestrator.advance(steps[0].id, APPROVE, actor_id=landlord.id)

    with pytest.raises(StaleStepState):
        await orchestrator.advance(steps[0].id, APPROVE, actor_id=landlord.id)

    approvals = await AuditLogRepo(db).list(document.id, action=AuditAction.APPROVE)
    assert len(approvals) == 1
    assert await document_status(db, document.id) == DocumentStatus.PENDING_VERIFICATION


async def test_rejection_halts_the_workflow(db, document, landlord, orchestrator, events):
    steps = await orchestrator.start_workflow(document.id)

    with pytest.raises(ValidationError):
        await orchestrator.advance(
            steps[0].id, StepOutcome(StepDecision.REJECT), actor_id=landlord.id
        )

    rejected = await orchestrator.advance(
        steps[0].id,
        StepOutcome(StepDecision.REJECT, reason="Wrong unit number"),
        actor_id=landlord.id,
    )
    assert rejected.status == StepStatus.REJECTED
    assert rejected.decision_reason == "Wrong unit number"
    assert await document_status(db, document.id) == DocumentStatus.REJECTED
    assert "document.rejected" in events.names

    with pytest.raises(StepOrderViolation):
        await orchestrator.advance(steps[1].id, APPROVE, actor_id=landlord.id)


async def test_full_lease_workflow_reaches_approved(
    db, document, landlord, tenant, orchestrator, signatures, events
):
    steps = await orchestrator.start_workflow(document.id, actor_id=landlord.id)
    await orchestrator.advance(steps[0].id, APPROVE, actor_id=landlord.id)

    verification = await orchestrator.request_verification(
        steps[1].id, VerificationType.IDENTITY, expected_fields=["full_name"]
    )
    outcome = await orchestrator.verification.handle_callback(
        VerificationCallback.model_validate(
            {
                "id": verification.external_reference,
                "status": "completed",
                "results": {"verifiedFields": ["full_name"], "confidence": 0.93},
            }
        )
    )
    assert outcome.applied
    verified_step = await orchestrator.apply_verification(verification.id)
    assert verified_step.status == StepStatus.COMPLETED
    assert await document_status(db, document.id) == DocumentStatus.PENDING_VALIDATION

    validated = await orchestrator.validate_step(steps[2].id, actor_id=landlord.id)
    assert validated.validation_result["status"] == "completed"
    assert validated.validation_result["is_valid"] is True
    await orchestrator.advance(steps[2].id, APPROVE, actor_id=landlord.id)
    assert await document_status(db, document.id) == DocumentStatus.PENDING_SIGNATURE

    request = await signatures.create(document.id, tenant.id, SignerRole.TENANT)
    await signatures.sign(
        request.id, SignatureEvidence(typed_signature="T. Tenant"), actor_id=tenant.id
    )
    assert await document_status(db, document.id) == DocumentStatus.SIGNED

    final = await orchestrator.advance(steps[3].id, APPROVE, actor_id=landlord.id)
    assert final.status == StepStatus.COMPLETED
    assert await document_status(db, document.id) == DocumentStatus.APPROVED
    assert all(
        s.status == StepStatus.COMPLETED for s in await orchestrator.get_steps(document.id)
    )
    assert "document.approved" in events.names


async def test_early_signatures_do_not_skip_open_steps(
    db, document, tenant, orchestrator, signatures
):
    steps = await orchestrator.start_workflow(document.id)
    request = await signatures.create(document.id, tenant.id, SignerRole.TENANT)

    await signatures.sign(
        request.id, SignatureEvidence(typed_signature="T. Tenant"), actor_id=tenant.id
    )

    current = await orchestrator.get_steps(document.id)
    assert current[3].status == StepStatus.PENDING
    assert await document_status(db, document.id) == DocumentStatus.DRAFT
    assert current[0].status == StepStatus.PENDING
    assert len(steps) == 4


async def test_signature_step_needs_every_signature(document, landlord, orchestrator):
    steps = await orchestrator.start_workflow(
        document.id, [StepDefinition("landlord_approval", requires_signatures=True)]
    )

    with pytest.raises(ValidationError):
        await orchestrator.advance(steps[0].id, APPROVE, actor_id=landlord.id)


async def test_approval_without_passing_report_is_blocked(
    db, document, landlord, orchestrator, classifier
):
    steps = await orchestrator.start_workflow(document.id, REVIEW_AND_SIGN)

    with pytest.raises(ComplianceBlocked):
        await orchestrator.advance(steps[0].id, APPROVE, actor_id=landlord.id)

    classifier.response = INVALID_FINDINGS
    validated = await orchestrator.validate_step(steps[0].id, actor_id=landlord.id)
    assert validated.validation_result["is_valid"] is False
    assert validated.validation_result["risk_level"] == "high"

    with pytest.raises(ComplianceBlocked):
        await orchestrator.advance(steps[0].id, APPROVE, actor_id=landlord.id)

    overridden = await orchestrator.advance(
        steps[0].id,
        StepOutcome(StepDecision.APPROVE, override_reason="Counsel signed off"),
        actor_id=landlord.id,
    )
    assert overridden.status == StepStatus.COMPLETED
    approvals = await AuditLogRepo(db).list(document.id, action=AuditAction.APPROVE)
    assert approvals[0].details["override_reason"] == "Counsel signed off"
    assert await document_status(db, document.id) == DocumentStatus.PENDING_SIGNATURE


@pytest.mark.parametrize(
    "response, error",
    [
        ("this is not json", None),
        ('{"isValid": true, "stateCompliance": {"isCompliant": true}}', None),
        (None, ExternalServiceUnavailable("Classifier timed out")),
    ],
)
async def test_failed_validation_is_recorded_on_the_step(
    db, document, landlord, orchestrator, classifier, response, error
):
    classifier.response = response
    classifier.error = error
    steps = await orchestrator.start_workflow(document.id, REVIEW_AND_SIGN)

    validated = await orchestrator.validate_step(steps[0].id, actor_id=landlord.id)

    assert validated.status == StepStatus.IN_PROGRESS
    assert validated.validation_result["status"] == "failed"
    assert validated.validation_result["error"] in {
        "ClassifierResponseInvalid",
        "ExternalServiceUnavailable",
    }
    assert await ComplianceReportRepo(db).list_for_document(document.id) == []
    entries = await AuditLogRepo(db).list(document.id, action=AuditAction.VALIDATE)
    assert entries[0].details["status"] == "failed"


async def test_validate_rejects_steps_without_validation(document, orchestrator):
    steps = await orchestrator.start_workflow(document.id)

    with pytest.raises(ValidationError):
        await orchestrator.validate_step(steps[0].id)


async def test_failed_verification_blocks_the_step(
    db, document, landlord, orchestrator, notifier
):
    steps = await orchestrator.start_workflow(document.id)
    await orchestrator.advance(steps[0].id, APPROVE, actor_id=landlord.id)
    verification = await orchestrator.request_verification(
        steps[1].id, VerificationType.INCOME
    )

    outcome = await orchestrator.verification.handle_callback(
        VerificationCallback.model_validate(
            {
                "id": verification.external_reference,
                "status": "failed",
                "results": {"failedFields": ["monthly_income"]},
            }
        )
    )
    blocked = await orchestrator.apply_verification(outcome.verification.id)

    assert blocked.status == StepStatus.IN_PROGRESS
    entries = await AuditLogRepo(db).list(document.id, action=AuditAction.VERIFY)
    assert "step_blocked" in [e.details.get("event") for e in entries]
    assert notifier.sent[-1]["title"] == "Document verification failed"


async def test_both_parties_must_sign_before_landlord_approval(
    db, document, landlord, tenant, orchestrator, signatures
):
    steps = await orchestrator.start_workflow(document.id)
    await orchestrator.advance(steps[0].id, APPROVE, actor_id=landlord.id)
    await orchestrator.advance(steps[1].id, APPROVE, actor_id=landlord.id)
    await orchestrator.validate_step(steps[2].id, actor_id=landlord.id)
    await orchestrator.advance(steps[2].id, APPROVE, actor_id=landlord.id)

    landlord_request = await signatures.create(
        document.id, landlord.id, SignerRole.LANDLORD
    )
    tenant_request = await signatures.create(document.id, tenant.id, SignerRole.TENANT)

    await signatures.sign(
        landlord_request.id,
        SignatureEvidence(typed_signature="L. Landlord"),
        actor_id=landlord.id,
    )
    assert await document_status(db, document.id) == DocumentStatus.PENDING_SIGNATURE

    await signatures.sign(
        tenant_request.id,
        SignatureEvidence(typed_signature="T. Tenant"),
        actor_id=tenant.id,
    )
    assert await document_status(db, document.id) == DocumentStatus.SIGNED
    current = await orchestrator.get_steps(document.id)
    assert current[3].status == StepStatus.IN_PROGRESS


async def test_signatures_collected_early_start_the_signature_step_later(
    db, document, landlord, tenant, orchestrator, signatures
):
    steps = await orchestrator.start_workflow(document.id)
    request = await signatures.create(document.id, tenant.id, SignerRole.TENANT)
    await signatures.sign(
        request.id, SignatureEvidence(typed_signature="T. Tenant"), actor_id=tenant.id
    )

    await orchestrator.advance(steps[0].id, APPROVE, actor_id=landlord.id)
    await orchestrator.advance(steps[1].id, APPROVE, actor_id=landlord.id)
    await orchestrator.validate_step(steps[2].id, actor_id=landlord.id)
    await orchestrator.advance(steps[2].id, APPROVE, actor_id=landlord.id)

    current = await orchestrator.get_steps(document.id)
    assert current[3].status == StepStatus.IN_PROGRESS
    assert await document_status(db, document.id) == DocumentStatus.SIGNED

    final = await orchestrator.advance(steps[3].id, APPROVE, actor_id=landlord.id)
    assert final.status == StepStatus.COMPLETED
    assert await document_status(db, document.id) == DocumentStatus.APPROVED


async def test_concurrent_advance_has_one_winner(
    db, monkeypatch, document, landlord, orchestrator
):
    steps = await orchestrator.start_workflow(document.id)
    check_gates = orchestrator._check_approval_gates
    competed = []

    async def gates_then_compete(step, outcome):
        await check_gates(step, outcome)
        if not competed:
            competed.append(step.id)
            await orchestrator.advance(step.id, APPROVE, actor_id=landlord.id)

    monkeypatch.setattr(orchestrator, "_check_approval_gates", gates_then_compete)

    with pytest.raises(StaleStepState):
        await orchestrator.advance(steps[0].id, APPROVE, actor_id=landlord.id)

    assert competed == [steps[0].id]
    approvals = await AuditLogRepo(db).list(document.id, action=AuditAction.APPROVE)
    assert len(approvals) == 1
    current = await orchestrator.get_steps(document.id)
    assert current[0].status == StepStatus.COMPLETED
    assert await document_status(db, document.id) == DocumentStatus.PENDING_VERIFICATION
