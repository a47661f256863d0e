import uuid

from fastapi import APIRouter, Depends
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ResourceNotFound
from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from models.enums import PermissionAction, PermissionResource
from models.models import User, WorkflowStep
from policy.permission_gate import PermissionGate
from repos.workflow_step_repo import WorkflowStepRepo
from schemas.schema import (
    StartWorkflowIn,
    StepOutcomeIn,
    VerificationOut,
    VerificationRequestIn,
    WorkflowStepOut,
)
from services.document_service import DocumentService
from services.workflow_service import StepDefinition, StepOutcome, WorkflowOrchestrator

router = APIRouter(tags=["Document Workflow"])

A = PermissionAction
R = PermissionResource


async def _authorize_step(
    db: AsyncSession, actor_id: uuid.UUID, step_id: uuid.UUID, action: A, resource: R = R.WORKFLOW
) -> WorkflowStep:
    step = await WorkflowStepRepo(db).get(step_id)
    if not step:
        raise ResourceNotFound("Workflow step not found", step_id=step_id)
    document = await DocumentService(db).get(step.document_id)
    await PermissionGate(db).require_document(
        actor_id, action, resource, document.property_id
    )
    return step


@cbv(router)
class WorkflowRoutes:
    @router.post(
        "/documents/{document_id}/start",
        response_model=list[WorkflowStepOut],
        status_code=201,
    )
    @safe_handler
    async def start_workflow(
        self,
        document_id: uuid.UUID,
        data: StartWorkflowIn,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        document = await DocumentService(db).get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.CREATE, R.WORKFLOW, document.property_id
        )
        definitions = (
            None
            if data.steps is None
            else [StepDefinition(**step.model_dump()) for step in data.steps]
        )
        return await WorkflowOrchestrator(db).start_workflow(
            document_id, definitions, actor_id=current_user.id
        )

    @router.get("/documents/{document_id}/steps", response_model=list[WorkflowStepOut])
    @safe_handler
    async def get_steps(
        self,
        document_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        document = await DocumentService(db).get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.WORKFLOW, document.property_id
        )
        return await WorkflowOrchestrator(db).get_steps(document_id)

    @router.post("/steps/{step_id}/start", response_model=WorkflowStepOut)
    @safe_handler
    async def start_step(
        self,
        step_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        await _authorize_step(db, current_user.id, step_id, A.UPDATE)
        return await WorkflowOrchestrator(db).start_step(
            step_id, actor_id=current_user.id
        )

    @router.post("/steps/{step_id}/advance", response_model=WorkflowStepOut)
    @safe_handler
    async def advance(
        self,
        step_id: uuid.UUID,
        data: StepOutcomeIn,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        await _authorize_step(db, current_user.id, step_id, A.APPROVE)
        return await WorkflowOrchestrator(db).advance(
            step_id, StepOutcome(**data.model_dump()), actor_id=current_user.id
        )

    @router.post("/steps/{step_id}/validate", response_model=WorkflowStepOut)
    @safe_handler
    async def validate(
        self,
        step_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        await _authorize_step(db, current_user.id, step_id, A.UPDATE)
        return await WorkflowOrchestrator(db).validate_step(
            step_id, actor_id=current_user.id
        )

    @router.post(
        "/steps/{step_id}/verify", response_model=VerificationOut, status_code=202
    )
    @safe_handler
    async def request_verification(
        self,
        step_id: uuid.UUID,
        data: VerificationRequestIn,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        await _authorize_step(db, current_user.id, step_id, A.CREATE, R.VERIFICATION)
        return await WorkflowOrchestrator(db).request_verification(
            step_id,
            data.verification_type,
            expected_fields=data.expected_fields,
            subject=data.subject,
            actor_id=current_user.id,
        )
