import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.mapper import ORMMapper
from core.safe_handler import safe_handler
from models.enums import AuditAction, PermissionAction, PermissionResource
from models.models import User
from policy.permission_gate import PermissionGate
from schemas.schema import (
    AuditLogOut,
    CategoryComplianceOut,
    ComplianceReportOut,
    DocumentCreate,
    DocumentDetailOut,
    DocumentOut,
    ExpirationOut,
    RecommendationsOut,
    RenewIn,
    StateRequirementOut,
    WorkflowStepOut,
)
from services.compliance_service import ComplianceValidator, get_state_requirements
from services.document_service import DocumentService
from services.expiration_service import ExpirationTracker, get_expiration_status

router = APIRouter(tags=["Documents"])

A = PermissionAction
R = PermissionResource


@cbv(router)
class DocumentRoutes:
    @router.post("/", response_model=DocumentOut, status_code=201)
    @safe_handler
    async def upload(
        self,
        data: DocumentCreate,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        await PermissionGate(db).require_document(
            current_user.id, A.CREATE, R.DOCUMENT, data.property_id
        )
        return await DocumentService(db).upload(data, actor_id=current_user.id)

    @router.get("/property/{property_id}", response_model=list[DocumentOut])
    @safe_handler
    async def list_for_property(
        self,
        property_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.DOCUMENT, property_id
        )
        return await DocumentService(db).list_for_property(property_id)

    @router.get("/{document_id}", response_model=DocumentDetailOut)
    @safe_handler
    async def get_document(
        self,
        document_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        service = DocumentService(db)
        document = await service.get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.DOCUMENT, document.property_id
        )
        tracker = ExpirationTracker(db)
        await tracker.refresh_status(document_id)
        await service.record_access(document_id, AuditAction.VIEW, current_user.id)

        document = await service.get_with_steps(document_id)
        return DocumentDetailOut(
            **ORMMapper.one(document, DocumentOut).model_dump(),
            steps=ORMMapper.many(document.steps, WorkflowStepOut),
            expiration_status=get_expiration_status(
                document.expiration_date, tracker.clock()
            ),
        )

    @router.post("/{document_id}/download", response_model=AuditLogOut)
    @safe_handler
    async def record_download(
        self,
        document_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        service = DocumentService(db)
        document = await service.get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.DOCUMENT, document.property_id
        )
        return await service.record_access(
            document_id, AuditAction.DOWNLOAD, current_user.id
        )

    @router.get("/{document_id}/audit", response_model=list[AuditLogOut])
    @safe_handler
    async def audit_history(
        self,
        document_id: uuid.UUID,
        action: Optional[AuditAction] = None,
        actor_id: Optional[uuid.UUID] = None,
        limit: int = 100,
        offset: int = 0,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        service = DocumentService(db)
        document = await service.get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.AUDIT_LOG, document.property_id
        )
        return await service.history(
            document_id,
            action=action,
            actor_id=actor_id,
            limit=min(max(limit, 1), 500),
            offset=max(offset, 0),
        )

    @router.get("/{document_id}/expiration", response_model=ExpirationOut)
    @safe_handler
    async def expiration(
        self,
        document_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        document = await DocumentService(db).get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.DOCUMENT, document.property_id
        )
        preview = await ExpirationTracker(db).preview(document_id)
        return ExpirationOut(
            document_id=document_id,
            status=preview.status,
            expiration_date=preview.expiration_date,
            days_until_expiration=preview.days_until_expiration,
            next_expiration_date=preview.next_expiration_date,
        )

    @router.post("/{document_id}/renew", response_model=DocumentOut)
    @safe_handler
    async def renew(
        self,
        document_id: uuid.UUID,
        data: RenewIn,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        document = await DocumentService(db).get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.UPDATE, R.DOCUMENT, document.property_id
        )
        return await ExpirationTracker(db).renew(
            document_id,
            actor_id=current_user.id,
            renewal_period_days=data.renewal_period_days,
        )

    @router.get("/{document_id}/compliance", response_model=list[ComplianceReportOut])
    @safe_handler
    async def compliance_reports(
        self,
        document_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        document = await DocumentService(db).get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.DOCUMENT, document.property_id
        )
        return await ComplianceValidator(db).list_reports(document_id)

    @router.get(
        "/{document_id}/compliance/recommendations", response_model=RecommendationsOut
    )
    @safe_handler
    async def compliance_recommendations(
        self,
        document_id: uuid.UUID,
        jurisdiction: Optional[str] = None,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        document = await DocumentService(db).get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.DOCUMENT, document.property_id
        )
        return await ComplianceValidator(db).recommendations(document_id, jurisdiction)

    @router.get(
        "/{document_id}/compliance/check", response_model=CategoryComplianceOut
    )
    @safe_handler
    async def compliance_check(
        self,
        document_id: uuid.UUID,
        category: str,
        jurisdiction: Optional[str] = None,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        document = await DocumentService(db).get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.DOCUMENT, document.property_id
        )
        return await ComplianceValidator(db).check_category(
            document_id, category, jurisdiction
        )

    @router.get(
        "/compliance/requirements/{jurisdiction}", response_model=StateRequirementOut
    )
    @safe_handler
    async def state_requirements(
        self,
        jurisdiction: str,
        current_user: User = Depends(get_current_user),
    ):
        return get_state_requirements(jurisdiction)
