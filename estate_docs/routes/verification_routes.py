import uuid

from fastapi import APIRouter, Depends
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from models.enums import PermissionAction, PermissionResource
from models.models import User
from policy.permission_gate import PermissionGate
from schemas.schema import VerificationOut
from services.document_service import DocumentService
from services.verification_service import VerificationService

router = APIRouter(tags=["Verifications"])

A = PermissionAction
R = PermissionResource


@cbv(router)
class VerificationRoutes:
    @router.get("/documents/{document_id}", response_model=list[VerificationOut])
    @safe_handler
    async def list_for_document(
        self,
        document_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        document = await DocumentService(db).get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.VERIFICATION, document.property_id
        )
        return await VerificationService(db).list_for_document(document_id)

    @router.get("/{verification_id}", response_model=VerificationOut)
    @safe_handler
    async def get_verification(
        self,
        verification_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        service = VerificationService(db)
        verification = await service.get(verification_id)
        document = await DocumentService(db).get(verification.document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.VERIFICATION, document.property_id
        )
        return verification

    @router.post(
        "/{verification_id}/retry", response_model=VerificationOut, status_code=202
    )
    @safe_handler
    async def retry(
        self,
        verification_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        service = VerificationService(db)
        verification = await service.get(verification_id)
        document = await DocumentService(db).get(verification.document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.CREATE, R.VERIFICATION, document.property_id
        )
        return await service.retry(verification_id, actor_id=current_user.id)
