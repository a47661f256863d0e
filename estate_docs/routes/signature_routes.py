import uuid

from fastapi import APIRouter, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from models.enums import PermissionAction, PermissionResource
from models.models import SignatureRequest, User
from policy.permission_gate import PermissionGate
from schemas.schema import (
    DeclineIn,
    SignatureEvidence,
    SignatureRequestCreate,
    SignatureRequestOut,
)
from services.document_service import DocumentService
from services.signature_service import SignatureCoordinator

router = APIRouter(tags=["Signatures"])

A = PermissionAction
R = PermissionResource


async def _authorize_request(
    db: AsyncSession, actor_id: uuid.UUID, request_id: uuid.UUID, action: A
) -> SignatureRequest:
    signature_request = await SignatureCoordinator(db).get(request_id)
    document = await DocumentService(db).get(signature_request.document_id)
    await PermissionGate(db).require_document(
        actor_id,
        action,
        R.SIGNATURE,
        document.property_id,
        user_id=signature_request.signer_id,
    )
    return signature_request


@cbv(router)
class SignatureRoutes:
    @router.post(
        "/documents/{document_id}",
        response_model=SignatureRequestOut,
        status_code=201,
    )
    @safe_handler
    async def create_request(
        self,
        document_id: uuid.UUID,
        data: SignatureRequestCreate,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        document = await DocumentService(db).get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.CREATE, R.SIGNATURE, document.property_id
        )
        return await SignatureCoordinator(db).create(
            document_id,
            data.signer_id,
            data.signer_role,
            expires_in_days=data.expires_in_days,
            actor_id=current_user.id,
        )

    @router.get("/documents/{document_id}", response_model=list[SignatureRequestOut])
    @safe_handler
    async def list_for_document(
        self,
        document_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        document = await DocumentService(db).get(document_id)
        await PermissionGate(db).require_document(
            current_user.id, A.READ, R.SIGNATURE, document.property_id
        )
        return await SignatureCoordinator(db).list_for_document(document_id)

    @router.get("/{request_id}", response_model=SignatureRequestOut)
    @safe_handler
    async def get_request(
        self,
        request_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await _authorize_request(db, current_user.id, request_id, A.READ)

    @router.post("/{request_id}/resend", response_model=SignatureRequestOut)
    @safe_handler
    async def resend(
        self,
        request_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        await _authorize_request(db, current_user.id, request_id, A.UPDATE)
        return await SignatureCoordinator(db).resend(
            request_id, actor_id=current_user.id
        )

    @router.post("/{request_id}/sign", response_model=SignatureRequestOut)
    @safe_handler
    async def sign(
        self,
        request_id: uuid.UUID,
        evidence: SignatureEvidence,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        await _authorize_request(db, current_user.id, request_id, A.SIGN)
        return await SignatureCoordinator(db).sign(
            request_id,
            evidence,
            actor_id=current_user.id,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )

    @router.post("/{request_id}/decline", response_model=SignatureRequestOut)
    @safe_handler
    async def decline(
        self,
        request_id: uuid.UUID,
        data: DeclineIn,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        await _authorize_request(db, current_user.id, request_id, A.SIGN)
        return await SignatureCoordinator(db).decline(
            request_id, data.reason, actor_id=current_user.id
        )
