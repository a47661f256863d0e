import uuid
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from models.enums import SignatureStatus
from models.models import SignatureRequest


class SignatureRequestRepo:
    def __init__(self, db):
        self.db = db

    async def add(self, request: SignatureRequest) -> SignatureRequest:
        # IntegrityError from the pending-signer index is handled by the caller.
        self.db.add(request)
        await self.db.flush()
        return request

    async def get(self, request_id: uuid.UUID) -> Optional[SignatureRequest]:
        result = await self.db.execute(
            select(SignatureRequest)
            .where(SignatureRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_pending(
        self, document_id: uuid.UUID, signer_id: uuid.UUID
    ) -> Optional[SignatureRequest]:
        result = await self.db.execute(
            select(SignatureRequest)
            .where(
                SignatureRequest.document_id == document_id,
                SignatureRequest.signer_id == signer_id,
                SignatureRequest.status == SignatureStatus.PENDING,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_for_document(self, document_id: uuid.UUID) -> list[SignatureRequest]:
        result = await self.db.execute(
            select(SignatureRequest)
            .where(SignatureRequest.document_id == document_id)
            .order_by(SignatureRequest.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_overdue_pending(self, now: datetime) -> list[SignatureRequest]:
        result = await self.db.execute(
            select(SignatureRequest).where(
                SignatureRequest.status == SignatureStatus.PENDING,
                SignatureRequest.expires_at < now,
            )
        )
        return list(result.scalars().all())

    async def transition(
        self,
        request_id: uuid.UUID,
        expected: Iterable[SignatureStatus],
        not_expired_at: Optional[datetime] = None,
        **values,
    ) -> bool:
        conditions = [
            SignatureRequest.id == request_id,
            SignatureRequest.status.in_(list(expected)),
        ]
        if not_expired_at is not None:
            conditions.append(SignatureRequest.expires_at >= not_expired_at)
        try:
            stmt = (
                update(SignatureRequest)
                .where(*conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            return result.rowcount == 1
        except SQLAlchemyError:
            await self.db.rollback()
            raise
