import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from models.enums import VerificationStatus
from models.models import VerificationResult


class VerificationRepo:
    def __init__(self, db):
        self.db = db

    async def add(self, verification: VerificationResult) -> VerificationResult:
        try:
            self.db.add(verification)
            await self.db.flush()
            return verification
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def get(self, verification_id: uuid.UUID) -> Optional[VerificationResult]:
        result = await self.db.execute(
            select(VerificationResult)
            .where(VerificationResult.id == verification_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_reference(self, reference: str) -> Optional[VerificationResult]:
        result = await self.db.execute(
            select(VerificationResult)
            .where(VerificationResult.external_reference == reference)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_for_callback(self, reference: str) -> Optional[VerificationResult]:
        verification = await self.get_by_reference(reference)
        if verification:
            return verification
        try:
            internal_id = uuid.UUID(str(reference))
        except ValueError:
            return None
        return await self.get(internal_id)

    async def list_for_document(
        self, document_id: uuid.UUID
    ) -> list[VerificationResult]:
        result = await self.db.execute(
            select(VerificationResult)
            .where(VerificationResult.document_id == document_id)
            .order_by(VerificationResult.created_at)
        )
        return list(result.scalars().all())

    async def set_reference(self, verification_id: uuid.UUID, reference: str) -> None:
        try:
            await self.db.execute(
                update(VerificationResult)
                .where(VerificationResult.id == verification_id)
                .values(external_reference=reference)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def complete_pending(self, verification_id: uuid.UUID, **values) -> bool:
        """pending -> verified|failed, once."""
        try:
            stmt = (
                update(VerificationResult)
                .where(
                    VerificationResult.id == verification_id,
                    VerificationResult.status == VerificationStatus.PENDING,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            return result.rowcount == 1
        except SQLAlchemyError:
            await self.db.rollback()
            raise
