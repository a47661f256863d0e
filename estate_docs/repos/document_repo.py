import uuid
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from models.enums import DocumentStatus
from models.models import Document


class DocumentRepo:
    def __init__(self, db):
        self.db = db

    async def add(self, document: Document) -> Document:
        try:
            self.db.add(document)
            await self.db.flush()
            return document
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def get(self, document_id: uuid.UUID) -> Optional[Document]:
        result = await self.db.execute(
            select(Document)
            .where(Document.id == document_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_with_steps(self, document_id: uuid.UUID) -> Optional[Document]:
        result = await self.db.execute(
            select(Document)
            .where(Document.id == document_id)
            .options(selectinload(Document.steps))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_property(self, property_id: uuid.UUID) -> list[Document]:
        result = await self.db.execute(
            select(Document)
            .where(Document.property_id == property_id)
            .order_by(Document.created_at.desc())
        )
        return list(result.scalars().all())

    async def transition_status(
        self,
        document_id: uuid.UUID,
        expected: Iterable[DocumentStatus],
        new_status: DocumentStatus,
    ) -> bool:
        try:
            stmt = (
                update(Document)
                .where(
                    Document.id == document_id,
                    Document.status.in_(list(expected)),
                )
                .values(status=new_status)
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            return result.rowcount == 1
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def update_expiration(
        self,
        document_id: uuid.UUID,
        expected_expiration: Optional[datetime],
        new_expiration: datetime,
        new_status: Optional[DocumentStatus] = None,
    ) -> bool:
        if expected_expiration is None:
            guard = Document.expiration_date.is_(None)
        else:
            guard = Document.expiration_date == expected_expiration

        values = {"expiration_date": new_expiration}
        if new_status is not None:
            values["status"] = new_status

        try:
            stmt = (
                update(Document)
                .where(Document.id == document_id, guard)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            return result.rowcount == 1
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def list_expiring_before(self, cutoff: datetime) -> list[Document]:
        result = await self.db.execute(
            select(Document)
            .where(
                Document.expiration_date.is_not(None),
                Document.expiration_date <= cutoff,
                Document.status == DocumentStatus.APPROVED,
            )
            .order_by(Document.expiration_date)
        )
        return list(result.scalars().all())
