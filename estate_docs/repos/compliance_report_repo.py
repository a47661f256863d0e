import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from models.models import ComplianceReport


class ComplianceReportRepo:
    def __init__(self, db):
        self.db = db

    async def add(self, report: ComplianceReport) -> ComplianceReport:
        try:
            self.db.add(report)
            await self.db.flush()
            return report
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def get(self, report_id: uuid.UUID) -> Optional[ComplianceReport]:
        result = await self.db.execute(
            select(ComplianceReport).where(ComplianceReport.id == report_id)
        )
        return result.scalar_one_or_none()

    async def latest(
        self, document_id: uuid.UUID, step_id: Optional[uuid.UUID] = None
    ) -> Optional[ComplianceReport]:
        stmt = select(ComplianceReport).where(
            ComplianceReport.document_id == document_id
        )
        if step_id is not None:
            stmt = stmt.where(ComplianceReport.step_id == step_id)
        stmt = stmt.order_by(
            ComplianceReport.created_at.desc(), ComplianceReport.id.desc()
        ).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_document(self, document_id: uuid.UUID) -> list[ComplianceReport]:
        result = await self.db.execute(
            select(ComplianceReport)
            .where(ComplianceReport.document_id == document_id)
            .order_by(ComplianceReport.created_at)
        )
        return list(result.scalars().all())
