import uuid
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import exists, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from models.enums import OPEN_STEP_STATUSES, StepStatus
from models.models import WorkflowStep


class WorkflowStepRepo:
    def __init__(self, db):
        self.db = db

    async def add_many(self, steps: list[WorkflowStep]) -> list[WorkflowStep]:
        try:
            self.db.add_all(steps)
            await self.db.flush()
            return steps
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def get(self, step_id: uuid.UUID) -> Optional[WorkflowStep]:
        result = await self.db.execute(
            select(WorkflowStep)
            .where(WorkflowStep.id == step_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_document(self, document_id: uuid.UUID) -> list[WorkflowStep]:
        result = await self.db.execute(
            select(WorkflowStep)
            .where(WorkflowStep.document_id == document_id)
            .order_by(WorkflowStep.position)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def has_steps(self, document_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(exists().where(WorkflowStep.document_id == document_id))
        )
        return bool(result.scalar())

    @staticmethod
    def _predecessors_done(step_id: uuid.UUID):
        """True when every lower-position step of the same document is completed."""
        prior = aliased(WorkflowStep)
        target = aliased(WorkflowStep)
        target_doc = (
            select(target.document_id).where(target.id == step_id).scalar_subquery()
        )
        target_pos = (
            select(target.position).where(target.id == step_id).scalar_subquery()
        )
        return ~exists(
            select(prior.id).where(
                prior.document_id == target_doc,
                prior.position < target_pos,
                prior.status != StepStatus.COMPLETED,
            )
        )

    async def predecessors_completed(self, step_id: uuid.UUID) -> bool:
        result = await self.db.execute(select(self._predecessors_done(step_id)))
        return bool(result.scalar())

    async def transition(
        self,
        step_id: uuid.UUID,
        expected: Iterable[StepStatus],
        require_predecessors: bool = True,
        **values,
    ) -> bool:
        """Conditional update; rowcount decides whether this caller won."""
        conditions = [
            WorkflowStep.id == step_id,
            WorkflowStep.status.in_(list(expected)),
        ]
        if require_predecessors:
            conditions.append(self._predecessors_done(step_id))

        try:
            stmt = (
                update(WorkflowStep)
                .where(*conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            return result.rowcount == 1
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def set_validation_result(self, step_id: uuid.UUID, payload: dict) -> None:
        try:
            await self.db.execute(
                update(WorkflowStep)
                .where(WorkflowStep.id == step_id)
                .values(validation_result=payload)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def close(
        self,
        step_id: uuid.UUID,
        status: StepStatus,
        when: datetime,
        reason: Optional[str] = None,
    ) -> bool:
        """pending|in_progress -> completed|rejected, predecessors permitting."""
        return await self.transition(
            step_id,
            OPEN_STEP_STATUSES,
            require_predecessors=True,
            status=status,
            completed_at=when,
            started_at=func.coalesce(WorkflowStep.started_at, when),
            decision_reason=reason,
        )
