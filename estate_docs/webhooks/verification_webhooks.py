import logging
from typing import Optional

import pydantic
from fastapi import HTTPException, Request

from core.errors import ValidationError
from schemas.schema import VerificationCallback
from security.webhook_signature import VerifierWebhookSignature
from services.verification_service import VerificationService
from services.workflow_service import WorkflowOrchestrator

logger = logging.getLogger(__name__)


class VerificationWebhooks:
    def __init__(
        self,
        db,
        verification_service: Optional[VerificationService] = None,
        orchestrator: Optional[WorkflowOrchestrator] = None,
    ):
        self.orchestrator: WorkflowOrchestrator = orchestrator or WorkflowOrchestrator(db)
        self.verification_service: VerificationService = (
            verification_service or self.orchestrator.verification
        )
        self.signature: VerifierWebhookSignature = VerifierWebhookSignature()

    async def verification_callback(self, request: Request) -> dict:
        raw_body = await request.body()
        signature = request.headers.get(VerifierWebhookSignature.HEADER)
        if not self.signature.verify(signature, raw_body):
            raise HTTPException(401, "Invalid signature")

        try:
            payload = VerificationCallback.model_validate_json(raw_body)
        except pydantic.ValidationError as e:
            raise ValidationError(
                "Malformed verification callback", errors=e.errors(include_url=False)
            ) from e

        outcome = await self.verification_service.handle_callback(payload)
        if not outcome.applied:
            return {"status": outcome.status}

        verification_id = outcome.verification.id
        step = await self.orchestrator.apply_verification(verification_id)
        return {
            "status": outcome.status,
            "verification_id": str(verification_id),
            "verification_status": outcome.verification.status.value,
            "step_status": step.status.value if step else None,
        }
