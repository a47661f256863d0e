from fastapi import APIRouter, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_db import get_db_async
from core.safe_handler import safe_handler
from webhooks.verification_webhooks import VerificationWebhooks

router = APIRouter(tags=["Webhooks"])


async def verification_webhooks(
    db: AsyncSession = Depends(get_db_async),
) -> VerificationWebhooks:
    return VerificationWebhooks(db)


@cbv(router)
class WebhookRoutes:
    @router.post("/webhooks/verification")
    @safe_handler
    async def verification_webhook(
        self,
        request: Request,
        handler: VerificationWebhooks = Depends(verification_webhooks),
    ):
        return await handler.verification_callback(request)
