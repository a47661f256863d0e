import logging
import uuid
from typing import Optional

from core.rabbitmq import rabbitmq
from core.settings import settings
from core.url_parser import parser
from models.enums import NotificationType

from .email_service import email_enabled, send_document_email

logger = logging.getLogger(__name__)


class NotificationSink:
    """Fire-and-forget delivery of workflow notifications.

    Failures are logged and swallowed so they never undo the transition
    that triggered them.
    """

    async def notify(
        self,
        target_id: uuid.UUID,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[dict] = None,
        email: Optional[str] = None,
    ) -> bool:
        payload = {
            "target_id": str(target_id),
            "type": notification_type.value,
            "title": title,
            "message": message,
            "data": data or {},
        }
        delivered = True

        try:
            await rabbitmq.publish_json(
                exchange_name=settings.RABBITMQ_NOTIFICATION_EXCHANGE,
                routing_key=notification_type.value,
                data=payload,
            )
        except Exception:
            logger.exception(
                "Failed to publish %s notification for %s",
                notification_type.value,
                target_id,
            )
            delivered = False

        if email and email_enabled():
            document_id = (data or {}).get("document_id")
            link = (
                parser.join(settings.FRONTEND_URL, f"dashboard/documents/{document_id}")
                if document_id
                else None
            )
            try:
                await send_document_email(email, title, title, message, link)
            except Exception:
                logger.exception("Failed to email %s notification to %s", notification_type.value, email)
                delivered = False

        return delivered


notification_sink = NotificationSink()
