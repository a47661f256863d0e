import logging

from .settings import settings
from .rabbitmq import rabbitmq

logger = logging.getLogger(__name__)


async def publish_event(event_name: str, data: dict) -> bool:
    """Publish a domain event after a committed transition.

    Subscribers (dashboards, mailers) are push consumers; a failed publish
    never undoes the transition that produced it.
    """
    try:
        await rabbitmq.publish_json(
            exchange_name=settings.RABBITMQ_MAIN_EXCHANGE,
            routing_key=event_name,
            data=data,
        )
        return True
    except Exception:
        logger.exception("Failed to publish event %s", event_name)
        return False
