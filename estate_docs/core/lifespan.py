import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.rabbitmq import rabbitmq
from services.expiration_service import ExpirationTracker
from services.signature_service import SignatureCoordinator

from .get_db import AsyncSessionLocal
from .settings import settings

logger = logging.getLogger("startup")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Waiting for application startup...")

    try:
        await rabbitmq.connect()
        await rabbitmq.declare_exchange_with_dlq(settings.RABBITMQ_MAIN_EXCHANGE)
        await rabbitmq.declare_exchange_with_dlq(
            settings.RABBITMQ_NOTIFICATION_EXCHANGE
        )
        logger.info("RabbitMQ connected.")
    except Exception:
        logger.exception("RabbitMQ connection failed")

    try:
        async with AsyncSessionLocal() as db:
            expired = await SignatureCoordinator(db).expire_overdue()
            logger.info("Expired %s overdue signature requests.", expired)
    except Exception:
        logger.exception("Failed to expire overdue signature requests")

    try:
        async with AsyncSessionLocal() as db:
            expired = await ExpirationTracker(db).expire_due()
            logger.info("Expired %s lapsed documents.", expired)
    except Exception:
        logger.exception("Failed to expire lapsed documents")

    logger.info("Application startup complete.")

    yield

    try:
        await rabbitmq.close()
    except Exception:
        logger.exception("Failed to close RabbitMQ connection")
