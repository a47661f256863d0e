import logging
from functools import wraps

from fastapi import HTTPException, Request

from .errors import DocumentWorkflowError
from .friendly_msg import get_friendly_message

logger = logging.getLogger(__name__)


def _find_request(args, kwargs) -> Request | None:
    for arg in list(args) + list(kwargs.values()):
        if isinstance(arg, Request):
            return arg
    return None


def safe_handler(func):
    @wraps(func)
    async def wrapper(*args, **kwargs):
        request = _find_request(args, kwargs)
        path = request.url.path if request else func.__name__
        trace_id = request.headers.get("X-Request-ID", "none") if request else "none"

        try:
            return await func(*args, **kwargs)
        except DocumentWorkflowError as e:
            # Mapped to a status code by DomainErrorHandler.
            logger.info(
                "[%s] TraceID=%s | %s - %s", type(e).__name__, trace_id, path, e.detail
            )
            raise
        except HTTPException as e:
            logger.warning(
                "[HTTPException] TraceID=%s | %s - %s: %s",
                trace_id,
                e.status_code,
                path,
                e.detail,
            )
            raise
        except Exception as e:
            logger.error(
                "[Unhandled Error] TraceID=%s | in %s | Path: %s | Error: %s",
                trace_id,
                func.__name__,
                path,
                e,
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail=get_friendly_message(e))

    return wrapper
