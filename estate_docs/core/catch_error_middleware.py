import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled server error on %s %s", request.method, request.url.path
            )
            return JSONResponse(
                {
                    "success": False,
                    "error": "InternalServerError",
                    "detail": "Something went wrong on our end. Please try again.",
                },
                status_code=500,
            )
