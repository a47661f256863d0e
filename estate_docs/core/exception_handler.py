from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .errors import DocumentWorkflowError


class ValidationErrorHandler:
    async def __call__(self, request: Request, exc: RequestValidationError):
        errors = [
            {
                "loc": err.get("loc"),
                "msg": str(err.get("msg")),
                "type": err.get("type"),
            }
            for err in exc.errors()
        ]

        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": "Validation failed",
                "details": errors,
            },
        )


class DomainErrorHandler:
    async def __call__(self, request: Request, exc: DocumentWorkflowError):
        content = {
            "success": False,
            "error": type(exc).__name__,
            "detail": exc.detail,
        }
        if exc.context:
            content["context"] = {k: str(v) for k, v in exc.context.items()}
        return JSONResponse(status_code=exc.status_code, content=content)
