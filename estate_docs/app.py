import logging

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from core.catch_error_middleware import ErrorHandlerMiddleware
from core.errors import DocumentWorkflowError
from core.exception_handler import DomainErrorHandler, ValidationErrorHandler
from core.lifespan import lifespan
from core.settings import settings
from routes.document_routes import router as document_router
from routes.signature_routes import router as signature_router
from routes.verification_routes import router as verification_router
from routes.webhooks_routes import router as webhook_router
from routes.workflow_routes import router as workflow_router

logging.basicConfig(level=logging.INFO)
app = FastAPI(
    lifespan=lifespan,
    title=settings.PROJECT_NAME,
    version="2.0.0",
)

app.include_router(document_router, prefix="/v2/documents")
app.include_router(workflow_router, prefix="/v2/workflows")
app.include_router(signature_router, prefix="/v2/signatures")
app.include_router(verification_router, prefix="/v2/verifications")
app.include_router(webhook_router, prefix="/v2")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["System"])
async def health_check():
    return {"status": "ok"}


app.add_exception_handler(
    RequestValidationError,
    ValidationErrorHandler(),
)
app.add_exception_handler(
    DocumentWorkflowError,
    DomainErrorHandler(),
)

app.add_middleware(ErrorHandlerMiddleware)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8001, reload=True)
