import logging
from typing import Any, Dict

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.breaker import CircuitBreaker
from core.errors import ExternalServiceUnavailable
from core.settings import settings
from core.url_parser import parser
from models.enums import BACKGROUND_CHECK_TYPES, VerificationType

logger = logging.getLogger(__name__)

VERIFY_DOCUMENT_PATH = "/verify-document"
BACKGROUND_CHECK_PATH = "/background-check"


def endpoint_for(verification_type: VerificationType) -> str:
    if verification_type in BACKGROUND_CHECK_TYPES:
        return BACKGROUND_CHECK_PATH
    return VERIFY_DOCUMENT_PATH


class DocumentVerifierClient:
    """Submits documents to the external identity/income verifier.

    Results arrive later on the verification webhook; this client only
    reports whether the submission was accepted.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.VERIFIER_BASE_URL
        self.timeout = timeout or settings.VERIFIER_TIMEOUT_SECONDS
        self.transport = transport
        self.breaker = CircuitBreaker(
            name="verifier", failure_threshold=5, base_recovery_time=15
        )

    def _headers(self, path: str) -> Dict[str, str]:
        key = (
            settings.BACKGROUND_CHECK_API_KEY
            if path == BACKGROUND_CHECK_PATH
            else settings.VERIFIER_API_KEY
        )
        return {
            "Authorization": f"Bearer {key or ''}",
            "Content-Type": "application/json",
        }

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.VERIFIER_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            resp = await client.post(
                parser.join(self.base_url, path),
                json=payload,
                headers=self._headers(path),
            )
        resp.raise_for_status()
        return resp.json() if resp.content else {}

    async def _submit(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await self._post(path, payload)
        except httpx.HTTPStatusError as e:
            raise ExternalServiceUnavailable(
                f"Verifier rejected submission with {e.response.status_code}"
            )
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalServiceUnavailable(f"Verifier unreachable: {e}")

    async def submit(
        self, verification_type: VerificationType, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        path = endpoint_for(verification_type)
        logger.info(
            "Submitting %s verification %s to %s",
            verification_type.value,
            payload.get("verificationId"),
            path,
        )
        return await self.breaker.call(self._submit, path, payload)


document_verifier = DocumentVerifierClient()
