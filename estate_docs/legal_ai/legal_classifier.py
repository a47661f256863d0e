import asyncio
import json
import logging
from typing import Any, Dict, Optional

import openai
from openai import AsyncOpenAI

from core.breaker import CircuitBreaker
from core.errors import ExternalServiceUnavailable
from core.settings import settings

logger = logging.getLogger(__name__)


class LegalClassifierClient:
    """Chat-completion call that returns the raw JSON text of a compliance analysis."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self._client = client
        self.breaker = CircuitBreaker(
            name="classifier", failure_threshold=3, base_recovery_time=30
        )

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.CLASSIFIER_TIMEOUT_SECONDS,
            )
        return self._client

    async def _complete(
        self,
        system_instruction: str,
        document_text: str,
        jurisdiction_rules: Dict[str, Any],
        document_type: str,
    ) -> str:
        messages = [
            {"role": "system", "content": system_instruction},
            {
                "role": "user",
                "content": (
                    f"Document Type: {document_type}\n\n"
                    f"Document Text:\n{document_text}\n\n"
                    f"State Requirements:\n{json.dumps(jurisdiction_rules, indent=2)}"
                ),
            },
        ]
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=settings.CLASSIFIER_MODEL,
                    messages=messages,
                    temperature=settings.CLASSIFIER_TEMPERATURE,
                    response_format={"type": "json_object"},
                ),
                timeout=settings.CLASSIFIER_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            raise ExternalServiceUnavailable("Legal classifier timed out")
        except openai.OpenAIError as e:
            raise ExternalServiceUnavailable(f"Legal classifier unavailable: {e}")

        content = response.choices[0].message.content if response.choices else None
        return content or ""

    async def classify(
        self,
        system_instruction: str,
        document_text: str,
        jurisdiction_rules: Dict[str, Any],
        document_type: str,
    ) -> str:
        logger.info(
            "Requesting compliance analysis for %s (%s chars)",
            document_type,
            len(document_text),
        )
        return await self.breaker.call(
            self._complete,
            system_instruction,
            document_text,
            jurisdiction_rules,
            document_type,
        )


legal_classifier = LegalClassifierClient()
