import hashlib
import hmac

from core.settings import settings


class VerifierWebhookSignature:
    HEADER = "x-verifier-signature"

    @staticmethod
    def compute(body: bytes, secret: str | None = None) -> str:
        key = (secret or settings.VERIFIER_WEBHOOK_SECRET).encode()
        return hmac.new(key, body, hashlib.sha512).hexdigest()

    @classmethod
    def verify(cls, signature: str | None, body: bytes) -> bool:
        if not signature:
            return False

        expected = cls.compute(body)
        return hmac.compare_digest(expected, signature)
