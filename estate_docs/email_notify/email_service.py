import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from core.breaker import CircuitBreaker
from core.errors import ExternalServiceUnavailable
from core.settings import settings

logger = logging.getLogger(__name__)

email_breaker = CircuitBreaker(name="email", failure_threshold=3, base_recovery_time=30)


def email_enabled() -> bool:
    return bool(settings.EMAIL_SERVER and settings.EMAIL_USER)


async def send_document_email(email: str, subject: str, title: str, message: str, link: str | None = None):
    async def handler():
        action = (
            f'<p><a href="{link}">Open the document</a></p>' if link else ""
        )
        html_content = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6;">
            <h2>{title}</h2>
            <p>{message}</p>
            {action}
            <p>Best regards,<br>Your Support Team</p>
        </body>
        </html>
        """

        mime = MIMEMultipart("alternative")
        mime["Subject"] = subject
        mime["From"] = settings.EMAIL_USER
        mime["To"] = email
        mime.attach(MIMEText(html_content, "html"))

        try:
            await aiosmtplib.send(
                mime,
                hostname=settings.EMAIL_SERVER,
                port=settings.EMAIL_PORT,
                username=settings.EMAIL_USER,
                password=settings.EMAIL_PASSWORD,
                start_tls=settings.EMAIL_USE_TLS,
            )
        except aiosmtplib.SMTPException as e:
            raise ExternalServiceUnavailable(f"SMTP delivery failed: {e}")

    return await email_breaker.call(handler)
