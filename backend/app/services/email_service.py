"""
PeakSelf Backend — Email Service
==================================

What:  Sends the account verification email.
How:   aiosmtplib over the configured SMTP server, wrapped in a tenacity retry
       (exponential backoff with jitter) for transient connection failures.
When:  Called by AuthService.register() after the pending registration is
       stored.

Development Mode:
    Without SMTP_HOST / SMTP_USER / SMTP_PASS the link is written to the log
    instead, so sign-ups can be completed locally. When delivery fails outside
    production the link is logged as a fallback too.

Delivery failures never fail the registration: the user can register again
to receive a fresh link.
"""

import logging
from email.message import EmailMessage
from urllib.parse import quote

import aiosmtplib
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings

logger = logging.getLogger(__name__)

VERIFICATION_SUBJECT = "Verify your PeakSelf account"


class EmailService:

    def verification_url(self, token: str) -> str:
        return f"{settings.public_base_url}/api/auth/verify-email?token={quote(token, safe='')}"

    def build_verification_message(self, email: str, url: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = settings.email_from
        message["To"] = email
        message["Subject"] = VERIFICATION_SUBJECT
        message.set_content(f"Click to verify your email:\n\n{url}\n")
        message.add_alternative(
            f'<p>Click to verify your email:</p><p><a href="{url}">{url}</a></p>',
            subtype="html",
        )
        return message

    def _log_link(self, label: str, email: str, url: str) -> None:
        logger.info("=" * 80)
        logger.info("[%s] Email verification link", label)
        logger.info("   Email: %s", email)
        logger.info("   Link:  %s", url)
        logger.info("=" * 80)

    async def send_verification_email(self, email: str, token: str) -> bool:
        """
        Send (or log) the verification link.

        Returns:
            True when the SMTP server accepted the message, False when the
            link was only logged or delivery failed.
        """
        url = self.verification_url(token)

        if not settings.smtp_enabled:
            self._log_link("DEV MODE", email, url)
            return False

        try:
            await self._send_with_retry(self.build_verification_message(email, url))
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("Verification email to %s failed: %s", email, e)
            if not settings.is_production:
                self._log_link("FALLBACK", email, url)
            return False

        logger.info("Verification email sent to %s", email)
        return True

    @retry(
        retry=retry_if_exception_type((aiosmtplib.SMTPException, OSError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _send_with_retry(self, message: EmailMessage) -> None:
        # Implicit TLS on 465 (or SMTP_SECURE); otherwise STARTTLS when offered
        await aiosmtplib.send(
            message,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_pass,
            use_tls=settings.smtp_secure or settings.smtp_port == 465,
            timeout=30,
        )


# Module-level singleton
email_service = EmailService()
