from email.message import EmailMessage

import aiosmtplib

from app.core.config import settings
from app.core.exceptions import UpstreamError
from app.core.logging import logger
from app.utils.helpers import mask_email


class EmailService:
    """Out-of-band delivery of one-time passcodes over SMTP."""

    def __init__(self):
        self.settings = settings

    def build_otp_message(self, to_email: str, code: str) -> EmailMessage:
        minutes = self.settings.OTP_EXPIRE_MINUTES
        msg = EmailMessage()
        msg["From"] = self.settings.SMTP_FROM or self.settings.SMTP_USER or f"no-reply@{self.settings.SMTP_HOST}"
        msg["To"] = to_email
        msg["Subject"] = f"Your {self.settings.PROJECT_NAME} verification code"
        msg.set_content(
            f"Your verification code is {code}.\n\n"
            f"It expires in {minutes} minutes. If you did not request it, ignore this email."
        )
        return msg

    async def send_otp(self, to_email: str, code: str) -> None:
        if not self.settings.SMTP_HOST:
            logger.info("OTP email delivery simulated (SMTP_HOST not set)", to=mask_email(to_email))
            return

        msg = self.build_otp_message(to_email, code)
        try:
            await aiosmtplib.send(
                msg,
                hostname=self.settings.SMTP_HOST,
                port=self.settings.SMTP_PORT,
                username=self.settings.SMTP_USER,
                password=self.settings.SMTP_PASSWORD,
                start_tls=True,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send OTP email", to=mask_email(to_email), error=str(exc))
            raise UpstreamError(
                "Failed to send verification code. Please try again later.",
                code="DELIVERY_FAILED",
            ) from exc

        logger.info("OTP email sent", to=mask_email(to_email), host=self.settings.SMTP_HOST)
