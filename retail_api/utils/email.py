import html
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

from retail_api.config import settings
from retail_api.models.otp_verification import OTPPurpose

logger = logging.getLogger(__name__)

# Greppable marker for undelivered codes; the OTP row survives a failed send.
DELIVERY_FAILED_MARKER = "OTP_DELIVERY_FAILED"


@dataclass(frozen=True)
class DeliveryResult:
    delivered: bool
    error: str | None = None


class Notifier(Protocol):
    def send(self, email: str, code: str, purpose: OTPPurpose) -> DeliveryResult:
        ...


# ─── Templates ────────────────────────────────────────────────────────────────
_TEMPLATES = {
    OTPPurpose.REGISTER: {
        "subject": "Verify Your Email - Retail Management System",
        "heading": "Verify Your Email Address",
        "intro":   "Thank you for signing up! To complete your registration, "
                   "please use the verification code below:",
        "footer":  "If you didn't create an account, please ignore this email.",
        "colour":  "#2563eb",
    },
    OTPPurpose.RESET_PASSWORD: {
        "subject": "Password Reset OTP - Retail Management System",
        "heading": "Reset Your Password",
        "intro":   "We received a request to reset your password. "
                   "Use the verification code below to proceed:",
        "footer":  "If you didn't request a password reset, please ignore this email.",
        "colour":  "#dc2626",
    },
}


def render_otp_email(code: str, purpose: OTPPurpose) -> tuple[str, str, str]:
    """Return (subject, text_body, html_body) for an OTP message."""
    tpl = _TEMPLATES[OTPPurpose(purpose)]
    minutes = settings.OTP_EXPIRE_MINUTES
    text_body = (
        f"{tpl['intro']}\n\n"
        f"    {code}\n\n"
        f"This code will expire in {minutes} minutes.\n"
        f"{tpl['footer']}"
    )
    html_body = f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>{html.escape(tpl['subject'])}</title></head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <h2 style="color: {tpl['colour']};">{html.escape(tpl['heading'])}</h2>
      <p>{html.escape(tpl['intro'])}</p>
      <div style="border: 2px dashed #e2e8f0; padding: 20px; text-align: center;">
        <span style="font-size: 32px; font-weight: bold; letter-spacing: 5px; color: {tpl['colour']};">{html.escape(code)}</span>
      </div>
      <p><strong>Important:</strong> This code will expire in {minutes} minutes for security reasons.</p>
      <p>{html.escape(tpl['footer'])}</p>
    </div>
  </body>
</html>
"""
    return tpl["subject"], text_body, html_body


# ─── Notifiers ────────────────────────────────────────────────────────────────
class ConsoleNotifier:
    """
    SMTP disabled: the OTP is written to the log for development and tests.
    """

    def send(self, email: str, code: str, purpose: OTPPurpose) -> DeliveryResult:
        logger.info("=" * 60)
        logger.info(f"[OTP EMAIL]  To      : {email}")
        logger.info(f"[OTP EMAIL]  Purpose : {OTPPurpose(purpose).value}")
        logger.info(f"[OTP CODE]   >>>     : {code}")
        logger.info(f"[OTP EMAIL]  Expires in {settings.OTP_EXPIRE_MINUTES} minutes")
        logger.info("=" * 60)
        return DeliveryResult(delivered=True)


class SmtpNotifier:
    def __init__(
        self,
        host: str,
        port: int,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        sender: str = "noreply@retailmanagement.com",
        timeout: int = 10,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    def send(self, email: str, code: str, purpose: OTPPurpose) -> DeliveryResult:
        subject, text_body, html_body = render_otp_email(code, purpose)

        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = email
        msg["Subject"] = subject
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.ehlo()
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.exception("Failed to send OTP email to %s", email)
            return DeliveryResult(delivered=False, error=str(e))

        logger.info("OTP email sent to %s", email)
        return DeliveryResult(delivered=True)


def get_notifier() -> Notifier:
    """FastAPI dependency: real SMTP in production, log output elsewhere."""
    if settings.is_production:
        return SmtpNotifier(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            sender=settings.EMAIL_FROM,
        )
    return ConsoleNotifier()
