# sarvasync/infrastructure/email.py
from typing import Optional
import aiosmtplib
from email.message import EmailMessage
import structlog

from sarvasync.config import get_settings
from sarvasync.errors import DeliveryError

logger = structlog.get_logger(__name__)

MAGIC_LINK_SUBJECT = "Your Secure Login Link"


async def send_email(
    to_email: str,
    subject: str,
    plain_text: str,
    html: Optional[str] = None
) -> None:
    """
    Send an email asynchronously using SMTP (aiosmtplib).
    Raises DeliveryError on failure.
    """
    settings = get_settings()
    if not settings.is_production and not settings.SMTP_HOST:
        # no SMTP in development: log instead of sending
        logger.info("email_send_stub_dev", to=to_email, subject=subject)
        return

    msg = EmailMessage()
    msg["From"] = settings.MAGIC_LINK_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(plain_text)
    if html:
        msg.add_alternative(html, subtype="html")

    try:
        await aiosmtplib.send(
            msg,
            hostname=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USER or None,
            password=settings.SMTP_PASSWORD or None,
            start_tls=True if settings.SMTP_PORT in (587, 25) else False,
        )
        logger.info("email_sent", to=to_email, subject=subject)
    except (aiosmtplib.SMTPException, OSError) as e:
        logger.exception("email_send_failed", to=to_email, subject=subject, error=str(e))
        raise DeliveryError(f"Failed to send email to {to_email}: {e}") from e


def render_magic_link_email(link: str, expires_minutes: int) -> tuple[str, str]:
    plain = (
        "Login to Your Account\n\n"
        f"Open this link to securely log in: {link}\n\n"
        f"This link will expire in {expires_minutes} minutes. "
        "If you didn't request this login, you can safely ignore this email."
    )
    html = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2>Login to Your Account</h2>
      <p>Click the button below to securely log in to your account:</p>
      <a href="{link}" style="background-color: #007bff; color: white; padding: 12px 24px; text-decoration: none; border-radius: 4px; display: inline-block;">
        Log In
      </a>
      <p style="margin-top: 20px; color: #666;">
        This link will expire in {expires_minutes} minutes. If you didn't request this login, you can safely ignore this email.
      </p>
    </div>
    """
    return plain, html


async def send_magic_link_email(to_email: str, link: str) -> None:
    plain, html = render_magic_link_email(link, get_settings().MAGIC_LINK_EXPIRE_MINUTES)
    await send_email(to_email=to_email, subject=MAGIC_LINK_SUBJECT, plain_text=plain, html=html)
