import logging

import httpx

from backend.app.auth.models import OtpType
from backend.app.core.config import settings
from backend.app.core.errors import DeliveryFailed

logger = logging.getLogger(__name__)

SEND_TIMEOUT_SECONDS = 10.0


async def send_email(to: str, subject: str, html: str) -> None:
    """Deliver one message through the Resend HTTP API.

    Raises ``DeliveryFailed`` when the gateway is not configured or rejects
    the request.
    """
    if not settings.RESEND_API_KEY:
        raise DeliveryFailed("Email gateway not configured")

    try:
        async with httpx.AsyncClient(timeout=SEND_TIMEOUT_SECONDS) as client:
            response = await client.post(
                settings.RESEND_API_URL,
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
                json={
                    "from": settings.EMAIL_FROM,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                },
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise DeliveryFailed(f"Email send error: {exc}") from exc


def render_otp_email(code: str, otp_type: OtpType) -> tuple[str, str]:
    brand = settings.BRAND_NAME
    if otp_type is OtpType.PASSWORD_RESET:
        subject = f"Password Reset Code - {brand}"
        heading = "Reset Your Password"
        purpose = "reset your password"
    else:
        subject = f"Verification Code - {brand}"
        heading = "Verify Your Email"
        purpose = "complete your sign in"

    html = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
      <h1 style="color: #1e40af; text-align: center;">{brand}</h1>
      <div style="background: #f8fafc; padding: 30px; border-radius: 10px; text-align: center;">
        <h2 style="color: #374151;">{heading}</h2>
        <p style="color: #6b7280;">Use the verification code below to {purpose}:</p>
        <span style="font-size: 32px; font-weight: bold; letter-spacing: 5px; color: #1e40af;">{code}</span>
      </div>
      <p style="color: #6b7280; font-size: 14px; text-align: center;">
        This code will expire in {settings.OTP_TTL_MINUTES} minutes.<br>
        If you didn't request this code, please ignore this email.
      </p>
    </div>
    """.strip()
    return subject, html


async def send_otp_email(email: str, code: str, otp_type: OtpType) -> bool:
    """Best-effort OTP delivery. Returns False instead of raising."""
    subject, html = render_otp_email(code, otp_type)
    try:
        await send_email(email, subject, html)
    except DeliveryFailed as exc:
        logger.warning("Failed to send %s code to %s: %s", otp_type.value, email, exc.message)
        return False
    return True
