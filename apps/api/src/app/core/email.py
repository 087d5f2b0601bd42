"""
Email Service using Resend

Outbound email for the admissions pipeline: notification copies for staff
and the account-provisioned message sent to a new trainee.

Delivery is best-effort. Every function returns a bool and never raises.
"""

import asyncio
import logging
from html import escape

import resend

from app.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

_STYLES = """
            body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
            .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
            .header { color: #1a365d; margin-bottom: 24px; }
            .button { display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
            .info-box { background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }
            .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _render(heading: str, body_html: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_STYLES}</style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{heading}</h1>
            {body_html}
            <div class="footer">
                <p>This is an automated message from the admissions office.</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent (or logged, when no API key is configured)
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_notification_email(
    to_email: str,
    title: str,
    message: str,
    action_url: str | None = None,
) -> bool:
    """Send the email copy of an in-app notification."""
    safe_title = escape(title)
    body = f"<p>{escape(message)}</p>"
    if action_url:
        link = f"{settings.frontend_url}{action_url}" if action_url.startswith("/") else action_url
        body += f'<a href="{escape(link)}" class="button">Open</a>'

    return await send_email(
        to_email=to_email,
        subject=safe_title,
        html_content=_render(safe_title, body),
    )


async def send_account_provisioned(
    to_email: str,
    applicant_name: str,
    system_email: str,
    trainee_number: str,
    default_password: str,
) -> bool:
    """Tell a newly provisioned trainee how to sign in for the first time."""
    safe_name = escape(applicant_name)
    body = f"""
            <p>Hello {safe_name},</p>

            <p>Your application fee has been cleared and your trainee account is ready.</p>

            <div class="info-box">
                <p><strong>Trainee number:</strong> {escape(trainee_number)}</p>
                <p><strong>Login email:</strong> {escape(system_email)}</p>
                <p><strong>Temporary password:</strong> {escape(default_password)}</p>
            </div>

            <p><strong>You will be asked to choose a new password when you first sign in.</strong></p>

            <a href="{settings.frontend_url}/login" class="button">Sign In</a>
    """

    return await send_email(
        to_email=to_email,
        subject="Your trainee account has been created",
        html_content=_render("Account Created", body),
    )
