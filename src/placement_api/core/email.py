"""
Email Service using Resend

Transactional emails for the application and payment workflow.
Emails are sent by the notification dispatcher, never inline with a
state transition.
"""

import asyncio
import logging
from html import escape

import resend

from placement_api.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key


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
        True if email was sent (or logged when no API key is configured),
        False if Resend rejected it
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

        # Resend's client is synchronous
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def _layout(title: str, body_html: str) -> str:
    """Wrap body content in the shared email layout."""
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body {{ font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 40px 20px; }}
            .header {{ color: #14532d; margin-bottom: 24px; }}
            .box {{ background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }}
            .button {{ display: inline-block; background-color: #14532d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }}
            .footer {{ margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{title}</h1>
            {body_html}
            <div class="footer">
                <p>Internship Placements</p>
            </div>
        </div>
    </body>
    </html>
    """


def _application_url(application_id: str) -> str:
    return f"{settings.frontend_url}/applications/{application_id}"


async def send_payment_received(
    to_email: str,
    applicant_name: str,
    opportunity_title: str,
    transaction_code: str,
    amount: int,
    application_id: str,
) -> bool:
    """Acknowledge a submitted payment that is awaiting verification."""
    body = f"""
            <p>Hello {escape(applicant_name)},</p>
            <p>We have received your payment details for <strong>{escape(opportunity_title)}</strong>.</p>
            <div class="box">
                <p><strong>Transaction code:</strong> {escape(transaction_code)}</p>
                <p><strong>Amount:</strong> KES {amount}</p>
            </div>
            <p>An administrator will verify the payment shortly.</p>
            <a href="{_application_url(application_id)}" class="button">View Application</a>
    """
    return await send_email(
        to_email=to_email,
        subject="Payment received - awaiting verification",
        html_content=_layout("Payment Received", body),
    )


async def send_payment_verified(
    to_email: str,
    applicant_name: str,
    opportunity_title: str,
    transaction_code: str,
    application_id: str,
) -> bool:
    """Notify the applicant that their payment was verified."""
    body = f"""
            <p>Hello {escape(applicant_name)},</p>
            <p>Your payment <strong>{escape(transaction_code)}</strong> for
            <strong>{escape(opportunity_title)}</strong> has been verified.</p>
            <p>Your application will now proceed to review.</p>
            <a href="{_application_url(application_id)}" class="button">View Application</a>
    """
    return await send_email(
        to_email=to_email,
        subject="Payment verified",
        html_content=_layout("Payment Verified", body),
    )


async def send_payment_rejected(
    to_email: str,
    applicant_name: str,
    opportunity_title: str,
    transaction_code: str,
    reason: str,
    application_id: str,
) -> bool:
    """Notify the applicant that their payment was rejected and why."""
    body = f"""
            <p>Hello {escape(applicant_name)},</p>
            <p>We could not verify payment <strong>{escape(transaction_code)}</strong> for
            <strong>{escape(opportunity_title)}</strong>.</p>
            <div class="box">
                <p><strong>Reason:</strong> {escape(reason)}</p>
            </div>
            <p>You can submit a new payment from your application page.</p>
            <a href="{_application_url(application_id)}" class="button">Resubmit Payment</a>
    """
    return await send_email(
        to_email=to_email,
        subject="Payment could not be verified",
        html_content=_layout("Payment Not Verified", body),
    )


async def send_application_status_changed(
    to_email: str,
    applicant_name: str,
    opportunity_title: str,
    new_status: str,
    note: str | None,
    application_id: str,
) -> bool:
    """Notify the applicant of a review decision on their application."""
    readable_status = new_status.replace("-", " ").replace("_", " ").title()
    note_html = f'<div class="box"><p>{escape(note)}</p></div>' if note else ""
    body = f"""
            <p>Hello {escape(applicant_name)},</p>
            <p>Your application for <strong>{escape(opportunity_title)}</strong> is now
            <strong>{escape(readable_status)}</strong>.</p>
            {note_html}
            <a href="{_application_url(application_id)}" class="button">View Application</a>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Application update: {readable_status}",
        html_content=_layout("Application Update", body),
    )
