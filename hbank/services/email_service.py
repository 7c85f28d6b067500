"""Email delivery via SendGrid, dispatched off the request path."""

import html
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol
from urllib.parse import urlencode

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from hbank.config import Settings

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    """Raised by a mailer when a message could not be handed off."""


class Mailer(Protocol):
    def send(self, recipients: list[str], subject: str, html_body: str) -> None: ...


class SendGridMailer:
    """Mailer sending transactional emails via SendGrid."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def send(self, recipients: list[str], subject: str, html_body: str) -> None:
        """Send email via SendGrid. Raises MailDeliveryError on failure."""
        if not self._settings.sendgrid_api_key:
            raise MailDeliveryError("SendGrid API key not configured")

        message = Mail(
            from_email=(self._settings.email_from_address, self._settings.email_from_name),
            to_emails=recipients,
            subject=subject,
            html_content=html_body,
        )

        try:
            response = SendGridAPIClient(self._settings.sendgrid_api_key).send(message)
        except Exception as e:  # sendgrid raises python_http_client errors and URLError
            raise MailDeliveryError(f"SendGrid request failed: {e}") from e

        if response.status_code not in (200, 201, 202):
            raise MailDeliveryError(f"SendGrid returned status {response.status_code}")
        logger.info(f"Email sent to {recipients}, status: {response.status_code}")


class MailDispatcher:
    """Fire-and-forget mail submission.

    Delivery runs on a worker thread; its outcome is reported only to the log,
    never to the flow that submitted it.
    """

    def __init__(self, mailer: Mailer, max_workers: int = 2) -> None:
        self._mailer = mailer
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mail")

    def submit(self, recipients: list[str], subject: str, html_body: str) -> Future:
        future = self._executor.submit(self._mailer.send, recipients, subject, html_body)
        future.add_done_callback(lambda f: self._report(f, recipients, subject))
        return future

    @staticmethod
    def _report(future: Future, recipients: list[str], subject: str) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"Failed to send '{subject}' to {recipients}: {error}")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class EmailService:
    """Builds transactional emails and hands them to the dispatcher."""

    def __init__(self, dispatcher: MailDispatcher, settings: Settings) -> None:
        self._dispatcher = dispatcher
        self._settings = settings

    def _send(self, email: str, subject: str, body: str) -> None:
        if not self._settings.email_enabled:
            logger.debug(f"Email disabled, not sending '{subject}' to {email}")
            return
        self._dispatcher.submit([email], subject, body)

    @staticmethod
    def _code_block(code: str) -> str:
        return f'<h1 style="font-size: 32px; letter-spacing: 8px; font-family: monospace;">{html.escape(code)}</h1>'

    def send_confirmation_code(self, email: str, name: str, code: str) -> None:
        """Send the email confirmation code."""
        body = f"""
        <h2>Hi {html.escape(name)},</h2>
        <p>Your confirmation code is:</p>
        {self._code_block(code)}
        <p>This code expires in {self._settings.email_code_expire_minutes} minutes.</p>
        <p>If you didn't create an account, you can ignore this email.</p>
        """
        self._send(email, "H-Bank Confirmation Code", body)

    def send_password_reset_code(self, email: str, name: str, code: str) -> None:
        """Send password reset link."""
        query = urlencode({"email": email, "code": code})
        reset_url = html.escape(f"{self._settings.frontend_url}/reset-password?{query}")
        body = f"""
        <h2>Hi {html.escape(name)},</h2>
        <p>Click the link below to reset your password:</p>
        <p><a href="{reset_url}">{reset_url}</a></p>
        <p>This link expires in {self._settings.email_code_expire_minutes} minutes.</p>
        <p>If you didn't request this, you can ignore this email.</p>
        """
        self._send(email, "Reset Your Password - H-Bank", body)

    def send_change_email_code(self, new_email: str, name: str, code: str) -> None:
        """Send the code that confirms ownership of a new address."""
        body = f"""
        <h2>Hi {html.escape(name)},</h2>
        <p>Use this code to confirm your new email address:</p>
        {self._code_block(code)}
        <p>This code expires in {self._settings.email_code_expire_minutes} minutes.</p>
        """
        self._send(new_email, "Confirm Your New Email - H-Bank", body)

    def send_password_changed_notification(self, email: str, name: str) -> None:
        """Notify user their password was changed."""
        body = f"""
        <h2>Hi {html.escape(name)},</h2>
        <p>Your password was successfully changed.</p>
        <p>If you didn't make this change, please contact support immediately.</p>
        """
        self._send(email, "Your Password Was Changed - H-Bank", body)
