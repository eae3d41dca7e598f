"""
Email service: sends mail via SMTP or logs it.

EMAIL_BACKEND picks the transport:
  - "log" (default): writes the message to the logger
  - "smtp": delivers through MAIL_SERVER with the MAIL_* credentials

``send`` never raises for transport problems; it reports them as False so
callers can record a partial success.
"""

import asyncio
import logging
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from stemelix import config

logger = logging.getLogger(__name__)


class Attachment:
    def __init__(self, filename: str, content: bytes, content_type: str = "application/pdf"):
        self.filename = filename
        self.content = content
        self.content_type = content_type


class Mailer:
    def __init__(self, backend: str = None):
        self.backend = backend or config.EMAIL_BACKEND

    async def send(self, to: str, subject: str, html: str,
                   attachment: Optional[Attachment] = None) -> bool:
        if self.backend == "log":
            logger.info(
                "EMAIL [to=%s] subject=%s attachment=%s\n%s",
                to, subject, attachment.filename if attachment else None, html,
            )
            return True
        return await asyncio.to_thread(self._do_send, to, subject, html, attachment)

    def _do_send(self, to: str, subject: str, html: str, attachment: Optional[Attachment]) -> bool:
        """Blocking SMTP send, run off the event loop"""
        try:
            msg = MIMEMultipart("mixed")
            msg["Subject"] = subject
            msg["From"] = config.MAIL_FROM
            msg["To"] = to
            msg.attach(MIMEText(html, "html"))

            if attachment is not None:
                _, subtype = attachment.content_type.split("/", 1)
                part = MIMEApplication(attachment.content, _subtype=subtype)
                part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
                msg.attach(part)

            with smtplib.SMTP(config.MAIL_SERVER, config.MAIL_PORT, timeout=30) as smtp:
                if config.MAIL_USE_TLS:
                    smtp.starttls()
                if config.MAIL_USERNAME and config.MAIL_PASSWORD:
                    smtp.login(config.MAIL_USERNAME, config.MAIL_PASSWORD)
                smtp.send_message(msg)
            logger.info("Email sent to %s: %s", to, subject)
            return True
        except (smtplib.SMTPException, OSError, ValueError) as e:
            logger.error("SMTP send to %s failed: %s", to, e)
            return False


# ==================== TEMPLATES ====================

def payment_verified_email(user_name: str, course_title: str, order_id: str, amount: float, currency: str) -> str:
    return f"""
    <h2>Payment verified</h2>
    <p>Hi {user_name},</p>
    <p>Your payment for <strong>{course_title}</strong> has been verified and the course is now unlocked.</p>
    <p>Order ID: {order_id}<br>Amount: {currency} {amount:,.2f}</p>
    <p>Your invoice is attached.</p>
    <p>Happy learning!<br>STEMelix Team</p>
    """


def meeting_invite_email(student_name: str, topic: str, start_time: str, duration: int,
                         join_url: str, teacher_name: str) -> str:
    return f"""
    <h2>{topic}</h2>
    <p>Hi {student_name or 'there'},</p>
    <p>{teacher_name} has scheduled a live session.</p>
    <p>Starts: {start_time}<br>Duration: {duration} minutes</p>
    <p><a href="{join_url}">Join the meeting</a></p>
    <p>STEMelix Team</p>
    """
