"""Outbound email for password reset links"""
import html
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional
from urllib.parse import urlencode

from app.services.errors import EmailDeliveryFailed
from app.utils.logger import logger, redact_email

RESET_SUBJECT = "Password Recovery - SamFilms"


class EmailSender:
    """SMTP email sender.

    When no SMTP host is configured (development) messages are logged by
    recipient and subject only and reported as sent. Any SMTP failure raises
    EmailDeliveryFailed so callers can tell the user the email did not go out.
    """

    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "SamFilms",
        frontend_url: str = "http://localhost:5173",
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.frontend_url = frontend_url.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send(self, to_email: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None:
        if not self.is_configured:
            logger.info(
                f"Email not sent (SMTP not configured): {subject}",
                extra={"action": "email_dev_mode", "recipient": redact_email(to_email)},
            )
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(
                f"Email delivery failed: {subject}",
                extra={"action": "email_send", "error_type": type(exc).__name__},
                exc_info=True,
            )
            raise EmailDeliveryFailed() from exc

        logger.info(f"Email sent: {subject}", extra={"action": "email_send"})

    def reset_link(self, raw_secret: str) -> str:
        return f"{self.frontend_url}/reset-password?{urlencode({'token': raw_secret})}"

    def send_password_reset(self, to_email: str, raw_secret: str, name: str) -> None:
        url = self.reset_link(raw_secret)
        safe_name = html.escape(name)
        body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #333;">Password Recovery</h2>
  <p>Hi {safe_name},</p>
  <p>We received a request to reset your password. Click the button below to choose a new one:</p>
  <div style="text-align: center; margin: 30px 0;">
    <a href="{url}" style="background-color: #007bff; color: white; padding: 12px 30px;
       text-decoration: none; border-radius: 5px; display: inline-block;">Reset Password</a>
  </div>
  <p>Or paste this link into your browser:</p>
  <p style="word-break: break-all; color: #007bff;">{url}</p>
  <p style="color: #666; font-size: 14px;">
    This link expires in 1 hour.<br>
    If you did not request a password reset, ignore this email.
  </p>
</div>
"""
        text = f"Hi {name},\n\nTo reset your password, visit:\n{url}\n\nThis link expires in 1 hour."
        self.send(to_email, RESET_SUBJECT, body, text)
