# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Outbound mail for the account flows (verification, password reset, welcome).

When SMTP_HOST is not configured the mailer runs in development mode: the
message is written to the log and a message id is still returned, so local
registration works without a mail server.

Delivery failures raise :class:`MailDeliveryError`; whether that is fatal
is the caller's decision.
"""

import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from html import escape
from typing import Optional

from core.config import settings
from core.logger import logger


class MailDeliveryError(Exception):
    pass


def _redact(address: str) -> str:
    """Keep addresses out of the log in clear."""
    if "@" not in address:
        return "redacted"
    local, domain = address.split("@", 1)
    return f"{local[:2]}***@{domain}"


class Mailer:
    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        use_tls: bool = True,
        from_email: str = "",
        from_name: str = "Storefront",
        timeout: int = 30,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.use_tls = use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> str:
        """Send one message and return its Message-ID."""
        domain = self.from_email.split("@", 1)[1] if "@" in self.from_email else None
        message_id = make_msgid(domain=domain)

        if not self.is_configured:
            logger.info(
                "Mail (dev mode, not sent) to=%s subject=%r preview=%r",
                _redact(to),
                subject,
                (text or html)[:200],
            )
            return message_id

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = to
        msg["Message-ID"] = message_id
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.set_content(text or "This message requires an HTML-capable mail client.")
        msg.add_alternative(html, subtype="html")

        context = ssl.create_default_context()
        try:
            if self.use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, context=context, timeout=self.timeout
                ) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Mail delivery to %s failed: %s", _redact(to), exc)
            raise MailDeliveryError(str(exc)) from exc

        logger.info("Mail sent to=%s subject=%r id=%s", _redact(to), subject, message_id)
        return message_id

    # -- templated account mails --------------------------------------------

    def send_email_verification(self, user, verification_url: str) -> str:
        name = escape(user.name)
        url = escape(verification_url, quote=True)
        html = (
            f"<h2>Welcome, {name}!</h2>"
            f"<p>Please confirm your email address to activate your account.</p>"
            f'<p><a href="{url}">Verify my email</a></p>'
            f"<p>This link expires in {settings.email_token_expire_hours} hours.</p>"
        )
        text = (
            f"Hi {user.name},\n\nPlease confirm your email address:\n{verification_url}\n\n"
            f"This link expires in {settings.email_token_expire_hours} hours."
        )
        return self.send(user.email, "Verify your Storefront account", html, text)

    def send_password_reset(self, user, reset_url: str) -> str:
        name = escape(user.name)
        url = escape(reset_url, quote=True)
        html = (
            f"<h2>Hello {name},</h2>"
            f"<p>We received a request to reset your password.</p>"
            f'<p><a href="{url}">Choose a new password</a></p>'
            f"<p>This link expires in {settings.password_reset_expire_minutes} minutes. "
            f"If you did not ask for a reset, ignore this email.</p>"
        )
        text = (
            f"Hello {user.name},\n\nReset your password here:\n{reset_url}\n\n"
            f"This link expires in {settings.password_reset_expire_minutes} minutes."
        )
        return self.send(user.email, "Reset your Storefront password", html, text)

    def send_welcome_email(self, user) -> str:
        name = escape(user.name)
        html = (
            f"<h2>Welcome to Storefront, {name}!</h2>"
            f"<p>Your email address is verified. Happy shopping!</p>"
        )
        text = f"Welcome to Storefront, {user.name}!\n\nYour email address is verified."
        return self.send(user.email, "Welcome to Storefront!", html, text)


_mailer = Mailer(
    smtp_host=settings.smtp_host,
    smtp_port=settings.smtp_port,
    smtp_user=settings.smtp_user,
    smtp_password=settings.smtp_password,
    use_tls=settings.smtp_use_tls,
    from_email=settings.mail_from,
    from_name=settings.mail_from_name,
    timeout=settings.mail_timeout_seconds,
)


def get_mailer() -> Mailer:
    """FastAPI dependency – override in tests via app.dependency_overrides."""
    return _mailer
