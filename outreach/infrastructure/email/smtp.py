"""
SMTP Email Provider
Outbound email delivery over SMTP

Configuration (Settings / environment):
    SMTP_HOST: SMTP server hostname (e.g., smtp.zoho.com)
    SMTP_PORT: SMTP port (default: 587 for TLS)
    SMTP_USER: SMTP username
    SMTP_PASSWORD: SMTP password or app password
    SMTP_FROM_EMAIL: Default sender address
    SMTP_FROM_NAME: Default sender display name
    SMTP_USE_TLS: Use STARTTLS (default: true)

smtplib is blocking; each send runs in a worker thread so the event loop
keeps serving webhooks.
"""
import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Optional

from outreach.core.config import Settings
from outreach.domain.interfaces.email_provider import EmailProvider
from outreach.domain.interfaces.errors import ProviderError
from outreach.domain.models.dispatch import EmailSendResult, OutboundEmail

logger = logging.getLogger(__name__)


class SMTPConfigError(Exception):
    """Raised when SMTP is not properly configured."""
    pass


class SMTPEmailProvider(EmailProvider):
    """
    SMTP email provider.

    Transport failures raise ProviderError; the dispatcher turns them into
    a failed DispatchResult.
    """

    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: str = "Commertize",
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email
        self.from_name = from_name
        self.use_tls = use_tls
        self.timeout = timeout

        if not self.is_configured:
            logger.warning("SMTP not fully configured - outbound email will fail")
        else:
            logger.info(f"Initialized SMTP provider (host: {self.host})")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SMTPEmailProvider":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            from_name=settings.smtp_from_name,
            use_tls=settings.smtp_use_tls,
        )

    @property
    def name(self) -> str:
        return "smtp"

    @property
    def is_configured(self) -> bool:
        return all([self.host, self.user, self.password, self.from_email])

    def _validate_config(self) -> None:
        if not self.is_configured:
            raise SMTPConfigError(
                "SMTP not configured. Required environment variables: "
                "SMTP_HOST, SMTP_USER, SMTP_PASSWORD, SMTP_FROM_EMAIL"
            )

    def build_message(self, email: OutboundEmail) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        if email.text:
            message.attach(MIMEText(email.text, "plain", "utf-8"))
        message.attach(MIMEText(email.html, "html", "utf-8"))

        message["Subject"] = email.subject
        message["From"] = formataddr((email.from_name or self.from_name, email.from_email or self.from_email))
        message["To"] = email.to
        message["Message-ID"] = make_msgid(domain=(self.from_email or "localhost").split("@")[-1])
        if email.reply_to:
            message["Reply-To"] = email.reply_to
        return message

    def _send_sync(self, sender: str, recipient: str, payload: str) -> None:
        if self.use_tls:
            context = ssl.create_default_context()
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.ehlo()
                server.starttls(context=context)
                server.ehlo()
                server.login(self.user, self.password)
                server.sendmail(sender, [recipient], payload)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.login(self.user, self.password)
                server.sendmail(sender, [recipient], payload)

    async def send(self, email: OutboundEmail) -> EmailSendResult:
        """
        Send one email.

        Raises:
            SMTPConfigError: If SMTP credentials are missing
            ProviderError: If the SMTP server rejects or the connection fails
        """
        self._validate_config()
        message = self.build_message(email)
        sender = email.from_email or self.from_email

        try:
            await asyncio.to_thread(self._send_sync, sender, email.to, message.as_string())
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {e}")
            raise ProviderError(self.name, "authentication failed, check SMTP credentials") from e
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP error sending to {email.to}: {e}")
            raise ProviderError(self.name, f"failed to send email: {e}") from e

        message_id = message["Message-ID"]
        logger.info(f"Email sent via SMTP to {email.to} ({message_id})")
        return EmailSendResult(accepted=True, message_id=message_id)
