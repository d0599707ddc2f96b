"""
Transactional mail (aiosmtplib + jinja2).

Templates live in ``api/src/templates/email`` (or ``email_template_dir``)
and are rendered from ``{template}.html``. When no SMTP host is configured
mail is logged and skipped, which keeps local development free of an SMTP
dependency.
"""

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from pathlib import Path
from typing import Any, Dict

import aiosmtplib
import structlog
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from api.src.config import Settings
from api.src.errors import InternalServerError
from shared.metrics import get_app_metrics
from shared.tracing import trace_function

logger = structlog.get_logger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


class MailService:
    """Renders templates and sends them over SMTP."""

    def __init__(self, settings: Settings):
        """
        Initialize mail service.

        Args:
            settings: Application settings (SMTP and sender configuration)
        """
        self.settings = settings
        template_dir = Path(settings.email_template_dir or DEFAULT_TEMPLATE_DIR)
        self.template_env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html"])
        )

    def render_template(self, template: str, context: Dict[str, Any]) -> str:
        """
        Render ``{template}.html``.

        Raises:
            InternalServerError: If the template does not exist
        """
        try:
            return self.template_env.get_template(f"{template}.html").render(
                app_name=self.settings.app_name, **context
            )
        except TemplateNotFound as e:
            logger.error("mail_template_missing", template=template)
            raise InternalServerError(f"Mail template not found: {template}") from e

    def build_message(self, to: str, subject: str, html: str) -> MIMEMultipart:
        """Assemble a multipart/alternative message."""
        message = MIMEMultipart("alternative")
        message["From"] = formataddr((self.settings.email_from_name, self.settings.email_from))
        message["To"] = to
        message["Subject"] = subject
        message.attach(MIMEText(html, "html", "utf-8"))
        return message

    @trace_function("mail.send", attributes={"mail.template": "template"})
    async def send_mail(
        self,
        to: str,
        subject: str,
        template: str,
        context: Dict[str, Any]
    ) -> bool:
        """
        Render a template and send it.

        Args:
            to: Recipient address
            subject: Subject line
            template: Template name without extension
            context: Template variables

        Returns:
            True if the mail was handed to the SMTP server, False if SMTP is
            not configured and sending was skipped

        Raises:
            InternalServerError: If rendering or delivery fails
        """
        metrics = get_app_metrics()
        html = self.render_template(template, context)

        if not self.settings.smtp_configured:
            logger.warning("mail_skipped_smtp_not_configured", to=to, template=template, context=context)
            metrics.emails_sent.labels(template=template, outcome="skipped").inc()
            return False

        message = self.build_message(to, subject, html)

        try:
            async with aiosmtplib.SMTP(
                hostname=self.settings.smtp_host,
                port=self.settings.smtp_port,
                use_tls=self.settings.smtp_use_tls,
                start_tls=self.settings.smtp_start_tls if not self.settings.smtp_use_tls else False
            ) as smtp:
                if self.settings.smtp_user and self.settings.smtp_password:
                    await smtp.login(self.settings.smtp_user, self.settings.smtp_password)
                await smtp.send_message(message)

        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("mail_send_failed", to=to, template=template, error=str(e))
            metrics.emails_sent.labels(template=template, outcome="failure").inc()
            raise InternalServerError("Failed to send email") from e

        metrics.emails_sent.labels(template=template, outcome="success").inc()
        logger.info("mail_sent", to=to, template=template)
        return True

    async def send_verification_email(self, to: str, username: str, link: str) -> bool:
        """Send the account verification link."""
        return await self.send_mail(
            to,
            "Verify your email",
            "verification-email",
            {"username": username, "link": link}
        )

    async def send_reset_password_email(self, to: str, username: str, link: str) -> bool:
        """Send the password reset link."""
        return await self.send_mail(
            to,
            "Reset your password",
            "reset-password",
            {"username": username, "link": link}
        )
