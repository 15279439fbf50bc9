"""Outbound verification email.

Learn: The identity layer only needs "send this code to this person and
tell me if it worked". Two transports implement that:

1. ConsoleMailer — development: logs the code instead of sending it
2. SmtpMailer — real delivery through an SMTP relay

Neither raises on delivery trouble; they return False and the caller
decides what to undo (registration deletes the half-created account).
"""

import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import formataddr
from functools import lru_cache

import structlog

from notekeeper.config import Settings, settings

logger = structlog.get_logger()

SUBJECT = "Your verification code"


def render_body(code: str, name: str, ttl_minutes: int) -> str:
    return (
        f"Hi {name},\n\n"
        "Thanks for signing up! Use the following code to verify your "
        "email address:\n\n"
        f"    {code}\n\n"
        f"This code will expire in {ttl_minutes} minutes.\n\n"
        "If you didn't create an account with us, please ignore this email.\n"
    )


class Mailer(ABC):
    """Delivers verification codes."""

    @abstractmethod
    async def send_verification_code(self, recipient: str, code: str, name: str) -> bool:
        """Send `code` to `recipient`. Returns True on success."""


class ConsoleMailer(Mailer):
    async def send_verification_code(self, recipient: str, code: str, name: str) -> bool:
        logger.info(
            "mail.dev_verification_code",
            recipient=recipient,
            name=name,
            code=code,
        )
        return True


class SmtpMailer(Mailer):
    def __init__(self, cfg: Settings):
        self.cfg = cfg

    def _build_message(self, recipient: str, code: str, name: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = SUBJECT
        msg["From"] = formataddr((self.cfg.mail_sender_name, self.cfg.mail_from))
        msg["To"] = recipient
        msg.set_content(render_body(code, name, self.cfg.challenge_ttl_minutes))
        return msg

    def _send(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.cfg.smtp_host, self.cfg.smtp_port, timeout=10) as conn:
            if self.cfg.smtp_use_tls:
                conn.starttls()
            if self.cfg.smtp_username:
                conn.login(self.cfg.smtp_username, self.cfg.smtp_password)
            conn.send_message(msg)

    async def send_verification_code(self, recipient: str, code: str, name: str) -> bool:
        msg = self._build_message(recipient, code, name)
        try:
            await asyncio.to_thread(self._send, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("mail.delivery_failed", recipient=recipient, error=str(e))
            return False
        logger.info("mail.sent", recipient=recipient)
        return True


def build_mailer(cfg: Settings) -> Mailer:
    if cfg.environment == "development" or not cfg.smtp_host:
        return ConsoleMailer()
    return SmtpMailer(cfg)


@lru_cache(maxsize=1)
def get_mailer() -> Mailer:
    """FastAPI dependency — the configured transport."""
    return build_mailer(settings)
