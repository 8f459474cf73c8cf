"""
auth/mailer.py -- Outbound mail transports for OTP delivery.

Every transport exposes send(to, subject, body) and raises MailDeliveryError
when the message could not be handed off. AuthService depends only on that
method, so tests substitute a recording mailer without patching globals.

Transports:
  ConsoleMailer -- logs the message. Development default; the OTP shows up
                   in the server log instead of an inbox.
  SmtpMailer    -- smtplib with STARTTLS and login, bounded by a socket
                   timeout so a hung relay cannot pin a worker thread.
  MailgunMailer -- Mailgun HTTP API over requests, same timeout.

build_mailer(settings) picks one from MAIL_MODE at startup.

Transports do not fall back to one another. A failed send raises and the
caller decides whether the signup survives.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.text import MIMEText
from typing import TYPE_CHECKING

import requests

from auth.errors import MailDeliveryError

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("otpgate.auth.mailer")

OTP_SUBJECT = "Verify Your Email - OTP"


def otp_message(otp: int, ttl_seconds: int) -> tuple[str, str]:
    """Return (subject, body) for an OTP email."""
    minutes = max(1, ttl_seconds // 60)
    return OTP_SUBJECT, f"Your OTP code is {otp}. It is valid for {minutes} minutes."


class Mailer:
    """Interface for mail transports."""

    def send(self, to: str, subject: str, body: str) -> None:
        raise NotImplementedError


class ConsoleMailer(Mailer):
    def __init__(self, sender: str) -> None:
        self.sender = sender

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Mail (console) from=%s to=%s subject=%r body=%r", self.sender, to, subject, body)


class SmtpMailer(Mailer):
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> None:
        message = MIMEText(body, "plain")
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = to

        logger.info("Sending mail to %s via SMTP %s:%d", to, self.host, self.port)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(self.sender, [to], message.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"SMTP delivery to {to} failed: {exc}") from exc


class MailgunMailer(Mailer):
    _API = "https://api.mailgun.net/v3/{domain}/messages"

    def __init__(self, api_key: str, domain: str, sender: str, timeout: float = 10.0) -> None:
        self.api_key = api_key
        self.domain = domain
        self.sender = sender
        self.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Sending mail to %s via Mailgun", to)
        try:
            resp = requests.post(
                self._API.format(domain=self.domain),
                auth=("api", self.api_key),
                data={"from": self.sender, "to": to, "subject": subject, "text": body},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise MailDeliveryError(f"Mailgun delivery to {to} failed: {exc}") from exc


def build_mailer(settings: Settings) -> Mailer:
    """Return the transport selected by MAIL_MODE.

    Settings has already validated that the selected transport is configured.
    """
    if settings.mail_mode == "smtp":
        return SmtpMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.mail_from,
            username=settings.smtp_user,
            password=settings.smtp_password,
            timeout=settings.smtp_timeout_seconds,
        )
    if settings.mail_mode == "mailgun":
        return MailgunMailer(
            api_key=settings.mailgun_api_key,
            domain=settings.mailgun_domain,
            sender=settings.mail_from,
            timeout=settings.smtp_timeout_seconds,
        )
    if settings.is_production:
        logger.warning("MAIL_MODE=console in production -- OTP codes will only appear in the log")
    return ConsoleMailer(sender=settings.mail_from)
