"""
Outbound side-effect channels: SMS and email.

Both are thin wrappers. A failed delivery raises ``DependencyFailure``; callers
decide whether that is fatal (OTP delivery) or only worth a log line (booking
confirmations, welcome mail after signup).

The HTTP SMS sender talks to a TextLocal-style form API:

    POST <sms_api_url>  apikey=... numbers=... sender=... message=...
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

import requests

from cargo_api.errors import DependencyFailure
from cargo_api.settings import Settings

logger = logging.getLogger(__name__)


class SmsSender(Protocol):
    def send(self, phone: str, message: str) -> None: ...


class Mailer(Protocol):
    def send(self, to: str, subject: str, body: str) -> None: ...


class HttpSmsSender:
    def __init__(self, api_url: str, api_key: str, sender: str, timeout: float = 10) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    def send(self, phone: str, message: str) -> None:
        data = {"apikey": self.api_key, "numbers": phone, "sender": self.sender, "message": message}
        try:
            resp = requests.post(self.api_url, data=data, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("SMS send failed phone=%s: %s", phone, type(e).__name__)
            raise DependencyFailure("Failed to send SMS") from e
        logger.info("SMS sent phone=%s", phone)


class LoggingSmsSender:
    """Development channel: writes the message to the log instead of sending it."""

    def send(self, phone: str, message: str) -> None:
        logger.info("SMS (not sent) phone=%s message=%s", phone, message)


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        user: str | None = None,
        password: str | None = None,
        timeout: float = 10,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.user = user
        self.password = password
        self.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password or "")
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Email send failed to=%s: %s", to, type(e).__name__)
            raise DependencyFailure("Failed to send email") from e
        logger.info("Email sent to=%s subject=%s", to, subject)


class LoggingMailer:
    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("Email (not sent) to=%s subject=%s", to, subject)


def build_sms_sender(settings: Settings) -> SmsSender:
    if settings.is_development or not settings.sms_api_key:
        if not settings.is_development:
            logger.warning("APP_SMS_API_KEY not configured; SMS messages will only be logged")
        return LoggingSmsSender()
    return HttpSmsSender(settings.sms_api_url, settings.sms_api_key, settings.sms_sender)


def build_mailer(settings: Settings) -> Mailer:
    if not settings.smtp_host:
        return LoggingMailer()
    return SmtpMailer(
        settings.smtp_host,
        settings.smtp_port,
        settings.mail_from,
        user=settings.smtp_user,
        password=settings.smtp_password,
    )


# Message bodies


def otp_message(otp: str, ttl_minutes: int) -> str:
    return f"Your DesiCargo verification code is: {otp}. Valid for {ttl_minutes} minutes."


def booking_message(cn_number: str, from_city: str | None, to_city: str | None, total: object) -> str:
    route = f"{from_city or '-'} to {to_city or '-'}"
    return f"DesiCargo: Consignment {cn_number} booked from {route}. Amount Rs.{total}."


def status_message(cn_number: str, status: str) -> str:
    return f"DesiCargo: Consignment {cn_number} is now {status.replace('_', ' ')}."


def welcome_email(company_name: str, tenant_code: str, username: str, trial_days: int) -> tuple[str, str]:
    subject = "Welcome to DesiCargo - Your Digital Transport Management Journey Begins!"
    body = (
        f"Welcome to DesiCargo, {company_name}!\n\n"
        f"Company code: {tenant_code}\n"
        f"Admin username: {username}\n\n"
        f"Your free trial is active for {trial_days} days.\n"
    )
    return subject, body
