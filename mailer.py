"""
Transactional email delivery.

Mailer picks one transport the first time it is used and keeps it for the
life of the process:

1. Resend, when RESEND_API_KEY is set;
2. SMTP, when SMTP_USER and SMTP_PASS are set (connection and login are
   verified up front; a failure here is not silently replaced by another
   transport);
3. outside production, a throwaway Ethereal sandbox account whose messages
   can be previewed on the web;
4. otherwise nothing, and every send fails.

The send_* helpers never raise; they report delivery as True/False.
"""
import logging
import re
import smtplib
import ssl
import threading
from email.message import EmailMessage
from email.utils import formataddr
from functools import lru_cache
from typing import Any, Dict, Optional

import requests
import resend

import email_templates
from config import Settings, get_settings

logger = logging.getLogger(__name__)

ETHEREAL_ACCOUNT_URL = "https://api.nodemailer.com/user"
ETHEREAL_WEB_URL = "https://ethereal.email"
msgid_regex = re.compile(r"MSGID=([^\s\]]+)")


class MailerError(RuntimeError):
    pass


def is_gmail_host(host: str) -> bool:
    host = host.lower()
    return "gmail.com" in host or "googlemail.com" in host


class ResendTransport:
    name = "resend"

    def __init__(self, api_key: str, sender: str):
        # the SDK reads a module-level key; one key per process, set before any send
        resend.api_key = api_key
        self.sender = sender

    def verify(self) -> None:
        # Resend has no cheap verification call; a configured key counts as ready.
        return None

    def send(self, to: str, subject: str, html: str) -> Optional[str]:
        response = resend.Emails.send({"from": self.sender, "to": [to], "subject": subject, "html": html})
        return str(response.get("id")) if isinstance(response, dict) else None


class SmtpTransport:
    name = "smtp"

    def __init__(self, host: str, port: int, use_ssl: bool, user: str, password: str,
                 sender: str, sender_name: str, timeout: float = 30):
        self.host = host
        self.port = port
        self.use_ssl = use_ssl
        self.user = user
        self.password = password
        self.sender = sender
        self.sender_name = sender_name
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        if self.use_ssl:
            smtp = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            smtp.ehlo()
            smtp.starttls(context=context)
            smtp.ehlo()
        try:
            smtp.login(self.user, self.password)
        except smtplib.SMTPException:
            smtp.close()
            raise
        return smtp

    def verify(self) -> None:
        smtp = self._connect()
        smtp.quit()

    def build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((self.sender_name, self.sender))
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable email client.")
        message.add_alternative(html, subtype="html")
        return message

    def send(self, to: str, subject: str, html: str) -> Optional[str]:
        """Deliver one message and return the server's final reply line."""
        message = self.build_message(to, subject, html)
        with self._connect() as smtp:
            code, reply = smtp.mail(self.sender)
            if code != 250:
                raise smtplib.SMTPSenderRefused(code, reply, self.sender)
            code, reply = smtp.rcpt(to)
            if code not in (250, 251):
                raise smtplib.SMTPRecipientsRefused({to: (code, reply)})
            code, reply = smtp.data(message.as_bytes())
            if code != 250:
                raise smtplib.SMTPDataError(code, reply)
        return reply.decode("utf-8", errors="replace") if isinstance(reply, bytes) else reply


class EtherealTransport(SmtpTransport):
    name = "ethereal"

    @classmethod
    def create(cls, sender_name: str, http=requests) -> "EtherealTransport":
        response = http.post(ETHEREAL_ACCOUNT_URL, json={"requestor": "hj-fashion-api", "version": "1.0.0"}, timeout=15)
        response.raise_for_status()
        account = response.json()
        if account.get("status") != "success":
            raise MailerError(f"Could not create Ethereal account: {account.get('error', 'unknown error')}")
        smtp = account["smtp"]
        return cls(
            host=smtp["host"],
            port=int(smtp["port"]),
            use_ssl=bool(smtp.get("secure")),
            user=account["user"],
            password=account["pass"],
            sender=account["user"],
            sender_name=sender_name,
        )

    @staticmethod
    def preview_url(reply: Optional[str]) -> Optional[str]:
        match = msgid_regex.search(reply or "")
        return f"{ETHEREAL_WEB_URL}/message/{match.group(1)}" if match else None

    def send(self, to: str, subject: str, html: str) -> Optional[str]:
        reply = super().send(to, subject, html)
        url = self.preview_url(reply)
        if url:
            logger.info("Ethereal email preview URL: %s", url)
        return reply


class Mailer:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._lock = threading.Lock()
        self._transport = None
        self._transport_error: Optional[Exception] = None

    def _smtp_transport(self) -> SmtpTransport:
        s = self.settings
        sender = s.sender_email
        if is_gmail_host(s.smtp_host) and sender.lower() != s.smtp_user.lower():
            logger.warning(
                "FROM_EMAIL (%s) does not match SMTP_USER (%s). For Gmail SMTP, forcing From to SMTP_USER.",
                sender, s.smtp_user,
            )
            sender = s.smtp_user
        transport = SmtpTransport(
            host=s.smtp_host, port=s.smtp_port, use_ssl=s.smtp_uses_ssl,
            user=s.smtp_user, password=s.smtp_pass, sender=sender, sender_name=s.app_name,
        )
        try:
            transport.verify()
        except (smtplib.SMTPException, OSError) as exc:
            if is_gmail_host(s.smtp_host) and isinstance(exc, smtplib.SMTPAuthenticationError):
                logger.error(
                    "Gmail SMTP authentication failed (535 BadCredentials). Enable 2-Step Verification, "
                    "create an App Password for the SMTP_USER account, set it as SMTP_PASS (16 characters, "
                    "no spaces) and restart. See https://support.google.com/mail/?p=BadCredentials"
                )
            else:
                logger.error("SMTP configuration failed. Fix SMTP_* env vars: %s", exc)
            raise MailerError("SMTP verification failed") from exc
        logger.info("Email transport: SMTP (%s:%s ssl=%s)", s.smtp_host, s.smtp_port, s.smtp_uses_ssl)
        return transport

    def _select_transport(self):
        s = self.settings
        if s.resend_api_key:
            sender = s.resend_from or s.from_email or s.smtp_user or "onboarding@resend.dev"
            logger.info("Email transport: Resend")
            return ResendTransport(s.resend_api_key, sender)
        if s.has_smtp_credentials:
            return self._smtp_transport()
        if not s.is_production:
            logger.warning("SMTP credentials not set. Using Ethereal email for development.")
            return EtherealTransport.create(s.app_name)
        raise MailerError("SMTP credentials are required in production (set SMTP_USER and SMTP_PASS).")

    @property
    def transport(self):
        with self._lock:
            if self._transport is None and self._transport_error is None:
                try:
                    self._transport = self._select_transport()
                except Exception as exc:
                    self._transport_error = exc
            if self._transport_error is not None:
                raise self._transport_error
            return self._transport

    def send_html(self, to: str, subject: str, html: str) -> Optional[str]:
        return self.transport.send(to, subject, html)

    def _deliver(self, kind: str, to: str, subject: str, html: str) -> bool:
        try:
            self.send_html(to, subject, html)
            return True
        except Exception:
            logger.exception("Error sending %s email to %s", kind, to)
            return False

    def send_verification_email(self, email: str, token: str, first_name: Optional[str] = None) -> bool:
        subject, html = email_templates.verification(token, first_name, self.settings.app_name, self.settings.app_url)
        return self._deliver("verification", email, subject, html)

    def send_password_reset_email(self, email: str, token: str, first_name: Optional[str] = None) -> bool:
        subject, html = email_templates.password_reset(token, first_name, self.settings.app_name, self.settings.app_url)
        return self._deliver("password reset", email, subject, html)

    def send_welcome_email(self, email: str, first_name: Optional[str] = None) -> bool:
        subject, html = email_templates.welcome(first_name, self.settings.app_name, self.settings.app_url)
        return self._deliver("welcome", email, subject, html)

    def send_password_changed_email(self, email: str, first_name: Optional[str] = None) -> bool:
        subject, html = email_templates.password_changed(first_name, self.settings.app_name, self.settings.app_url)
        return self._deliver("password changed", email, subject, html)

    def check_configuration(self) -> Dict[str, Any]:
        try:
            self.transport.verify()
            return {"success": True, "transport": self.transport.name}
        except Exception as exc:
            return {"success": False, "error": str(exc) or exc.__class__.__name__}


@lru_cache(maxsize=1)
def get_mailer() -> Mailer:
    """The process-wide Mailer; routes receive it through Depends(get_mailer)."""
    return Mailer(get_settings())
