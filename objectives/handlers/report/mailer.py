"""
mailer.py — Report rendering and SMTP delivery.

Components:
  render_report()  — fixed markdown template, placeholders for missing values
  render_html()    — markdown → HTML for the rich-text alternative part
  build_message()  — multipart/alternative EmailMessage with a fresh Message-ID
  ReportMailer     — one SMTP session per report; returns the Message-ID

smtplib is blocking; the route runs ReportMailer.send() in a threadpool.
Logs the session id and Message-ID only, never the recipient or the body.
"""
import logging
import smtplib
import ssl
from datetime import date
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any, Callable, Optional

import markdown

from objectives.config import Settings
from objectives.handlers.report.schemas import ReportRequest

logger = logging.getLogger(__name__)

REPORT_SUBJECT = "90-Day Objectives Report"

PROFILE_PLACEHOLDER = "Not specified"
INITIAL_PLACEHOLDER = "No initial objectives generated"
REFINED_PLACEHOLDER = "No refined objectives generated"
VALUE_PLACEHOLDER = "Not provided"

REPORT_TEMPLATE = """# Your 90-Day Objectives Report

Thank you for using our 90-Day Objectives Generator!

## Your Selected Profile
{profile}

## Initial Objectives
{initial}

## Refined Objectives
{refined}

## Your Feedback
- Experience Rating: {experience}/{rating_max}
- Would Recommend: {recommend}/{rating_max}

Session ID: {session_id}
Generated on: {generated_on}
"""

SMTPFactory = Callable[..., smtplib.SMTP]


def _or_placeholder(value: Any, placeholder: str) -> Any:
    return placeholder if value is None or value == "" else value


def render_report(report: ReportRequest, rating_max: int = 10, today: Optional[date] = None) -> str:
    """Fill the report template; absent sections get explicit placeholder text."""
    return REPORT_TEMPLATE.format(
        profile=_or_placeholder(report.selected_profile, PROFILE_PLACEHOLDER),
        initial=_or_placeholder(report.initial_response, INITIAL_PLACEHOLDER),
        refined=_or_placeholder(report.refined_response, REFINED_PLACEHOLDER),
        experience=_or_placeholder(report.experience_rating, VALUE_PLACEHOLDER),
        recommend=_or_placeholder(report.recommend_rating, VALUE_PLACEHOLDER),
        rating_max=rating_max,
        session_id=_or_placeholder(report.session_id, VALUE_PLACEHOLDER),
        generated_on=(today or date.today()).isoformat(),
    )


def render_html(markdown_text: str) -> str:
    return markdown.markdown(markdown_text, extensions=["sane_lists"])


def build_message(sender: str, recipient: str, text_body: str, html_body: str) -> EmailMessage:
    """Plain-text markdown body with an HTML alternative and a generated Message-ID."""
    message = EmailMessage()
    message["From"] = sender
    message["To"] = recipient
    message["Subject"] = REPORT_SUBJECT
    message["Message-ID"] = make_msgid(domain=sender.rpartition("@")[2].strip("> ") or None)
    message.set_content(text_body)
    message.add_alternative(html_body, subtype="html")
    return message


def smtp_summary(settings: Settings) -> dict[str, Any]:
    """Masked view of the relay settings for error responses."""
    return {
        "host": settings.smtp_host or "Not set",
        "port": settings.smtp_port,
        "user": "Set" if settings.smtp_user else "Missing",
        "password": "Set" if settings.smtp_password else "Missing",
        "from": settings.smtp_from_email or "Not set",
    }


class ReportMailer:
    """
    Renders the session report and hands it to the configured SMTP relay.

    smtp_factory is called as factory(host, port, timeout=...) and must return
    an smtplib.SMTP-compatible context manager. Defaults to smtplib.SMTP_SSL
    when SMTP_SECURE is true, else smtplib.SMTP with opportunistic STARTTLS.
    """

    def __init__(self, settings: Settings, smtp_factory: Optional[SMTPFactory] = None):
        self._settings = settings
        self._smtp_factory = smtp_factory

    def _connect(self) -> smtplib.SMTP:
        s = self._settings
        if self._smtp_factory is not None:
            return self._smtp_factory(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout)
        if s.smtp_secure:
            return smtplib.SMTP_SSL(
                s.smtp_host, s.smtp_port, timeout=s.smtp_timeout,
                context=ssl.create_default_context(),
            )
        return smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout)

    def send(self, report: ReportRequest) -> str:
        """
        Render and deliver the report to report.email.

        Returns the Message-ID header of the sent message.

        Raises:
            ConfigurationError: a required SMTP setting is empty.
            smtplib.SMTPException / OSError: relay refused or unreachable; not retried.
        """
        s = self._settings
        s.require("smtp_host", "smtp_user", "smtp_password", "smtp_from_email")

        text_body = render_report(report, rating_max=s.rating_max)
        message = build_message(s.smtp_from_email, report.email, text_body, render_html(text_body))

        with self._connect() as server:
            if not s.smtp_secure:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo()
            server.login(s.smtp_user, s.smtp_password)
            server.send_message(message)

        message_id = message["Message-ID"]
        logger.info("Report email sent session_id=%s message_id=%s", report.session_id, message_id)
        return message_id
