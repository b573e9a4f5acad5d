"""Transactional email for operators and application owners.

Every notification is best effort: a missing mail configuration or a failed
send is logged and reported as ``False``, never raised into the request that
triggered it.
"""

from datetime import datetime, timezone
from html import escape
from typing import Optional

import httpx

from app.core.config import get_settings
from app.core.logging import get_logger
from app.models import Application, Note

logger = get_logger(__name__)


class MailerError(Exception):
    pass


class Mailer:
    """Client for the transactional mail API (``POST /emails``)."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        sender: str,
        timeout: float = 10,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self.transport = transport

    def send(self, to: str, subject: str, text: str, html: Optional[str] = None) -> Optional[str]:
        body = {"from": self.sender, "to": [to], "subject": subject, "text": text}
        if html:
            body["html"] = html
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.api_url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise MailerError(f"mail_unreachable: {exc}") from exc

        if response.is_error:
            raise MailerError(f"mail_status_{response.status_code}")
        try:
            return response.json().get("id")
        except (ValueError, AttributeError):
            return None


def get_mailer() -> Optional[Mailer]:
    settings = get_settings()
    if not settings.resend_api_key:
        return None
    return Mailer(
        settings.resend_api_url,
        settings.resend_api_key,
        settings.mail_from,
        timeout=settings.http_timeout_seconds,
    )


def _deliver(mailer: Optional[Mailer], kind: str, to: Optional[str], subject: str, text: str, html: str) -> bool:
    if mailer is None:
        logger.info("notification.skipped", extra={"kind": kind, "reason": "mail_not_configured"})
        return False
    if not to:
        logger.warning("notification.skipped", extra={"kind": kind, "reason": "no_recipient"})
        return False
    try:
        message_id = mailer.send(to, subject, text, html)
    except MailerError as exc:
        logger.error("notification.failed", extra={"kind": kind, "reason": str(exc)})
        return False
    logger.info("notification.sent", extra={"kind": kind, "message_id": message_id})
    return True


def _paragraphs(lines: list[str]) -> str:
    return "".join(f"<p>{escape(line)}</p>" for line in lines)


def notify_new_application(mailer: Optional[Mailer], application: Application) -> bool:
    settings = get_settings()
    lines = [
        f"Project: {application.name}",
        f"Website: {application.url}",
        f"Submitted by: {application.user_email or application.user_id}",
        f"Submitted at: {application.created_at.isoformat() if application.created_at else ''}",
        f"Review it at {settings.site_url}/admin",
    ]
    return _deliver(
        mailer,
        "application.submitted",
        settings.operator_email(),
        f"New Application Submitted - {application.name}",
        "\n".join(lines),
        _paragraphs(lines),
    )


NOTE_SUBJECTS = {
    "created": "Your Redverse promotion note is live",
    "updated": "Your Redverse promotion note has new engagement",
    "report": "Your Redverse promotion report",
}


def notify_note(mailer: Optional[Mailer], application: Application, note: Note, action: str = "created") -> bool:
    settings = get_settings()
    lines = [
        f"Project: {application.name}",
        f"Note: {note.url}",
        f"Likes: {note.likes_count or 0}",
        f"Collects: {note.collects_count or 0}",
        f"Comments: {note.comments_count or 0}",
        f"Dashboard: {settings.site_url}/dashboard",
    ]
    return _deliver(
        mailer,
        f"note.{action}",
        application.user_email,
        NOTE_SUBJECTS.get(action, NOTE_SUBJECTS["report"]),
        "\n".join(lines),
        _paragraphs(lines),
    )


def send_feedback(
    mailer: Optional[Mailer],
    user_email: Optional[str],
    user_id: str,
    feedback_text: str,
    application: Optional[Application] = None,
) -> bool:
    settings = get_settings()
    lines = [
        f"From: {user_email or user_id}",
        f"Submitted at: {datetime.now(timezone.utc).isoformat()}",
        f"Feedback: {feedback_text}",
    ]
    if application is not None:
        lines.append(f"Application: {application.name} ({application.url})")
    return _deliver(
        mailer,
        "feedback",
        settings.operator_email(),
        f"New User Feedback - {user_email or user_id}",
        "\n".join(lines),
        _paragraphs(lines),
    )


def send_bug_report(
    mailer: Optional[Mailer],
    user_email: Optional[str],
    error: str,
    submission: dict,
    user_agent: Optional[str] = None,
) -> bool:
    settings = get_settings()
    lines = [
        f"User: {user_email or 'unknown'}",
        f"Reported at: {datetime.now(timezone.utc).isoformat()}",
        f"Error: {error}",
    ]
    lines.extend(f"{key}: {value}" for key, value in sorted(submission.items()) if value)
    if user_agent:
        lines.append(f"User agent: {user_agent}")
    return _deliver(
        mailer,
        "bug_report",
        settings.operator_email(),
        f"Bug Report - Submission Failed ({user_email or 'unknown'})",
        "\n".join(lines),
        _paragraphs(lines),
    )
