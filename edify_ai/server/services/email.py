"""
Moderation Email Service.

Sends moderation request and review outcome emails through the Resend HTTP
API. Messages are rendered as inline-styled HTML.
"""

from __future__ import annotations

from html import escape
from typing import Any, Dict, List, Optional

import httpx

from edify_ai.core.logging_config import get_logger
from edify_ai.server.core.config import settings
from edify_ai.server.services.violations import display_username

logger = get_logger(__name__)

_service: Optional["EmailService"] = None

SEVERITY_COLORS = {
    "critical": "#FF4444",
    "high": "#FF8C00",
    "medium": "#FFD700",
    "low": "#90EE90",
}

TOOL_PAGES = {
    "chat": "/tools/ai-chat-history",
    "ai-chat": "/tools/ai-chat-history",
    "ai-chat-history": "/tools/ai-chat-history",
    "prompt": "/tools/prompt-generator",
    "lesson-plan": "/tools/lesson-plan-generator",
    "lesson": "/tools/lesson-plan-generator",
    "long-qa": "/tools/long-qa-generator",
    "mcq": "/tools/mcq-generator",
    "peel": "/tools/peel-generator",
    "report": "/tools/report-generator",
    "rubric": "/tools/rubric-generator",
    "sow": "/tools/sow-generator",
    "quiz": "/tools/quiz-generator",
    "clarify-or-challenge": "/tools/clarify-or-challenge",
    "perspective-challenge": "/tools/perspective-challenge",
    "lesson-plan-evaluator": "/tools/lesson-plan-evaluator",
}


class EmailDeliveryError(Exception):
    """The email provider rejected or failed a send."""


def tool_page(tool_type: Optional[str], content_id: str, status: Optional[str]) -> str:
    """App path of the tool that produced the content, pre-filled when approved."""
    key = (tool_type or "").lower().replace("_", "-").replace(" ", "-").replace("-generator", "", 1)
    path = TOOL_PAGES.get(key, "/tools")
    if status == "approved":
        return f"{path}?approved={content_id}"
    return path


def _severity_badge(severity: str) -> str:
    color = SEVERITY_COLORS.get(severity.lower(), "#808080")
    text_color = "#000" if severity.lower() == "low" else "#fff"
    return (
        f'<span style="background-color:{color};color:{text_color};padding:2px 8px;border-radius:12px;'
        f'font-size:12px;font-weight:bold;display:inline-block;margin-left:8px">{escape(severity.upper())}</span>'
    )


def _violations_section(violations: List[Dict[str, str]]) -> str:
    if not violations:
        return ""
    items = "".join(
        f'<p style="color:#202124">{escape(v["type"])}{_severity_badge(v["severity"])}</p>' for v in violations
    )
    return f'<h3 style="color:#202124">Detected Violations</h3>{items}'


def _content_lines(tool_type: str, chat_title: str, content_id: str) -> str:
    line = '<p style="font-size:15px;line-height:1.8;color:#202124"><b>{label}: </b>{value}</p>'
    return "".join(
        [
            line.format(label="chat", value=f'"{escape(chat_title)}"'),
            line.format(label="tool type", value=f'"{escape(tool_type)}"'),
            line.format(label="content id", value=escape(content_id)),
        ]
    )


def _layout(body: str) -> str:
    return (
        '<div style="max-width:600px;margin:0 auto;background-color:#ffffff;padding:40px;border-radius:8px;'
        f'box-shadow:0 2px 4px rgba(0,0,0,0.1);font-family:Arial, sans-serif">{body}</div>'
    )


def render_moderation_request(
    *,
    app_url: str,
    username: str,
    content_id: str,
    tool_type: str,
    chat_title: str,
    violations: List[Dict[str, str]],
) -> str:
    """HTML asking a moderator to approve or decline flagged content."""
    action_url = f"{app_url}/api/moderator/violations/{content_id}?action={{action}}"
    button = (
        '<a href="{href}" style="background-color:{color};color:#fff;padding:12px 24px;border-radius:4px;'
        'text-decoration:none;font-weight:bold;margin:0 8px">{label}</a>'
    )
    actions = button.format(href=escape(action_url.format(action="approve")), color="#34A853", label="Approve")
    actions += button.format(href=escape(action_url.format(action="decline")), color="#EA4335", label="Decline")
    return _layout(
        "<h2>Content Moderation Request</h2>"
        f"<p>A new content moderation request has been submitted by {escape(display_username(username))}.</p>"
        f"{_content_lines(tool_type, chat_title, content_id)}"
        f"{_violations_section(violations)}"
        f'<h3>Take Action</h3><div style="text-align:center">{actions}</div>'
        "<p>Thank you for your assistance.</p>"
    )


def render_status_update(
    *,
    app_url: str,
    username: str,
    content_id: str,
    status: str,
    tool_type: str,
    chat_title: str,
    notes: Optional[str],
    violations: List[Dict[str, str]],
) -> str:
    """HTML telling a user the outcome of a moderation review."""
    icon = "&#10003;" if status == "approved" else "&#10005;"
    body = (
        f'<div style="text-align:center"><p style="font-size:48px">{icon}</p>'
        f"<h2>Content {escape(status.capitalize())}</h2>"
        f"<p>Hello {escape(display_username(username))}, your content has been reviewed and {escape(status)}.</p>"
        "</div>"
        f"{_content_lines(tool_type, chat_title, content_id)}"
        f"{_violations_section(violations)}"
    )
    if notes:
        body += f"<h3>Moderator Notes</h3><p>{escape(notes)}</p>"
    if status == "approved":
        href = escape(f"{app_url}{tool_page(tool_type, content_id, status)}")
        body += (
            f'<div style="text-align:center"><a href="{href}" style="background-color:#1a73e8;color:#fff;'
            'padding:12px 24px;border-radius:4px;text-decoration:none">Go to Tool</a></div>'
        )
    body += "<p>This is an automated message. Please do not reply to this email.</p>"
    return _layout(body)


class EmailService:
    """Resend API client for moderation emails."""

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str,
        from_address: str,
        app_url: str,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.from_address = from_address
        self.app_url = app_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, to: str, subject: str, html: str) -> Dict[str, Any]:
        """
        Send one email.

        Raises:
            EmailDeliveryError: If no API key is configured or the provider rejects the message.
        """
        if not self.api_key:
            raise EmailDeliveryError("RESEND_API_KEY is not configured")

        logger.info(f"Sending email to {to}: {subject}")
        response = await self._client.post(
            self.api_url,
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            json={"from": self.from_address, "to": [to], "subject": subject, "html": html},
        )
        if response.is_error:
            logger.error(f"Email sending failed: {response.status_code} {response.text}")
            raise EmailDeliveryError(f"Email provider returned {response.status_code}")
        return response.json()

    async def send_moderation_request(
        self,
        to: str,
        *,
        username: str,
        content_id: str,
        tool_type: str,
        chat_title: str,
        violations: List[Dict[str, str]],
    ) -> Dict[str, Any]:
        subject = f"Content Review Required: {tool_type} Content from {username}"
        html = render_moderation_request(
            app_url=self.app_url,
            username=username,
            content_id=content_id,
            tool_type=tool_type,
            chat_title=chat_title,
            violations=violations,
        )
        return await self.send(to, subject, html)

    async def send_status_update(
        self,
        to: str,
        *,
        username: str,
        content_id: str,
        status: str,
        tool_type: str,
        chat_title: str,
        violations: List[Dict[str, str]],
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        status_text = "Approved" if status == "approved" else "Declined"
        subject = f"Content {status_text}: {tool_type} Content Review Complete"
        html = render_status_update(
            app_url=self.app_url,
            username=username,
            content_id=content_id,
            status=status,
            tool_type=tool_type,
            chat_title=chat_title,
            notes=notes,
            violations=violations,
        )
        return await self.send(to, subject, html)


def get_email_service() -> EmailService:
    """Dependency returning the process-wide email service."""
    global _service
    if _service is None:
        _service = EmailService(
            settings.email.api_key, settings.email.api_url, settings.email.from_address, settings.app.app_url
        )
    return _service
