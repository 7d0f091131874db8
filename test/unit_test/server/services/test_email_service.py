"""
Unit tests for the moderation email service.

This test suite covers:
- Tool page links for reviewed content
- HTML rendering of moderation requests and outcomes
- Sending through the provider API and delivery errors
"""

import json

import httpx
import pytest

from edify_ai.server.services.email import (
    EmailDeliveryError,
    EmailService,
    render_moderation_request,
    render_status_update,
    tool_page,
)

APP_URL = "https://app.edify.test"
EMAIL_API = "http://mock/emails"
VIOLATIONS = [{"type": "Pii", "severity": "high"}]


def make_service(handler, api_key="re_test") -> EmailService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EmailService(api_key, EMAIL_API, "Moderator <moderator@edify.test>", APP_URL + "/", client=client)


class TestToolPage:
    @pytest.mark.parametrize(
        ("tool_type", "expected"),
        [
            ("chat", "/tools/ai-chat-history"),
            ("mcq_generator", "/tools/mcq-generator"),
            ("lesson_plan", "/tools/lesson-plan-generator"),
            ("Quiz Generator", "/tools/quiz-generator"),
            ("poetry", "/tools"),
            (None, "/tools"),
        ],
    )
    def test_paths(self, tool_type, expected):
        assert tool_page(tool_type, "c1", "declined") == expected

    def test_approved_content_is_linked(self):
        assert tool_page("mcq_generator", "c1", "approved") == "/tools/mcq-generator?approved=c1"


class TestRendering:
    def test_moderation_request_has_action_links(self):
        html = render_moderation_request(
            app_url=APP_URL,
            username="alice_lice01",
            content_id="c1",
            tool_type="chat",
            chat_title="Is this <ok>?",
            violations=VIOLATIONS,
        )

        assert "submitted by alice." in html
        assert f"{APP_URL}/api/moderator/violations/c1?action=approve" in html
        assert f"{APP_URL}/api/moderator/violations/c1?action=decline" in html
        assert "Is this &lt;ok&gt;?" in html
        assert "Detected Violations" in html
        assert "HIGH" in html

    def test_approved_update_links_to_tool(self):
        html = render_status_update(
            app_url=APP_URL,
            username="alice_lice01",
            content_id="c1",
            status="approved",
            tool_type="mcq_generator",
            chat_title="Volcanoes",
            notes="Fine for class",
            violations=[],
        )

        assert "Content Approved" in html
        assert "Moderator Notes" in html
        assert f"{APP_URL}/tools/mcq-generator?approved=c1" in html
        assert "Detected Violations" not in html

    def test_declined_update_has_no_tool_link(self):
        html = render_status_update(
            app_url=APP_URL,
            username="alice",
            content_id="c1",
            status="declined",
            tool_type="chat",
            chat_title="t",
            notes=None,
            violations=VIOLATIONS,
        )

        assert "Content Declined" in html
        assert "Go to Tool" not in html
        assert "Moderator Notes" not in html


class TestSending:
    @pytest.mark.asyncio
    async def test_moderation_request_is_posted(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "email_1"})

        result = await make_service(handler).send_moderation_request(
            "marco@school.test",
            username="alice",
            content_id="c1",
            tool_type="chat",
            chat_title="t",
            violations=VIOLATIONS,
        )

        assert result == {"id": "email_1"}
        request = requests[0]
        assert request.headers["Authorization"] == "Bearer re_test"
        body = json.loads(request.content)
        assert body["to"] == ["marco@school.test"]
        assert body["subject"] == "Content Review Required: chat Content from alice"
        assert "action=approve" in body["html"]

    @pytest.mark.asyncio
    async def test_status_update_subject(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "email_2"})

        await make_service(handler).send_status_update(
            "alice@school.test",
            username="alice",
            content_id="c1",
            status="declined",
            tool_type="chat",
            chat_title="t",
            violations=[],
        )

        assert json.loads(requests[0].content)["subject"] == "Content Declined: chat Content Review Complete"

    @pytest.mark.asyncio
    async def test_provider_rejection(self):
        service = make_service(lambda request: httpx.Response(422, json={"message": "invalid to"}))

        with pytest.raises(EmailDeliveryError, match="Email provider returned 422"):
            await service.send("bad", "subject", "<p>hi</p>")

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        service = make_service(lambda request: httpx.Response(200, json={}), api_key=None)

        with pytest.raises(EmailDeliveryError, match="RESEND_API_KEY"):
            await service.send("a@school.test", "subject", "<p>hi</p>")
