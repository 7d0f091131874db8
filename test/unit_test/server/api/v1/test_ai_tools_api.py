import pytest
from httpx import AsyncClient
from sqlalchemy import select

from edify_ai.core.database.entities import AIToolUsage, AIUsageLog

pytestmark = pytest.mark.asyncio


class TestRecordToolUsage:
    async def test_requires_organization(self, client: AsyncClient, auth):
        auth.sign_in(org_id=None)
        response = await client.post("/api/ai-tools/usage", json={"toolType": "mcq_generator"})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    async def test_records_usage_and_access_log(self, client: AsyncClient, auth, session):
        auth.sign_in(org_id="org_school01", org_role="org:educator")

        response = await client.post(
            "/api/ai-tools/usage",
            json={"toolType": "mcq_generator", "promptId": "prompt-1", "metadata": {"source": "sidebar"}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["tool_type"] == "mcq_generator"
        assert body["org_id"] == "org_school01"
        assert body["prompt_id"] == "prompt-1"
        assert body["metadata"] == {"source": "sidebar"}

        usage = (await session.execute(select(AIToolUsage))).scalars().one()
        logs = (await session.execute(select(AIUsageLog))).scalars().all()
        assert [log.tool_usage_id for log in logs] == [usage.id]

    async def test_missing_tool_type_is_rejected(self, client: AsyncClient, auth):
        auth.sign_in(org_id="org_school01")
        response = await client.post("/api/ai-tools/usage", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"
