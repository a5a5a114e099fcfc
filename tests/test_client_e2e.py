"""End-to-end tests against a live CoreLex API.

These tests assume an API is running at http://localhost:8080.
Skip with: pytest -m "not e2e"
"""

import asyncio

import pytest
import requests

from corelex import ClientConfig, CoreLexClient, Identity

API_URL = "http://localhost:8080"


def api_available() -> bool:
    try:
        resp = requests.get(f"{API_URL}/services", timeout=3)
        return resp.status_code < 500
    except Exception:
        return False


pytestmark = [
    pytest.mark.e2e,
    pytest.mark.skipif(not api_available(), reason="API not running at localhost:8080"),
]


@pytest.fixture
def client(tmp_path):
    key_path = str(tmp_path / "test_identity.key")
    Identity.create(key_path)
    return CoreLexClient(ClientConfig(base_url=API_URL, private_key_path=key_path))


class TestE2EFlow:
    """Create agent -> fetch it -> list mine -> delete it."""

    def test_agent_lifecycle(self, client):
        agent = {
            "name": "e2e agent",
            "description": "created by the e2e suite",
            "configuration": {"prompt": "be brief", "model": "default"},
        }

        async def run():
            async with client:
                created = (await client.create_agent(agent)).unwrap()
                fetched = (await client.get_agent(created["id"])).unwrap()
                mine = (await client.list_my_agents({"limit": 50})).unwrap()
                deleted = await client.delete_agent(created["id"])
                return created, fetched, mine, deleted

        created, fetched, mine, deleted = asyncio.run(run())
        assert fetched["name"] == "e2e agent"
        assert created["id"] in {a["id"] for a in mine["agents"]}
        assert deleted.ok

    def test_search_services(self, client):
        result = asyncio.run(client.search_services({"limit": 5, "sortOrder": "asc"}))
        assert result.ok, result.error
        assert isinstance(result.data["services"], list)
