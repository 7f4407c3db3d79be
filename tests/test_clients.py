"""Tests for GET /api/clients."""
import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_list_clients_returns_only_client_role(client: AsyncClient):
    resp = await client.get("/api/clients")
    assert resp.status_code == 200
    clients = resp.json()
    assert clients == [{"id": 2, "name": "Client John Doe", "role": "client"}]


@pytest.mark.asyncio
async def test_list_clients_includes_added_clients(client: AsyncClient, memory_store):
    memory_store.users.append({"id": 3, "name": "Client Mary", "role": "client"})
    memory_store.users.append({"id": 4, "name": "Agent Bob", "role": "agent"})

    resp = await client.get("/api/clients")
    names = [c["name"] for c in resp.json()]
    assert names == ["Client John Doe", "Client Mary"]
