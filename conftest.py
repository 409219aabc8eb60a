"""Pytest configuration and shared fixtures."""
import httpx
import pytest

from finassist.client import BackendClient


@pytest.fixture
def backend_config():
    """Return a complete backend configuration pointing at a fake host."""
    return {
        "base_url": "http://backend.test/functions/v1",
        "chat_path": "/financial-chat",
        "tts_path": "/text-to-speech",
        "categorize_path": "/categorize-expense",
        "insights_path": "/generate-insights",
        "recommendations_path": "/generate-recommendations",
        "connect_timeout": 5.0,
        "read_timeout": 5.0,
    }


@pytest.fixture
async def make_backend(backend_config):
    """Return a factory building a BackendClient served by an httpx handler."""
    clients = []

    def factory(handler) -> BackendClient:
        client = BackendClient(
            backend_config, "test-key", transport=httpx.MockTransport(handler)
        )
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.close()
