from __future__ import annotations

import httpx
import pytest

from genie_chat.orchestrator.orchestrator import ConversationOrchestrator
from genie_chat.orchestrator.relay_client import RelayClient
from genie_chat.orchestrator.session import SessionRepository
from genie_chat.orchestrator.storage import MemoryStorage
from tests.unit.fakes import RELAY_URL, SESSION_KEY, FakeClock, FakeSleep, RelayScript


@pytest.fixture
def relay_script() -> RelayScript:
    return RelayScript()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def relay_client(relay_script: RelayScript) -> RelayClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(relay_script.handler))
    return RelayClient(http_client, RELAY_URL)


@pytest.fixture
def repository(storage: MemoryStorage) -> SessionRepository:
    return SessionRepository(storage, SESSION_KEY)


@pytest.fixture
def orchestrator(
    relay_client: RelayClient,
    repository: SessionRepository,
    fake_sleep: FakeSleep,
    fake_clock: FakeClock,
) -> ConversationOrchestrator:
    return ConversationOrchestrator(relay_client, repository, sleep=fake_sleep, clock=fake_clock)
