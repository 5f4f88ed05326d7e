from __future__ import annotations

import pytest

from core.payments.manager import GatewayManager
from tests.fakes import FakeDB, FakeGateway


@pytest.fixture
def fake_db(monkeypatch: pytest.MonkeyPatch) -> FakeDB:
    database = FakeDB()
    monkeypatch.setattr("repositories.payment_repo.db", database)
    monkeypatch.setattr("core.payments.sandbox_provider.db", database)
    return database


@pytest.fixture
def gateway():
    fake = FakeGateway()
    GatewayManager.configure(fake, call_timeout_seconds=5)
    yield fake
    GatewayManager.reset()
