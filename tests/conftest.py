"""Pytest configuration and fixtures."""

import os
from datetime import UTC, date, datetime

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("CLOSING_EDIT_SECRET", "2468")
os.environ.setdefault("STORE_URL", "http://store.test")

from daily_closing.auth import SharedSecretAuthorizer  # noqa: E402
from daily_closing.backends import InMemoryBackend  # noqa: E402
from daily_closing.events import ChangePublisher  # noqa: E402
from daily_closing.reconciliation import ReconciliationEngine  # noqa: E402
from daily_closing.store import ClosingDraft, ClosingRecordStore  # noqa: E402

FIXED_NOW = datetime(2024, 1, 15, 22, 30, tzinfo=UTC)
EDIT_SECRET = "2468"


class RecordingAuditLog:
    """Audit log double that keeps entries in memory."""

    def __init__(self):
        self.entries = []

    async def log_action(self, actor, action, resource, details):
        self.entries.append(
            {"actor": actor, "action": action, "resource": resource, "details": details}
        )


@pytest.fixture
def engine():
    """Engine with the default six terminals and five card networks."""
    return ReconciliationEngine.from_settings()


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def audit_log():
    return RecordingAuditLog()


@pytest.fixture
def publisher():
    return ChangePublisher(host="127.0.0.1", port=0)


@pytest.fixture
def store(backend, engine, audit_log, publisher):
    return ClosingRecordStore(
        backend,
        engine,
        SharedSecretAuthorizer(EDIT_SECRET),
        audit_log,
        publisher=publisher,
        collection="dailyClosings",
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def scenario_draft():
    """The reference day: 1000 counted, 930 settled, +70 overage."""
    return ClosingDraft(
        business_date=date(2024, 1, 15),
        cash_counts={100: 5, 50: 2},
        terminal_entries={"63427603": {"mada": 300, "visa": 100}},
        pos={"cash": 580, "mada": 350, "discount": 50, "tips": 20},
    )
