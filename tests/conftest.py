"""
Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest and provides:
  - Test configuration (env vars) so importing geomatch.config succeeds
  - In-memory stores that behave like the Firestore stores
  - A mock Firestore client for testing the Firestore stores directly
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import MagicMock

from geomatch.utils.errors import NotFoundError

# Set before any geomatch module is imported during collection.
TEST_ENV = {
    "FIREBASE_PROJECT_ID": "test-project",
    "GOOGLE_APPLICATION_CREDENTIALS": "/config/test-serviceAccountKey.json",
    "DEBUG": "True",
}
for _key, _value in TEST_ENV.items():
    os.environ.setdefault(_key, _value)


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """
    Setup test environment variables before running any tests.

    This ensures tests run with predictable configuration and don't
    depend on local .env files.
    """
    for key, value in TEST_ENV.items():
        os.environ[key] = value
    os.environ.pop("API_TOKEN", None)


# ============================================================
# IN-MEMORY STORES
# ============================================================
class InMemoryUserStore:
    def __init__(self):
        self.rows: dict[str, dict] = {}
        self.fetch_calls = 0

    def put(self, user_id: str, **fields) -> dict:
        row = {"id": user_id, "status": "ACTIVE", **fields}
        self.rows[user_id] = row
        return row

    def fetch_candidates(self, predicates, limit):
        self.fetch_calls += 1
        return [dict(r) for r in self.rows.values() if predicates.matches(r)][:limit]

    def fetch_by_id(self, user_id):
        row = self.rows.get(str(user_id))
        return dict(row) if row else None

    def fetch_by_contact(self, contact):
        for row in self.rows.values():
            if row.get("contact") == contact:
                return dict(row)
        return None

    def fetch_coordinates(self, user_id):
        row = self.rows.get(str(user_id))
        if not row or row.get("latitude") is None or row.get("longitude") is None:
            return None
        return float(row["latitude"]), float(row["longitude"])

    def create(self, profile):
        user_id = str(len(self.rows) + 1)
        self.rows[user_id] = {**profile, "id": user_id}
        return dict(self.rows[user_id])

    def update(self, user_id, updates):
        if str(user_id) not in self.rows:
            raise NotFoundError(f"User not found: {user_id}")
        self.rows[str(user_id)].update(updates)
        return dict(self.rows[str(user_id)])


class InMemoryConnectionStore:
    def __init__(self):
        self.requests: dict[tuple[str, str], dict] = {}

    def list_by_status(self, user_id, status, direction):
        own, other = (0, 1) if direction == "sent" else (1, 0)
        return [
            pair[other]
            for pair, request in self.requests.items()
            if pair[own] == str(user_id) and request["status"] == status
        ]

    def get(self, sender_id, receiver_id):
        request = self.requests.get((str(sender_id), str(receiver_id)))
        return dict(request) if request else None

    def create(self, sender_id, receiver_id):
        request = {
            "sender_id": str(sender_id),
            "receiver_id": str(receiver_id),
            "status": "pending",
        }
        self.requests[(str(sender_id), str(receiver_id))] = request
        return dict(request)

    def set_status(self, sender_id, receiver_id, status):
        key = (str(sender_id), str(receiver_id))
        if key not in self.requests:
            raise NotFoundError(f"No request from {sender_id} to {receiver_id}")
        self.requests[key]["status"] = status
        return dict(self.requests[key])


class InMemorySkipStore:
    def __init__(self):
        self.rows: list[dict] = []

    def list_skipped_by(self, user_id):
        skipped = [r["skipped_user_id"] for r in self.rows if r["user_id"] == str(user_id)]
        return list(dict.fromkeys(skipped))

    def add(self, user_id, skipped_user_id):
        row = {"user_id": str(user_id), "skipped_user_id": str(skipped_user_id)}
        self.rows.append(row)
        return row


class InMemoryMessageStore:
    def __init__(self):
        self.rows: list[dict] = []
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def add(self, app_id, from_user, to_user, message):
        self._clock += timedelta(seconds=1)
        row = {
            "id": str(len(self.rows) + 1),
            "app_id": app_id,
            "from_user": str(from_user),
            "to_user": str(to_user),
            "message": message,
            "timestamp": self._clock,
        }
        self.rows.append(row)
        return row

    def list_conversation(self, app_id, user1, user2):
        pair = {str(user1), str(user2)}
        return sorted(
            (
                r
                for r in self.rows
                if r["app_id"] == app_id and {r["from_user"], r["to_user"]} == pair
            ),
            key=lambda r: r["timestamp"],
        )


class InMemoryPaymentStore:
    def __init__(self):
        self.rows: list[dict] = []

    def add(self, user_id, reason):
        row = {"user_id": str(user_id), "reason": reason}
        self.rows.append(row)
        return row


@pytest.fixture
def stores():
    """Fresh in-memory store bundle per test."""
    from geomatch.tools.stores import Stores

    return Stores(
        users=InMemoryUserStore(),
        connections=InMemoryConnectionStore(),
        skips=InMemorySkipStore(),
        messages=InMemoryMessageStore(),
        payments=InMemoryPaymentStore(),
    )


@pytest.fixture
def mock_db():
    """
    Provide a mock Firestore client.

    Example:
        def test_something(mock_db):
            store = FirestoreUserStore(mock_db)
    """
    return MagicMock()


def make_doc(doc_id, data, exists=True):
    """Build a MagicMock Firestore snapshot."""
    doc = MagicMock()
    doc.id = doc_id
    doc.exists = exists
    doc.to_dict.return_value = dict(data) if data is not None else None
    return doc


@pytest.fixture
def doc_factory():
    """Factory for mock Firestore snapshots."""
    return make_doc
