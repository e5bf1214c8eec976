"""Store interfaces consumed by the discovery pipeline and social tools.

Firestore implementations live in ``geomatch.tools.firestore_tools``; tests
provide in-memory fakes with the same shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol

from geomatch.tools.filter_tools import PredicateSet

RequestStatus = Literal["pending", "accepted", "rejected"]
Direction = Literal["sent", "received"]


class UserStore(Protocol):
    def fetch_candidates(
        self, predicates: PredicateSet, limit: int | None = None
    ) -> list[dict]: ...

    def fetch_by_id(self, user_id: str) -> dict | None: ...

    def fetch_by_contact(self, contact: str) -> dict | None: ...

    def fetch_coordinates(self, user_id: str) -> tuple[float, float] | None: ...

    def create(self, profile: dict) -> dict: ...

    def update(self, user_id: str, updates: dict) -> dict: ...


class ConnectionStore(Protocol):
    def list_by_status(
        self, user_id: str, status: RequestStatus, direction: Direction
    ) -> list[str]: ...

    def get(self, sender_id: str, receiver_id: str) -> dict | None: ...

    def create(self, sender_id: str, receiver_id: str) -> dict: ...

    def set_status(
        self, sender_id: str, receiver_id: str, status: RequestStatus
    ) -> dict: ...


class SkipStore(Protocol):
    def list_skipped_by(self, user_id: str) -> list[str]: ...

    def add(self, user_id: str, skipped_user_id: str) -> dict: ...


class MessageStore(Protocol):
    def add(self, app_id: str, from_user: str, to_user: str, message: str) -> dict: ...

    def list_conversation(self, app_id: str, user1: str, user2: str) -> list[dict]: ...


class PaymentStore(Protocol):
    def add(self, user_id: str, reason: str) -> dict: ...


@dataclass
class Stores:
    """Store dependencies opened at process start and passed to services."""

    users: UserStore
    connections: ConnectionStore
    skips: SkipStore
    messages: MessageStore
    payments: PaymentStore
