"""Firestore-backed stores.

These classes centralize query rendering, error handling, and logging so the
discovery graph and social tools stay focused on orchestration logic. Every
Firestore failure is logged and re-raised as ``StoreUnavailableError``.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

import firebase_admin
from firebase_admin import credentials, firestore

from geomatch.tools.distance_tools import parse_coordinate
from geomatch.tools.filter_tools import AgePredicate, PredicateSet, StatusPredicate
from geomatch.tools.stores import Direction, RequestStatus, Stores
from geomatch.utils.errors import NotFoundError, StoreUnavailableError
from geomatch.utils.logging_config import logger

USERS = "users"
REQUESTS = "requests"
SKIPS = "skips"
MESSAGES = "messages"
PAYMENTS = "payment_history"

_db: firestore.Client | None = None


def get_db() -> firestore.Client:
    """Get a Firestore client, initializing Firebase lazily."""
    global _db

    if _db is not None:
        return _db

    try:
        if not firebase_admin._apps:
            cred_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
            if not cred_path:
                raise RuntimeError(
                    "GOOGLE_APPLICATION_CREDENTIALS is not set"
                )

            cred = credentials.Certificate(cred_path)
            firebase_admin.initialize_app(cred)

        _db = firestore.client()
        return _db

    except Exception as exc:
        logger.error("Failed to initialize Firestore: %s", exc)
        raise StoreUnavailableError(str(exc)) from exc


def close_db() -> None:
    """Drop the cached client so the next get_db() reconnects."""
    global _db

    if _db is not None:
        _db.close()
    _db = None


@contextmanager
def _firestore_errors(action: str) -> Iterator[None]:
    try:
        yield
    except Exception as exc:
        logger.error("Failed to %s: %s", action, str(exc))
        raise StoreUnavailableError(str(exc)) from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _row(doc) -> dict:
    """Snapshot to dict with the document id under "id"."""

    data = doc.to_dict() or {}
    data["id"] = doc.id
    return data


def request_doc_id(sender_id: str, receiver_id: str) -> str:
    """One document per ordered pair keeps at most one request per direction."""

    return f"{sender_id}_{receiver_id}"


class FirestoreUserStore:
    """User profiles in the ``users`` collection."""

    def __init__(self, db: firestore.Client):
        self.db = db

    def fetch_candidates(
        self, predicates: PredicateSet, limit: int | None = None
    ) -> list[dict]:
        """Run the predicate set against Firestore.

        Status and the date_of_birth window are pushed down as native where
        clauses (composite index on status + date_of_birth). Exclusion, gender
        and interest predicates are substring or not-in tests Firestore cannot
        express at this size, so every row is re-checked in memory.
        With ``limit=None`` every matching row is returned.
        """

        with _firestore_errors("query candidates"):
            query = self.db.collection(USERS)

            status = predicates.of_kind(StatusPredicate.kind)
            if isinstance(status, StatusPredicate):
                query = query.where("status", "==", status.status)

            age = predicates.of_kind(AgePredicate.kind)
            if isinstance(age, AgePredicate):
                query = query.where(
                    "date_of_birth", ">=", age.earliest_dob.isoformat()
                ).where("date_of_birth", "<=", age.latest_dob.isoformat())

            rows: list[dict] = []
            for doc in query.stream():
                row = _row(doc)
                if not predicates.matches(row):
                    continue
                rows.append(row)
                if limit is not None and len(rows) >= limit:
                    break

        logger.debug(
            "fetch_candidates predicates=%s rows=%s", predicates.kinds, len(rows)
        )
        return rows

    def fetch_by_id(self, user_id: str) -> dict | None:
        with _firestore_errors("fetch user"):
            doc = self.db.collection(USERS).document(str(user_id)).get()
            if not doc.exists:
                return None
            return _row(doc)

    def fetch_by_contact(self, contact: str) -> dict | None:
        with _firestore_errors("fetch user by contact"):
            query = (
                self.db.collection(USERS).where("contact", "==", contact).limit(1)
            )
            for doc in query.stream():
                return _row(doc)
            return None

    def fetch_coordinates(self, user_id: str) -> tuple[float, float] | None:
        """Stored (latitude, longitude) for a user, or None if unknown."""

        user = self.fetch_by_id(user_id)
        if not user:
            return None
        lat = parse_coordinate(user.get("latitude"))
        lng = parse_coordinate(user.get("longitude"))
        if lat is None or lng is None:
            return None
        return lat, lng

    def create(self, profile: dict) -> dict:
        with _firestore_errors("create user"):
            _, ref = self.db.collection(USERS).add(profile)
        return {**profile, "id": ref.id}

    def update(self, user_id: str, updates: dict) -> dict:
        current = self.fetch_by_id(user_id)
        if current is None:
            raise NotFoundError(f"User not found: {user_id}")

        with _firestore_errors("update user"):
            self.db.collection(USERS).document(str(user_id)).update(updates)
        return {**current, **updates}


class FirestoreConnectionStore:
    """Connection requests keyed by ordered (sender, receiver) pair."""

    def __init__(self, db: firestore.Client):
        self.db = db

    def list_by_status(
        self, user_id: str, status: RequestStatus, direction: Direction
    ) -> list[str]:
        """Counterparty IDs of requests with ``status`` sent or received."""

        own_field, other_field = (
            ("sender_id", "receiver_id")
            if direction == "sent"
            else ("receiver_id", "sender_id")
        )
        with _firestore_errors("list connections"):
            query = (
                self.db.collection(REQUESTS)
                .where(own_field, "==", str(user_id))
                .where("status", "==", status)
            )
            return [
                str((doc.to_dict() or {}).get(other_field)) for doc in query.stream()
            ]

    def get(self, sender_id: str, receiver_id: str) -> dict | None:
        with _firestore_errors("fetch request"):
            doc = (
                self.db.collection(REQUESTS)
                .document(request_doc_id(sender_id, receiver_id))
                .get()
            )
            if not doc.exists:
                return None
            return doc.to_dict() or {}

    def create(self, sender_id: str, receiver_id: str) -> dict:
        request = {
            "sender_id": str(sender_id),
            "receiver_id": str(receiver_id),
            "status": "pending",
            "request_date": _utcnow(),
        }
        with _firestore_errors("create request"):
            self.db.collection(REQUESTS).document(
                request_doc_id(sender_id, receiver_id)
            ).set(request)
        return request

    def set_status(
        self, sender_id: str, receiver_id: str, status: RequestStatus
    ) -> dict:
        current = self.get(sender_id, receiver_id)
        if current is None:
            raise NotFoundError(
                f"No request from {sender_id} to {receiver_id}"
            )

        with _firestore_errors("update request"):
            self.db.collection(REQUESTS).document(
                request_doc_id(sender_id, receiver_id)
            ).update({"status": status})
        return {**current, "status": status}


class FirestoreSkipStore:
    """Append-only skip facts."""

    def __init__(self, db: firestore.Client):
        self.db = db

    def list_skipped_by(self, user_id: str) -> list[str]:
        with _firestore_errors("list skips"):
            query = self.db.collection(SKIPS).where("user_id", "==", str(user_id))
            skipped = [
                str((doc.to_dict() or {}).get("skipped_user_id"))
                for doc in query.stream()
            ]
        return list(dict.fromkeys(skipped))

    def add(self, user_id: str, skipped_user_id: str) -> dict:
        skip = {
            "user_id": str(user_id),
            "skipped_user_id": str(skipped_user_id),
            "date": _utcnow(),
        }
        with _firestore_errors("save skip"):
            self.db.collection(SKIPS).add(skip)
        return skip


class FirestoreMessageStore:
    """Raw chat persistence. Delivery is the realtime layer's job."""

    def __init__(self, db: firestore.Client):
        self.db = db

    def add(self, app_id: str, from_user: str, to_user: str, message: str) -> dict:
        record = {
            "app_id": app_id,
            "from_user": str(from_user),
            "to_user": str(to_user),
            "message": message,
            "timestamp": _utcnow(),
        }
        with _firestore_errors("save message"):
            _, ref = self.db.collection(MESSAGES).add(record)
        return {**record, "id": ref.id}

    def list_conversation(self, app_id: str, user1: str, user2: str) -> list[dict]:
        """Messages between two users in both directions, oldest first."""

        messages: list[dict] = []
        with _firestore_errors("fetch messages"):
            for sender, receiver in ((user1, user2), (user2, user1)):
                query = (
                    self.db.collection(MESSAGES)
                    .where("from_user", "==", str(sender))
                    .where("to_user", "==", str(receiver))
                )
                messages.extend(
                    _row(doc)
                    for doc in query.stream()
                    if (doc.to_dict() or {}).get("app_id") == app_id
                )

        return sorted(messages, key=lambda m: m.get("timestamp") or _utcnow())


class FirestorePaymentStore:
    """Payment history rows recorded alongside subscription changes."""

    def __init__(self, db: firestore.Client):
        self.db = db

    def add(self, user_id: str, reason: str) -> dict:
        record = {"user_id": str(user_id), "reason": reason, "date": _utcnow()}
        with _firestore_errors("save payment record"):
            self.db.collection(PAYMENTS).add(record)
        return record


def create_firestore_stores(db: firestore.Client | None = None) -> Stores:
    """Wire every Firestore store to one client."""

    db = db or get_db()
    return Stores(
        users=FirestoreUserStore(db),
        connections=FirestoreConnectionStore(db),
        skips=FirestoreSkipStore(db),
        messages=FirestoreMessageStore(db),
        payments=FirestorePaymentStore(db),
    )
