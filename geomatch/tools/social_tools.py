"""Profile, connection, skip, chat and subscription operations.

Plain CRUD around the stores. Validation errors are raised as
``InvalidInputError`` before any write; missing records raise
``NotFoundError`` and uniqueness violations raise ``ConflictError``.
"""

from __future__ import annotations

from datetime import date, timedelta

from geomatch.tools.filter_tools import ACTIVE_STATUS, parse_date, parse_tokens
from geomatch.tools.stores import Stores
from geomatch.utils.errors import ConflictError, InvalidInputError, NotFoundError
from geomatch.utils.logging_config import logger

INACTIVE_STATUS = "NON_ACTIVE"

# (payload key, human label) in the order they are checked at signup.
SIGNUP_REQUIRED_FIELDS = [
    ("name", "Name"),
    ("contact", "Contact"),
    ("gender", "Gender"),
    ("bio", "Bio"),
    ("dob", "Date of Birth"),
    ("interests", "Interests"),
    ("latitude", "Latitude"),
    ("longitude", "Longitude"),
    ("education", "Education"),
]

# payload key -> stored field
EDITABLE_FIELDS = {
    "name": "full_name",
    "dob": "date_of_birth",
    "bio": "bio",
    "contact": "contact",
    "gender": "gender",
    "education": "education",
    "interests": "interests",
    "latitude": "latitude",
    "longitude": "longitude",
}


def _require_dob(value: object) -> str:
    dob = parse_date(value)
    if dob is None:
        raise InvalidInputError(f"Date of Birth must be an ISO date, got {value!r}")
    return dob.isoformat()


def _require_coordinate(name: str, value: object, bound: float) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{name} must be numeric, got {value!r}") from exc
    if not -bound <= number <= bound:
        raise InvalidInputError(f"{name} out of range: {number}")
    return number


def _normalize_field(field: str, value: object) -> object:
    if field == "date_of_birth":
        return _require_dob(value)
    if field == "interests":
        return list(parse_tokens(value))
    if field == "latitude":
        return _require_coordinate("Latitude", value, 90.0)
    if field == "longitude":
        return _require_coordinate("Longitude", value, 180.0)
    return value


# ============================================================
# USERS
# ============================================================
def signup(stores: Stores, payload: dict) -> dict:
    """Create an ACTIVE, unsubscribed profile from a signup payload."""

    for key, label in SIGNUP_REQUIRED_FIELDS:
        if payload.get(key) in (None, "", []):
            raise InvalidInputError(f"{label} is required")

    contact = str(payload["contact"])
    if stores.users.fetch_by_contact(contact) is not None:
        raise ConflictError(f"Contact already registered: {contact}")

    profile = {
        "full_name": payload["name"],
        "contact": contact,
        "gender": payload["gender"],
        "bio": payload["bio"],
        "date_of_birth": _require_dob(payload["dob"]),
        "interests": list(parse_tokens(payload["interests"])),
        "latitude": _require_coordinate("Latitude", payload["latitude"], 90.0),
        "longitude": _require_coordinate("Longitude", payload["longitude"], 180.0),
        "education": payload["education"],
        "status": ACTIVE_STATUS,
        "online_status": "OFFLINE",
        "subscribed": False,
        "subscription_expiry": None,
    }
    user = stores.users.create(profile)
    logger.info("User signed up id=%s", user.get("id"))
    return user


def get_user(stores: Stores, user_id: str) -> dict:
    user = stores.users.fetch_by_id(user_id)
    if user is None:
        raise NotFoundError(f"User not found: {user_id}")
    return user


def find_user_by_contact(stores: Stores, contact: str) -> dict:
    user = stores.users.fetch_by_contact(contact)
    if user is None:
        raise NotFoundError("User does not exist")
    return user


def edit_user(stores: Stores, user_id: str, updates: dict) -> dict:
    """Apply the editable subset of ``updates``; unknown keys are ignored."""

    changes = {
        EDITABLE_FIELDS[key]: _normalize_field(EDITABLE_FIELDS[key], value)
        for key, value in updates.items()
        if key in EDITABLE_FIELDS and value not in (None, "")
    }
    if not changes:
        raise InvalidInputError("No fields to update")

    if "contact" in changes:
        owner = stores.users.fetch_by_contact(str(changes["contact"]))
        if owner is not None and str(owner.get("id")) != str(user_id):
            raise ConflictError(f"Contact already registered: {changes['contact']}")

    user = stores.users.update(user_id, changes)
    logger.info("User updated id=%s fields=%s", user_id, sorted(changes))
    return user


def deactivate_user(stores: Stores, user_id: str) -> dict:
    """Hide a user from discovery without deleting anything."""

    user = stores.users.update(user_id, {"status": INACTIVE_STATUS})
    logger.info("User deactivated id=%s", user_id)
    return user


# ============================================================
# CONNECTIONS
# ============================================================
def send_request(stores: Stores, sender_id: str, receiver_id: str) -> dict:
    if str(sender_id) == str(receiver_id):
        raise InvalidInputError("Cannot send a request to yourself")
    get_user(stores, receiver_id)

    existing = stores.connections.get(sender_id, receiver_id)
    if existing is not None:
        raise ConflictError(
            f"Request already exists with status {existing.get('status')}"
        )
    return stores.connections.create(sender_id, receiver_id)


def _resolve_pending(
    stores: Stores, sender_id: str, receiver_id: str, status: str
) -> dict:
    request = stores.connections.get(sender_id, receiver_id)
    if request is None or request.get("status") != "pending":
        raise NotFoundError(f"No pending request from {sender_id} to {receiver_id}")
    return stores.connections.set_status(sender_id, receiver_id, status)


def accept_request(stores: Stores, sender_id: str, receiver_id: str) -> dict:
    return _resolve_pending(stores, sender_id, receiver_id, "accepted")


def reject_request(stores: Stores, sender_id: str, receiver_id: str) -> dict:
    return _resolve_pending(stores, sender_id, receiver_id, "rejected")


def remove_connection(stores: Stores, user_id: str, other_id: str) -> dict:
    """Turn an accepted connection (either direction) into a rejected one."""

    for sender, receiver in ((user_id, other_id), (other_id, user_id)):
        request = stores.connections.get(sender, receiver)
        if request is not None and request.get("status") == "accepted":
            return stores.connections.set_status(sender, receiver, "rejected")
    raise NotFoundError(f"{user_id} and {other_id} are not connected")


def _profiles(stores: Stores, user_ids: list[str]) -> list[dict]:
    profiles = []
    for uid in dict.fromkeys(user_ids):
        user = stores.users.fetch_by_id(uid)
        if user is not None:
            profiles.append(user)
    return profiles


def list_incoming_requests(stores: Stores, user_id: str) -> list[dict]:
    """Profiles of users with a pending request to ``user_id``."""

    senders = stores.connections.list_by_status(user_id, "pending", "received")
    return _profiles(stores, senders)


def list_friends(stores: Stores, user_id: str) -> list[dict]:
    friends = stores.connections.list_by_status(
        user_id, "accepted", "sent"
    ) + stores.connections.list_by_status(user_id, "accepted", "received")
    return _profiles(stores, friends)


# ============================================================
# SKIPS, CHAT, SUBSCRIPTIONS
# ============================================================
def skip_user(stores: Stores, user_id: str, skipped_user_id: str) -> dict:
    if str(user_id) == str(skipped_user_id):
        raise InvalidInputError("Cannot skip yourself")
    return stores.skips.add(user_id, skipped_user_id)


def send_message(
    stores: Stores, app_id: str, from_user: str, to_user: str, message: str
) -> dict:
    if not app_id or not from_user or not to_user:
        raise InvalidInputError("app_id, from and to are required")
    if not message or not message.strip():
        raise InvalidInputError("message must not be empty")
    return stores.messages.add(app_id, from_user, to_user, message)


def get_messages(stores: Stores, app_id: str, user1: str, user2: str) -> list[dict]:
    return stores.messages.list_conversation(app_id, user1, user2)


def subscribe(
    stores: Stores,
    user_id: str,
    days: int,
    reason: str,
    today: date | None = None,
) -> dict:
    """Mark a user subscribed for ``days`` and record the payment reason."""

    if days <= 0:
        raise InvalidInputError("days must be positive")
    if not reason:
        raise InvalidInputError("reason is required")

    expiry = (today or date.today()) + timedelta(days=days)
    user = stores.users.update(
        user_id, {"subscribed": True, "subscription_expiry": expiry.isoformat()}
    )
    stores.payments.add(user_id, reason)
    logger.info("Subscription recorded user=%s expiry=%s", user_id, expiry)
    return user
