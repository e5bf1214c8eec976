"""Exclusion set resolution for discovery."""

from __future__ import annotations

from geomatch.tools.stores import ConnectionStore, SkipStore
from geomatch.utils.logging_config import logger

# Resolved requests in either direction hide the pair from discovery.
# Pending requests stay visible until the receiver acts on them.
EXCLUDED_STATUSES = ("accepted", "rejected")


def resolve_exclusions(
    requester_id: str,
    connections: ConnectionStore,
    skips: SkipStore,
) -> set[str]:
    """Collect user IDs the requester must not be shown.

    Union of accepted and rejected counterparties (sent and received) plus
    every user the requester skipped. The requester itself is not included;
    the predicate compiler adds it.
    """

    excluded: set[str] = set()

    for status in EXCLUDED_STATUSES:
        for direction in ("sent", "received"):
            excluded.update(
                str(uid)
                for uid in connections.list_by_status(
                    requester_id, status, direction
                )
            )

    excluded.update(str(uid) for uid in skips.list_skipped_by(requester_id))
    excluded.discard(str(requester_id))

    logger.debug(
        "resolve_exclusions requester=%s excluded=%s", requester_id, len(excluded)
    )
    return excluded
