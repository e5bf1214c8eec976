"""Shared LangGraph state definitions.

Graph state is a TypedDict so the data handed between nodes is explicit and
consistent across the discovery pipeline.
"""

from __future__ import annotations

from datetime import date
from typing import TypedDict

from geomatch.tools.filter_tools import PredicateSet, SearchFilters

JsonDict = dict[str, object]
JsonList = list[JsonDict]


class DiscoveryState(TypedDict, total=False):
    """State for the discovery graph.

    Fields are optional at runtime because nodes populate them progressively.
    """

    # Identifies the requesting user.
    requester_id: str
    # Validated filters from the request.
    filters: SearchFilters
    # Reference date for age windows.
    today: date
    # Users hidden by connections or skips.
    excluded_ids: list[str]
    # Compiled predicates handed to the user store.
    predicates: PredicateSet
    # Rows returned by the store fetch.
    candidates: JsonList
    # Point distances are measured from, or None when no geo filter applies.
    origin: tuple[float, float] | None
    # Inclusive distance band in kilometers.
    distance_band: tuple[float, float]
    # Final candidates returned to the caller.
    results: JsonList
    # Response metadata for observability.
    response_metadata: JsonDict
