"""Discovery graph: exclusions, predicate compilation, fetch, distance band."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date

from langgraph.graph import END, StateGraph

from geomatch.config import config
from geomatch.graphs.base_graph import BaseGraph
from geomatch.state import DiscoveryState
from geomatch.tools.distance_tools import filter_by_distance
from geomatch.tools.exclusion_tools import resolve_exclusions
from geomatch.tools.filter_tools import SearchFilters, compile_predicates, parse_filters
from geomatch.tools.stores import Stores
from geomatch.utils.errors import InvalidInputError, StoreUnavailableError
from geomatch.utils.logging_config import logger


def _with_state(state: DiscoveryState, **updates) -> DiscoveryState:
    """Return a new state dict with updates applied."""

    return {**state, **updates}


class DiscoveryGraph(BaseGraph):
    """Linear discovery pipeline with an optional distance step.

    Store failures are logged and re-raised so the caller never sees a
    partial candidate list.
    """

    def __init__(
        self,
        stores: Stores,
        max_candidates: int,
        default_band: tuple[float, float],
    ):
        super().__init__()
        self.stores = stores
        self.max_candidates = max_candidates
        self.default_band = default_band

    def build_graph(self) -> StateGraph:
        graph = StateGraph(DiscoveryState)

        graph.add_node("resolve_exclusions", self.node_resolve_exclusions)
        graph.add_node("compile_predicates", self.node_compile_predicates)
        graph.add_node("fetch_candidates", self.node_fetch_candidates)
        graph.add_node("resolve_origin", self.node_resolve_origin)
        graph.add_node("apply_distance_filter", self.node_apply_distance_filter)
        graph.add_node("finalize_response", self.node_finalize_response)

        graph.set_entry_point("resolve_exclusions")
        graph.add_edge("resolve_exclusions", "compile_predicates")
        graph.add_edge("compile_predicates", "resolve_origin")
        graph.add_edge("resolve_origin", "fetch_candidates")
        graph.add_conditional_edges(
            "fetch_candidates",
            self.route_after_fetch,
            {
                "distance": "apply_distance_filter",
                "finalize": "finalize_response",
            },
        )
        graph.add_edge("apply_distance_filter", "finalize_response")
        graph.add_edge("finalize_response", END)

        return graph

    def node_resolve_exclusions(self, state: DiscoveryState) -> DiscoveryState:
        """Collect connected, rejected and skipped user IDs."""

        self._log_node_execution("resolve_exclusions", state)
        try:
            excluded = resolve_exclusions(
                state["requester_id"], self.stores.connections, self.stores.skips
            )
        except StoreUnavailableError as exc:
            self._log_node_error("resolve_exclusions", exc)
            raise

        return _with_state(state, excluded_ids=sorted(excluded))

    def node_compile_predicates(self, state: DiscoveryState) -> DiscoveryState:
        """Turn filters plus exclusions into the store predicate set."""

        self._log_node_execution("compile_predicates", state)
        predicates = compile_predicates(
            state["requester_id"],
            state.get("excluded_ids", []),
            state.get("filters") or SearchFilters(),
            today=state.get("today"),
        )
        return _with_state(state, predicates=predicates)

    def node_fetch_candidates(self, state: DiscoveryState) -> DiscoveryState:
        """Fetch rows matching every predicate from the user store.

        With a distance origin the fetch is uncapped; the cap is applied
        after the distance band in finalize_response.
        """

        self._log_node_execution("fetch_candidates", state)
        limit = None if state.get("origin") else self.max_candidates
        try:
            candidates = self.stores.users.fetch_candidates(
                state["predicates"], limit
            )
        except StoreUnavailableError as exc:
            self._log_node_error("fetch_candidates", exc)
            raise

        return _with_state(state, candidates=candidates)

    def node_resolve_origin(self, state: DiscoveryState) -> DiscoveryState:
        """Pick the point distances are measured from.

        Explicit coordinates win. A radius without coordinates falls back to
        the requester's stored location. Otherwise no distance filter runs.
        """

        self._log_node_execution("resolve_origin", state)
        filters = state.get("filters") or SearchFilters()
        band = filters.radius_range or self.default_band

        origin = None
        if filters.has_point:
            origin = (filters.latitude, filters.longitude)
        elif filters.radius_range is not None:
            try:
                origin = self.stores.users.fetch_coordinates(state["requester_id"])
            except StoreUnavailableError as exc:
                self._log_node_error("resolve_origin", exc)
                raise
            if origin is None:
                logger.info(
                    "Requester %s has no stored location; skipping distance filter",
                    state["requester_id"],
                )

        return _with_state(state, origin=origin, distance_band=band)

    def route_after_fetch(self, state: DiscoveryState) -> str:
        return "distance" if state.get("origin") else "finalize"

    def node_apply_distance_filter(self, state: DiscoveryState) -> DiscoveryState:
        """Keep candidates inside the inclusive distance band."""

        self._log_node_execution("apply_distance_filter", state)
        lat, lng = state["origin"]
        min_km, max_km = state["distance_band"]
        results = filter_by_distance(
            state.get("candidates", []), lat, lng, min_km=min_km, max_km=max_km
        )
        return _with_state(state, results=results)

    def node_finalize_response(self, state: DiscoveryState) -> DiscoveryState:
        """Attach the final list and response metadata."""

        self._log_node_execution("finalize_response", state)
        candidates = state.get("candidates", [])
        results = state["results"] if "results" in state else list(candidates)
        results = results[: self.max_candidates]
        metadata = {
            "excluded_count": len(state.get("excluded_ids", [])),
            "predicates": state["predicates"].kinds,
            "fetched_count": len(candidates),
            "distance_filter": state.get("origin") is not None,
            "result_count": len(results),
        }
        return _with_state(state, results=results, response_metadata=metadata)


class DiscoveryService:
    """Stateless entry point: ``discover(requester_id, filters)``.

    The compiled graph is built once and reused; each call carries its own
    state so concurrent calls share nothing but the stores.
    """

    def __init__(
        self,
        stores: Stores,
        max_candidates: int | None = None,
        default_band: tuple[float, float] | None = None,
    ):
        self.stores = stores
        self.graph = DiscoveryGraph(
            stores,
            max_candidates=(
                config.MAX_CANDIDATES if max_candidates is None else max_candidates
            ),
            default_band=(
                (config.DEFAULT_MIN_RADIUS_KM, config.DEFAULT_MAX_RADIUS_KM)
                if default_band is None
                else default_band
            ),
        ).compile()

    def run(
        self,
        requester_id: str,
        filters: Mapping[str, object] | SearchFilters | None = None,
        today: date | None = None,
    ) -> DiscoveryState:
        """Run the full pipeline and return the final graph state.

        Raises:
            InvalidInputError: Malformed filters, before any store access.
            StoreUnavailableError: Any store failure; no partial results.
        """

        if requester_id is None or str(requester_id).strip() == "":
            raise InvalidInputError("requester id is required")

        parsed = filters if isinstance(filters, SearchFilters) else parse_filters(filters)

        state = self.graph.invoke(
            {
                "requester_id": str(requester_id),
                "filters": parsed,
                "today": today or date.today(),
            }
        )
        logger.info(
            "discover summary: requester=%s metadata=%s",
            requester_id,
            state.get("response_metadata"),
        )
        return state

    def discover(
        self,
        requester_id: str,
        filters: Mapping[str, object] | SearchFilters | None = None,
        today: date | None = None,
    ) -> list[dict]:
        """Candidates for ``requester_id``; an empty list when nothing matches."""

        return self.run(requester_id, filters, today=today)["results"]
