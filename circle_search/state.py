"""Application state: current search results and the saved trip plan.

The state object owns the result list; readers get an immutable snapshot.
Each search takes a generation token and may only commit while that token is
still the latest one, so a slow response from a superseded circle cannot
overwrite newer results.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from . import config
from .geo import Circle
from .normalize import NormalizedPlace
from .orchestrator import NearbySearchClient, SearchResult, execute_search
from .reporting import atomic_writer, utc_now_iso
from .searches import SearchSpec

logger = logging.getLogger(__name__)

DEFAULT_TRIP_NAME = "My itinerary"


def _empty_trip(name: str = DEFAULT_TRIP_NAME) -> Dict[str, Any]:
    return {"name": name, "days": {}}


class AppState:
    def __init__(self, state_path: Optional[str] = None, autoload: bool = True) -> None:
        self.state_path = state_path or config.STATE_PATH
        self._lock = threading.Lock()
        self._generation = 0
        self._results: Tuple[NormalizedPlace, ...] = ()
        self._last_result: Optional[SearchResult] = None
        self.trip_plan: Dict[str, Any] = _empty_trip()
        if autoload:
            self.load()

    # --- search results ---

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def search_results(self) -> Tuple[NormalizedPlace, ...]:
        return self._results

    @property
    def last_result(self) -> Optional[SearchResult]:
        return self._last_result

    def begin_search(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def commit_results(self, generation: int, result: SearchResult) -> bool:
        with self._lock:
            if generation != self._generation:
                logger.info(
                    "Discarding stale results (generation %s, current %s)",
                    generation,
                    self._generation,
                )
                return False
            self._results = tuple(result.places)
            self._last_result = result
        logger.info("State: %s search results", len(self._results))
        return True

    def clear(self) -> None:
        with self._lock:
            # bump so in-flight searches for the cleared circle are dropped
            self._generation += 1
            self._results = ()
            self._last_result = None

    # --- trip plan ---

    def add_to_trip(
        self,
        day_id: str,
        place: Union[NormalizedPlace, Dict[str, Any]],
        time: Optional[str] = None,
    ) -> bool:
        item = place.to_dict() if isinstance(place, NormalizedPlace) else dict(place)
        day = self.trip_plan["days"].setdefault(day_id, [])
        place_id = item.get("id")
        if place_id and any(p.get("id") == place_id for p in day):
            logger.warning("Place %s already in %s", item.get("name"), day_id)
            return False
        item["trip_time"] = time
        item["added_at"] = utc_now_iso()
        day.append(item)
        self.save()
        logger.info("Added %s to %s", item.get("name"), day_id)
        return True

    def remove_from_trip(self, day_id: str, place_id: str) -> None:
        day = self.trip_plan["days"].get(day_id)
        if day is None:
            return
        self.trip_plan["days"][day_id] = [p for p in day if p.get("id") != place_id]
        self.save()

    def get_trip(self, day_id: Optional[str] = None) -> Union[Dict[str, Any], List[Dict[str, Any]]]:
        if day_id is not None:
            return self.trip_plan["days"].get(day_id, [])
        return self.trip_plan

    def save(self) -> None:
        payload = {"trip_plan": self.trip_plan, "last_update": utc_now_iso()}
        dir_path = os.path.dirname(self.state_path)
        if dir_path:
            os.makedirs(dir_path, exist_ok=True)
        with atomic_writer(self.state_path, mode="w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)

    def load(self) -> bool:
        if not os.path.exists(self.state_path):
            return False
        try:
            with open(self.state_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.error("Could not load state from %s: %s", self.state_path, exc)
            return False
        trip = data.get("trip_plan") if isinstance(data, dict) else None
        if not isinstance(trip, dict) or not isinstance(trip.get("days"), dict):
            logger.error("Ignoring malformed state file %s", self.state_path)
            return False
        self.trip_plan = trip
        return True

    def clear_data(self) -> None:
        self.trip_plan = _empty_trip("New trip")
        try:
            os.remove(self.state_path)
        except FileNotFoundError:
            pass


class SearchSession:
    """Runs searches for a circle and commits them into an AppState."""

    def __init__(
        self,
        state: AppState,
        client: NearbySearchClient,
        specs: Sequence[SearchSpec],
    ) -> None:
        self.state = state
        self.client = client
        self.specs = list(specs)

    def run(self, circle: Circle) -> Tuple[SearchResult, bool]:
        """Search ``circle``; returns ``(result, committed)``."""
        circle.validate()
        generation = self.state.begin_search()
        result = execute_search(circle, self.specs, self.client)
        committed = self.state.commit_results(generation, result)
        return result, committed
