import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from retail_forecast.domain.entities.feature import TimeRange, ensure_utc
from retail_forecast.domain.entities.prediction import ActualObservation, Prediction
from retail_forecast.domain.repositories.prediction_repository import (
    IObservationRepository,
    IPredictionRepository,
)


class InMemoryPredictionRepository(IPredictionRepository):
    def __init__(self):
        # In-memory storage
        self._storage: List[Prediction] = []
        self._lock = threading.Lock()

    async def save(self, prediction: Prediction) -> Prediction:
        with self._lock:
            self._storage.append(prediction)
        return prediction

    async def find_for_target(
        self, entity_id: str, target_timestamp: datetime
    ) -> List[Prediction]:
        target = ensure_utc(target_timestamp)
        with self._lock:
            matches = [
                p
                for p in self._storage
                if p.entity_id == entity_id and p.target_timestamp == target
            ]
        return sorted(matches, key=lambda p: p.generated_at, reverse=True)

    async def list_by_entity(
        self, entity_id: str, time_range: Optional[TimeRange] = None
    ) -> List[Prediction]:
        with self._lock:
            matches = [
                p
                for p in self._storage
                if p.entity_id == entity_id
                and (time_range is None or time_range.contains(p.target_timestamp))
            ]
        return sorted(matches, key=lambda p: (p.target_timestamp, p.generated_at))

    def fetch_all(self) -> List[Prediction]:
        """Fetch all saved predictions."""
        return list(self._storage)

    def clear(self):
        """Clear all stored predictions (only for testing)."""
        self._storage.clear()


class InMemoryObservationRepository(IObservationRepository):
    def __init__(self):
        # In-memory storage
        self._storage: Dict[Tuple[str, datetime], ActualObservation] = {}
        self._lock = threading.Lock()

    async def upsert(self, observation: ActualObservation) -> bool:
        with self._lock:
            existing = self._storage.get(observation.key)
            if existing == observation:
                return False
            self._storage[observation.key] = observation
            return True

    async def get(
        self, entity_id: str, timestamp: datetime
    ) -> Optional[ActualObservation]:
        with self._lock:
            return self._storage.get((entity_id, ensure_utc(timestamp)))

    async def list_by_entity(
        self, entity_id: str, time_range: Optional[TimeRange] = None
    ) -> List[ActualObservation]:
        with self._lock:
            matches = [
                o
                for o in self._storage.values()
                if o.entity_id == entity_id
                and (time_range is None or time_range.contains(o.timestamp))
            ]
        return sorted(matches, key=lambda o: o.timestamp)

    def clear(self):
        """Clear all observations (only for testing)."""
        self._storage.clear()
