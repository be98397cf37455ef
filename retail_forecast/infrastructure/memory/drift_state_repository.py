import copy
from typing import Dict, List, Optional

from retail_forecast.domain.entities.drift import DriftState
from retail_forecast.domain.repositories.drift_state_repository import (
    IDriftStateRepository,
)


class InMemoryDriftStateRepository(IDriftStateRepository):
    def __init__(self):
        # In-memory storage
        self._storage: Dict[str, DriftState] = {}

    async def get(self, entity_scope: str) -> Optional[DriftState]:
        state = self._storage.get(entity_scope)
        return copy.deepcopy(state) if state else None

    async def save(self, state: DriftState) -> DriftState:
        self._storage[state.entity_scope] = copy.deepcopy(state)
        return state

    async def list_all(self) -> List[DriftState]:
        return [copy.deepcopy(s) for _, s in sorted(self._storage.items())]

    def clear(self):
        """Clear all drift states (only for testing)."""
        self._storage.clear()
