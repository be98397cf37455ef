"""Repository interface for per-scope drift state."""

from abc import ABC, abstractmethod
from typing import List, Optional

from retail_forecast.domain.entities.drift import DriftState


class IDriftStateRepository(ABC):
    """Persistence of the rolling error window of every scope."""

    @abstractmethod
    async def get(self, entity_scope: str) -> Optional[DriftState]:
        pass

    @abstractmethod
    async def save(self, state: DriftState) -> DriftState:
        pass

    @abstractmethod
    async def list_all(self) -> List[DriftState]:
        pass
