"""Repository interfaces for predictions and actual observations."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from retail_forecast.domain.entities.feature import TimeRange
from retail_forecast.domain.entities.prediction import ActualObservation, Prediction


class IPredictionRepository(ABC):
    """Append-only store of served predictions."""

    @abstractmethod
    async def save(self, prediction: Prediction) -> Prediction:
        pass

    @abstractmethod
    async def find_for_target(
        self, entity_id: str, target_timestamp: datetime
    ) -> List[Prediction]:
        """Predictions for (entity_id, target_timestamp), newest first."""
        pass

    @abstractmethod
    async def list_by_entity(
        self, entity_id: str, time_range: Optional[TimeRange] = None
    ) -> List[Prediction]:
        """Predictions of an entity ordered by target timestamp."""
        pass


class IObservationRepository(ABC):
    """Store of actual observations, keyed by (entity_id, timestamp)."""

    @abstractmethod
    async def upsert(self, observation: ActualObservation) -> bool:
        """
        Store an observation idempotently.

        Returns:
            True when the observation is new or changed the stored value

        Raises:
            TransientStorageError: If the write may succeed when retried
        """
        pass

    @abstractmethod
    async def get(
        self, entity_id: str, timestamp: datetime
    ) -> Optional[ActualObservation]:
        pass

    @abstractmethod
    async def list_by_entity(
        self, entity_id: str, time_range: Optional[TimeRange] = None
    ) -> List[ActualObservation]:
        pass
