"""
Application Use Case - Ingestion

Batch ingestion of feature records and actual observations. Storage writes
that fail transiently are retried with exponential backoff
(``min(base * 2**attempt, cap)``) and then propagated. Observations that are
new or changed are paired with predictions for drift monitoring; exact
re-sends are not, so a retried batch never double counts.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Sequence, TypeVar

import structlog

from retail_forecast.application.use_cases.serving import ServingGateway
from retail_forecast.domain.entities.drift import DriftSignal
from retail_forecast.domain.entities.errors import TransientStorageError
from retail_forecast.domain.entities.feature import FeatureRecord
from retail_forecast.domain.entities.prediction import ActualObservation
from retail_forecast.domain.repositories.feature_store import IFeatureStore
from retail_forecast.domain.repositories.prediction_repository import (
    IObservationRepository,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class ObservationIngestionResult:
    stored: int = 0
    unchanged: int = 0
    paired: int = 0
    signals: List[DriftSignal] = field(default_factory=list)


class IngestionService:
    """Writes features and observations with retry on transient failures."""

    def __init__(
        self,
        feature_store: IFeatureStore,
        observation_repository: IObservationRepository,
        serving: ServingGateway,
        max_retries: int = 3,
        backoff_base_seconds: float = 0.1,
        backoff_max_seconds: float = 2.0,
    ):
        self.feature_store = feature_store
        self.observation_repository = observation_repository
        self.serving = serving
        self.max_retries = max_retries
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds

    def backoff_delay(self, attempt: int) -> float:
        return min(self.backoff_base_seconds * 2**attempt, self.backoff_max_seconds)

    async def with_retry(
        self, operation: Callable[[], Awaitable[T]], description: str
    ) -> T:
        """Run ``operation``, retrying TransientStorageError up to max_retries."""
        attempt = 0
        while True:
            try:
                return await operation()
            except TransientStorageError as exc:
                if attempt >= self.max_retries:
                    logger.error(
                        "ingestion.retries_exhausted",
                        operation=description,
                        attempts=attempt + 1,
                        error=exc.message,
                    )
                    raise
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "ingestion.retry",
                    operation=description,
                    attempt=attempt,
                    delay=delay,
                    error=exc.message,
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def ingest_features(self, records: Sequence[FeatureRecord]) -> int:
        for record in records:
            await self.with_retry(
                lambda record=record: self.feature_store.put_record(record),
                f"features:{record.entity_id}",
            )
        logger.info("ingestion.features", records=len(records))
        return len(records)

    async def ingest_observations(
        self, observations: Sequence[ActualObservation]
    ) -> ObservationIngestionResult:
        result = ObservationIngestionResult()
        for observation in observations:
            changed = await self.with_retry(
                lambda observation=observation: self.observation_repository.upsert(
                    observation
                ),
                f"observations:{observation.entity_id}",
            )
            if not changed:
                result.unchanged += 1
                continue
            result.stored += 1
            signal = await self.serving.pair_observation(observation)
            if signal is not None:
                result.paired += 1
                result.signals.append(signal)

        logger.info(
            "ingestion.observations",
            stored=result.stored,
            unchanged=result.unchanged,
            paired=result.paired,
        )
        return result
