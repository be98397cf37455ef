"""
Pipeline Use Cases - Application Layer

Thin use cases translating API DTOs into calls on the serving gateway, the
ingestion service, the retraining scheduler and the drift monitor.
"""

from datetime import datetime
from typing import List, Optional

from retail_forecast.application.dtos.converters import (
    to_drift_signal_dto,
    to_prediction_dto,
    to_training_job_dto,
)
from retail_forecast.application.dtos.drift_dto import DriftSignalDTO
from retail_forecast.application.dtos.ingestion_dto import (
    FeatureBatchDTO,
    FeatureIngestionResponseDTO,
    ObservationBatchDTO,
    ObservationIngestionResponseDTO,
)
from retail_forecast.application.dtos.prediction_dto import PredictionResponseDTO
from retail_forecast.application.dtos.training_dto import (
    TrainingJobDTO,
    TrainingRequestDTO,
    TrainingTriggerResponseDTO,
)
from retail_forecast.application.use_cases.drift_monitor import DriftMonitor
from retail_forecast.application.use_cases.ingestion import IngestionService
from retail_forecast.application.use_cases.retraining_scheduler import (
    RetrainingScheduler,
)
from retail_forecast.application.use_cases.serving import ServingGateway
from retail_forecast.domain.entities.entity import EntityScope
from retail_forecast.domain.entities.feature import FeatureRecord
from retail_forecast.domain.entities.model_artifact import ModelHyperparameters
from retail_forecast.domain.entities.prediction import ActualObservation
from retail_forecast.domain.entities.training_job import TrainingReason


class ForecastUseCase:
    """Use case for serving one forecast."""

    def __init__(self, serving: ServingGateway):
        self.serving = serving

    async def execute(
        self,
        entity_id: str,
        target_timestamp: datetime,
        coverage: Optional[float] = None,
    ) -> PredictionResponseDTO:
        prediction = await self.serving.predict(entity_id, target_timestamp, coverage)
        return to_prediction_dto(prediction)


class IngestFeaturesUseCase:
    def __init__(self, ingestion: IngestionService):
        self.ingestion = ingestion

    async def execute(self, dto: FeatureBatchDTO) -> FeatureIngestionResponseDTO:
        records = []
        for item in dto.records:
            extra = {}
            if item.ingestion_time is not None:
                extra["ingestion_time"] = item.ingestion_time
            records.append(
                FeatureRecord(
                    entity_id=item.entity_id,
                    timestamp=item.timestamp,
                    features=dict(item.features),
                    **extra,
                )
            )
        accepted = await self.ingestion.ingest_features(records)
        values = sum(len(record.features) for record in records)
        return FeatureIngestionResponseDTO(accepted=accepted, values=values)


class IngestObservationsUseCase:
    def __init__(self, ingestion: IngestionService):
        self.ingestion = ingestion

    async def execute(self, dto: ObservationBatchDTO) -> ObservationIngestionResponseDTO:
        observations = [
            ActualObservation(
                entity_id=item.entity_id,
                timestamp=item.timestamp,
                observed_value=item.observed_value,
            )
            for item in dto.observations
        ]
        result = await self.ingestion.ingest_observations(observations)
        return ObservationIngestionResponseDTO(
            stored=result.stored,
            unchanged=result.unchanged,
            paired=result.paired,
            drift_signals=[to_drift_signal_dto(signal) for signal in result.signals],
        )


class StartTrainingUseCase:
    """Use case for a manual retraining trigger."""

    def __init__(self, scheduler: RetrainingScheduler):
        self.scheduler = scheduler

    async def execute(
        self, scope: str, dto: TrainingRequestDTO
    ) -> TrainingTriggerResponseDTO:
        entity_scope = EntityScope.parse(scope)
        hyperparameters = None
        if dto.hyperparameters is not None:
            hyperparameters = ModelHyperparameters.from_dict(
                dto.hyperparameters.model_dump(mode="json")
            )
            hyperparameters.validate()

        job = await self.scheduler.trigger(
            entity_scope,
            TrainingReason.MANUAL,
            end=dto.end,
            hyperparameters=hyperparameters,
        )
        if job is not None:
            return TrainingTriggerResponseDTO(
                entity_scope=str(entity_scope),
                dispatched=False,
                message="Retraining job running",
                job=to_training_job_dto(job),
            )
        if self.scheduler.dispatcher is not None:
            message = "Retraining dispatched to the worker queue"
        else:
            message = "Another process holds the retraining lock for this scope"
        return TrainingTriggerResponseDTO(
            entity_scope=str(entity_scope),
            dispatched=self.scheduler.dispatcher is not None,
            message=message,
        )


class CancelTrainingUseCase:
    def __init__(self, scheduler: RetrainingScheduler):
        self.scheduler = scheduler

    async def execute(self, scope: str) -> bool:
        return await self.scheduler.cancel(EntityScope.parse(scope))


class ListTrainingJobsUseCase:
    def __init__(self, scheduler: RetrainingScheduler):
        self.scheduler = scheduler

    async def execute(self, scope: str, limit: int = 20) -> List[TrainingJobDTO]:
        jobs = await self.scheduler.list_jobs(EntityScope.parse(scope), limit=limit)
        return [to_training_job_dto(job) for job in jobs]


class GetDriftSignalUseCase:
    def __init__(self, drift_monitor: DriftMonitor):
        self.drift_monitor = drift_monitor

    async def execute(self, scope: str) -> DriftSignalDTO:
        signal = await self.drift_monitor.get_signal(str(EntityScope.parse(scope)))
        return to_drift_signal_dto(signal)
