"""
Application Use Case - Retraining Scheduler

Runs retraining jobs for a scope when drift reaches breach, when the
periodic sweep finds the scope due, or on manual request. A job trains a
candidate on ``[end - training_days, end - holdout_days)``, back-tests it
and the incumbent on ``[end - holdout_days, end)``, registers it and
promotes it only when it beats the incumbent by ``min_margin``.

At most one job runs per scope: a scope lock is held for the whole job.
A promotion that has started always completes, drift reset included, even
when its job times out or is cancelled.
Failed jobs are retried at the next sweep until the scope is flagged for
manual review, after which only manual triggers run it.
"""

import asyncio
import os
import socket
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

import structlog

from retail_forecast.application.use_cases.drift_monitor import DriftMonitor
from retail_forecast.application.use_cases.forecast_engine import ForecastEngine
from retail_forecast.domain.entities.drift import AlertEvent, DriftSignal, DriftStatus
from retail_forecast.domain.entities.entity import EntityScope
from retail_forecast.domain.entities.errors import (
    AlertDeliveryError,
    ConcurrentPromotionConflict,
    DomainError,
    TrainingFailure,
)
from retail_forecast.domain.entities.feature import TimeRange, ensure_utc
from retail_forecast.domain.entities.model_artifact import (
    ModelArtifact,
    ModelHyperparameters,
)
from retail_forecast.domain.entities.training_job import (
    TrainingJob,
    TrainingReason,
    TrainingStatus,
)
from retail_forecast.domain.ports.alert_sink import IAlertSink
from retail_forecast.domain.ports.scope_lock import IScopeLock
from retail_forecast.domain.ports.training_orchestrator import IRetrainingDispatcher
from retail_forecast.domain.repositories.model_registry import IModelRegistry
from retail_forecast.domain.repositories.training_job_repository import (
    ITrainingJobRepository,
)
from retail_forecast.domain.services.promotion_policy import should_promote

logger = structlog.get_logger(__name__)

PROMOTION_ATTEMPTS = 3
LOCK_GRACE_SECONDS = 60.0


@dataclass
class SweepSummary:
    """Outcome of one periodic sweep."""

    started: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    flagged: List[str] = field(default_factory=list)


class RetrainingScheduler:
    """Retrains, compares and promotes models per scope."""

    def __init__(
        self,
        registry: IModelRegistry,
        engine: ForecastEngine,
        job_repository: ITrainingJobRepository,
        drift_monitor: DriftMonitor,
        scope_lock: IScopeLock,
        alert_sink: IAlertSink,
        default_hyperparameters: Optional[ModelHyperparameters] = None,
        interval_seconds: float = 86400.0,
        min_margin: float = 0.05,
        training_days: int = 365,
        holdout_days: int = 14,
        max_attempts: int = 3,
        max_model_age_seconds: float = 90 * 86400.0,
        job_timeout_seconds: float = 3600.0,
        dispatcher: Optional[IRetrainingDispatcher] = None,
    ):
        """
        Initialize the scheduler and subscribe it to breach signals.

        Args:
            registry: Model registry holding candidates and active models
            engine: Forecast engine used to train and back-test
            job_repository: Persistence of training jobs
            drift_monitor: Source of breach signals, reset after promotion
            scope_lock: Per-scope mutual exclusion across processes
            alert_sink: Receives manual-review alerts
            default_hyperparameters: Used for scopes without an active model
            interval_seconds: Periodic retraining interval
            min_margin: Relative improvement required for promotion
            training_days: Length of the training plus holdout span
            holdout_days: Length of the back-test window
            max_attempts: Consecutive failures before manual review
            max_model_age_seconds: Active model age that, with failing
                retraining, flags the scope for manual review
            job_timeout_seconds: Hard wall-clock limit of one job
            dispatcher: Sends triggers to background workers when set
        """
        if holdout_days <= 0 or training_days <= holdout_days:
            raise ValueError("training_days must exceed holdout_days > 0")
        self.registry = registry
        self.engine = engine
        self.job_repository = job_repository
        self.drift_monitor = drift_monitor
        self.scope_lock = scope_lock
        self.alert_sink = alert_sink
        self.default_hyperparameters = default_hyperparameters or ModelHyperparameters()
        self.interval = timedelta(seconds=interval_seconds)
        self.min_margin = min_margin
        self.training_days = training_days
        self.holdout_days = holdout_days
        self.max_attempts = max_attempts
        self.max_model_age_seconds = max_model_age_seconds
        self.job_timeout_seconds = job_timeout_seconds
        self.dispatcher = dispatcher
        self.owner = f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"
        self._tasks: Dict[str, asyncio.Task] = {}
        self._jobs: Dict[str, TrainingJob] = {}
        self._candidates: Dict[UUID, str] = {}
        self._promotions: Dict[UUID, asyncio.Future] = {}
        drift_monitor.subscribe(self.on_drift_signal)

    async def on_drift_signal(self, signal: DriftSignal) -> None:
        if signal.status is DriftStatus.BREACH:
            await self.trigger(
                EntityScope.parse(signal.entity_scope), TrainingReason.DRIFT_BREACH
            )

    async def trigger(
        self,
        scope: EntityScope,
        reason: TrainingReason = TrainingReason.MANUAL,
        end: Optional[datetime] = None,
        hyperparameters: Optional[ModelHyperparameters] = None,
        wait: bool = False,
    ) -> Optional[TrainingJob]:
        """
        Start a retraining job for ``scope``.

        Returns:
            The started job, the already running job of the scope, or None
            when the trigger was dispatched to a worker or skipped
        """
        key = str(scope)
        if reason is not TrainingReason.MANUAL and await self.needs_manual_review(key):
            logger.warning("scheduler.trigger.manual_review", scope=key, reason=reason.value)
            return None

        if self.dispatcher is not None:
            task_id = await self.dispatcher.dispatch_retraining(
                entity_scope=key,
                reason=reason.value,
                end=end.isoformat() if end else None,
                hyperparameters=hyperparameters.to_dict() if hyperparameters else None,
            )
            logger.info(
                "scheduler.trigger.dispatched", scope=key, reason=reason.value, task_id=task_id
            )
            return None

        running = self._tasks.get(key)
        if running is not None and not running.done():
            logger.info("scheduler.trigger.already_running", scope=key, reason=reason.value)
            return self._jobs.get(key)

        ttl = self.job_timeout_seconds + LOCK_GRACE_SECONDS
        if not await self.scope_lock.acquire(key, self.owner, ttl):
            logger.info("scheduler.trigger.locked", scope=key, reason=reason.value)
            return None

        job = TrainingJob(entity_scope=key, reason=reason)
        try:
            await self.job_repository.create(job)
        except BaseException:
            await self.scope_lock.release(key, self.owner)
            raise

        task = asyncio.create_task(self._run_locked(job, scope, end, hyperparameters))
        self._tasks[key] = task
        self._jobs[key] = job
        logger.info(
            "scheduler.job.started",
            training_job_id=str(job.id),
            scope=key,
            reason=reason.value,
        )
        if wait:
            await asyncio.wait({task})
        return job

    async def cancel(self, scope: EntityScope) -> bool:
        """
        Cancel the running job of ``scope``.

        The partial candidate is discarded and the active model is left
        untouched. Returns False when nothing was running here.
        """
        key = str(scope)
        task = self._tasks.get(key)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.wait({task})
        await self._settle_unstarted(key)
        logger.info("scheduler.job.cancel_requested", scope=key)
        return True

    def running_job(self, scope: EntityScope) -> Optional[TrainingJob]:
        key = str(scope)
        task = self._tasks.get(key)
        if task is None or task.done():
            return None
        return self._jobs.get(key)

    async def list_jobs(self, scope: EntityScope, limit: int = 20) -> List[TrainingJob]:
        return await self.job_repository.list_by_scope(str(scope), limit=limit)

    async def shutdown(self) -> None:
        """Cancel every running job; their candidates are discarded."""
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)
        for key in list(self._jobs):
            await self._settle_unstarted(key)

    async def wait_idle(self) -> None:
        """Wait for every job started by this scheduler to finish."""
        pending = [task for task in self._tasks.values() if not task.done()]
        if pending:
            await asyncio.wait(pending)

    async def run_due(self, now: Optional[datetime] = None) -> SweepSummary:
        """Trigger every scope whose last job or model is older than the interval."""
        now = ensure_utc(now or datetime.now(timezone.utc))
        summary = SweepSummary()
        scopes = {str(scope) for scope in await self.registry.list_scopes()}
        scopes.update(await self.job_repository.list_scopes())

        for key in sorted(scopes):
            scope = EntityScope.parse(key)
            if self.running_job(scope) is not None or await self.scope_lock.is_locked(key):
                summary.skipped[key] = "running"
                continue
            if await self.needs_manual_review(key):
                summary.flagged.append(key)
                continue
            reference = await self._last_activity(scope)
            if reference is not None and now - reference < self.interval:
                summary.skipped[key] = "not_due"
                continue
            await self.trigger(scope, TrainingReason.SCHEDULE)
            summary.started.append(key)

        logger.info(
            "scheduler.sweep",
            started=len(summary.started),
            skipped=len(summary.skipped),
            flagged=len(summary.flagged),
        )
        return summary

    async def needs_manual_review(self, key: str) -> bool:
        failures = await self._consecutive_failures(key)
        if failures >= self.max_attempts:
            return True
        if failures == 0:
            return False
        active = await self.registry.find_active(EntityScope.parse(key))
        return active is not None and active.age() > self.max_model_age_seconds

    async def execute(
        self,
        job: TrainingJob,
        scope: EntityScope,
        end: Optional[datetime] = None,
        hyperparameters: Optional[ModelHyperparameters] = None,
    ) -> TrainingJob:
        """Run one job to completion, failure, timeout or cancellation."""
        try:
            await asyncio.wait_for(
                self._retrain(job, scope, end, hyperparameters),
                timeout=self.job_timeout_seconds,
            )
        except asyncio.TimeoutError:
            if not await self._settle_promotion(job):
                job.mark_failed(
                    "Training job timed out",
                    {
                        "reason": TrainingFailure.TIMEOUT,
                        "timeout_seconds": self.job_timeout_seconds,
                    },
                )
                await self._discard_candidate(job)
        except asyncio.CancelledError:
            if await self._settle_promotion(job):
                await self.job_repository.update(job)
                logger.info(
                    "scheduler.job.promoted_before_cancel",
                    training_job_id=str(job.id),
                    scope=str(scope),
                    candidate_model_id=job.candidate_model_id,
                )
                raise
            job.mark_cancelled()
            await self._discard_candidate(job)
            await self.job_repository.update(job)
            logger.info("scheduler.job.cancelled", training_job_id=str(job.id), scope=str(scope))
            raise
        except DomainError as exc:
            job.mark_failed(exc.message, exc.details)
            await self._discard_candidate(job)

        await self.job_repository.update(job)
        self._candidates.pop(job.id, None)
        self._promotions.pop(job.id, None)

        if job.status is TrainingStatus.FAILED:
            logger.error(
                "scheduler.job.failed",
                training_job_id=str(job.id),
                scope=str(scope),
                error=job.error,
                details=job.error_details,
            )
            await self._flag_if_needed(str(scope))
        else:
            logger.info(
                "scheduler.job.completed",
                training_job_id=str(job.id),
                scope=str(scope),
                candidate_model_id=job.candidate_model_id,
                candidate_error=job.candidate_error,
                incumbent_error=job.incumbent_error,
                promoted=job.promoted,
                duration_seconds=job.get_total_duration(),
            )
        return job

    async def _run_locked(
        self,
        job: TrainingJob,
        scope: EntityScope,
        end: Optional[datetime],
        hyperparameters: Optional[ModelHyperparameters],
    ) -> TrainingJob:
        try:
            return await self.execute(job, scope, end, hyperparameters)
        finally:
            await self.scope_lock.release(str(scope), self.owner)

    def windows(self, end: Optional[datetime] = None) -> "tuple[TimeRange, TimeRange]":
        """Training and holdout windows for a job ending at ``end`` (floored to the day)."""
        end = ensure_utc(end or datetime.now(timezone.utc)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        span = TimeRange(end - timedelta(days=self.training_days), end)
        return span.split(end - timedelta(days=self.holdout_days))

    async def _retrain(
        self,
        job: TrainingJob,
        scope: EntityScope,
        end: Optional[datetime],
        hyperparameters: Optional[ModelHyperparameters],
    ) -> None:
        training_window, holdout = self.windows(end)
        job.mark_training()
        await self.job_repository.update(job)

        hp = hyperparameters or await self._hyperparameters_for(scope)
        candidate = await self.engine.train(scope, training_window, hp)
        target_scope = candidate.entity_scope
        evaluation_ids = list(candidate.member_entities)

        job.mark_evaluating(candidate.model_id, str(target_scope))
        await self.job_repository.update(job)
        candidate_error = await self.engine.backtest(candidate, evaluation_ids, holdout)

        await self.registry.register(candidate)
        self._candidates[job.id] = candidate.model_id

        for _ in range(PROMOTION_ATTEMPTS):
            incumbent = await self.registry.find_active(target_scope)
            incumbent_error = None
            if incumbent is not None:
                incumbent_error = await self.engine.backtest(
                    incumbent, evaluation_ids, holdout
                )
            if not should_promote(candidate_error, incumbent_error, self.min_margin):
                await self.registry.retire(candidate.model_id)
                self._candidates.pop(job.id, None)
                job.mark_completed(
                    promoted=False,
                    candidate_error=candidate_error,
                    incumbent_error=incumbent_error,
                    incumbent_model_id=incumbent.model_id if incumbent else None,
                )
                return
            step = asyncio.ensure_future(
                self._promote(job, candidate, incumbent, candidate_error, incumbent_error)
            )
            self._promotions[job.id] = step
            try:
                await asyncio.shield(step)
            except ConcurrentPromotionConflict as exc:
                logger.warning(
                    "scheduler.promotion.conflict",
                    scope=str(target_scope),
                    candidate_model_id=candidate.model_id,
                    actual_model_id=exc.actual_model_id,
                )
                continue
            return

        raise ConcurrentPromotionConflict(
            str(target_scope),
            incumbent.model_id if incumbent else None,
            None,
        )

    async def _promote(
        self,
        job: TrainingJob,
        candidate: ModelArtifact,
        incumbent: Optional[ModelArtifact],
        candidate_error: float,
        incumbent_error: Optional[float],
    ) -> None:
        # Runs shielded: a job that times out or is cancelled mid-promotion
        # still finishes it (see _settle_promotion).
        await self.registry.promote(
            candidate.model_id,
            expected_active_id=incumbent.model_id if incumbent else None,
        )
        await self.drift_monitor.reset_for_model(
            str(candidate.entity_scope), candidate.model_id
        )
        self._candidates.pop(job.id, None)
        job.mark_completed(
            promoted=True,
            candidate_error=candidate_error,
            incumbent_error=incumbent_error,
            incumbent_model_id=incumbent.model_id if incumbent else None,
        )

    async def _settle_promotion(self, job: TrainingJob) -> bool:
        """Wait for a promotion already under way; True when it went through."""
        step = self._promotions.pop(job.id, None)
        if step is None:
            return False
        await asyncio.wait({step})
        return not step.cancelled() and step.exception() is None

    async def _settle_unstarted(self, key: str) -> None:
        # A task cancelled before its first step never reaches execute().
        job = self._jobs.get(key)
        if job is None or job.status is not TrainingStatus.PENDING:
            return
        job.mark_cancelled()
        await self.job_repository.update(job)
        await self.scope_lock.release(key, self.owner)

    async def _hyperparameters_for(self, scope: EntityScope) -> ModelHyperparameters:
        incumbent = await self.registry.find_active(scope)
        if incumbent is not None:
            return ModelHyperparameters.from_dict(incumbent.hyperparameters.to_dict())
        return ModelHyperparameters.from_dict(self.default_hyperparameters.to_dict())

    async def _discard_candidate(self, job: TrainingJob) -> None:
        model_id = self._candidates.pop(job.id, None)
        if model_id is None:
            return
        active = await self.registry.find_active(
            EntityScope.parse(job.candidate_scope or job.entity_scope)
        )
        if active is not None and active.model_id == model_id:
            return
        await self.registry.retire(model_id)
        logger.info(
            "scheduler.candidate.discarded",
            training_job_id=str(job.id),
            model_id=model_id,
        )

    async def _consecutive_failures(self, key: str) -> int:
        failures = 0
        for job in await self.job_repository.list_by_scope(key, limit=self.max_attempts * 3):
            if job.status is TrainingStatus.FAILED:
                failures += 1
            elif job.status is TrainingStatus.COMPLETED:
                break
        return failures

    async def _last_activity(self, scope: EntityScope) -> Optional[datetime]:
        moments = []
        jobs = await self.job_repository.list_by_scope(str(scope), limit=1)
        if jobs:
            moments.append(jobs[0].created_at)
        active = await self.registry.find_active(scope)
        if active is not None:
            moments.append(active.created_at)
        return max(moments) if moments else None

    async def _flag_if_needed(self, key: str) -> None:
        if not await self.needs_manual_review(key):
            return
        failures = await self._consecutive_failures(key)
        logger.error("scheduler.manual_review", scope=key, consecutive_failures=failures)
        event = AlertEvent(
            entity_scope=key,
            status="manual_review",
            metric=None,
            timestamp=datetime.now(timezone.utc),
            kind="retraining",
            details={"consecutive_failures": failures, "max_attempts": self.max_attempts},
        )
        try:
            await self.alert_sink.emit(event)
        except AlertDeliveryError as exc:
            logger.error(
                "scheduler.alert.undelivered",
                scope=key,
                error=exc.message,
                details=exc.details,
            )

    def describe(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "running": sorted(k for k, t in self._tasks.items() if not t.done()),
            "dispatch": "celery" if self.dispatcher is not None else "local",
        }
