"""Deploy orchestration: admission, staging, publishing and bookkeeping."""

from __future__ import annotations

import asyncio
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import structlog
from prometheus_client import Counter

from static_deployer.core.config import Settings
from static_deployer.core.exceptions import (
    ExtractFailedError,
    MissingFileError,
    StagingError,
    StateLoadError,
    StateSaveError,
    UploadTooLargeError,
)
from static_deployer.core.models import AdmissionDecision, AdmissionOutcome, QuotaState, StagedSite
from static_deployer.deploy.models import DeployOutcome, DeployRequest, DeployResult
from static_deployer.deploy.publisher import Publisher, StubPublisher
from static_deployer.quota.admission import AdmissionController, is_status_probe
from static_deployer.quota.store import CounterStore, JsonFileCounterStore
from static_deployer.staging.cleanup import CleanupScheduler
from static_deployer.staging.pipeline import StagingPipeline
from static_deployer.utils.logging import bind_deploy_context

logger = structlog.get_logger()

DEPLOY_OUTCOMES = Counter(
    "static_deployer_deploys_total",
    "Deploy requests by outcome",
    ["outcome"],
)


class DeployOrchestrator:
    """Handles deploy requests independently of the transport.

    The quota state lives here and is only touched while holding ``_lock``,
    so evaluating admission and committing the incremented counters happen
    atomically with respect to other requests. Deploys are therefore
    serialized, including concurrent deploys of the same name.
    """

    def __init__(
        self,
        store: CounterStore,
        controller: AdmissionController,
        pipeline: StagingPipeline,
        scheduler: CleanupScheduler,
        publisher: Publisher,
        *,
        cleanup_delay_seconds: float = 5.0,
        stage_timeout_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.controller = controller
        self.pipeline = pipeline
        self.scheduler = scheduler
        self.publisher = publisher
        self.cleanup_delay_seconds = cleanup_delay_seconds
        self.stage_timeout_seconds = stage_timeout_seconds
        self.clock = clock

        self._state = QuotaState()
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, store: Optional[CounterStore] = None) -> "DeployOrchestrator":
        return cls(
            store=store or JsonFileCounterStore(Path(settings.quota_file)),
            controller=AdmissionController(
                max_quota=settings.max_quota,
                cooldown_seconds=settings.cooldown_seconds,
                window_seconds=settings.quota_window_seconds,
            ),
            pipeline=StagingPipeline(
                Path(settings.staging_dir),
                max_upload_bytes=settings.max_upload_bytes,
                max_extracted_bytes=settings.max_extracted_bytes,
            ),
            scheduler=CleanupScheduler(settings.cleanup_delay_seconds),
            publisher=StubPublisher(settings.deploy_domain),
            cleanup_delay_seconds=settings.cleanup_delay_seconds,
            stage_timeout_seconds=settings.stage_timeout_seconds,
        )

    @property
    def state(self) -> QuotaState:
        return self._state

    def now(self) -> int:
        return int(self.clock())

    async def initialize(self, strict: bool = False) -> QuotaState:
        """Load persisted counters.

        Args:
            strict: Propagate load failures instead of starting from zero

        Raises:
            StateLoadError: If loading fails and ``strict`` is set
        """
        try:
            self._state = await self.store.load()
        except StateLoadError as e:
            if strict:
                raise
            logger.warning("Quota state unreadable, starting from empty counters", error=str(e))
            self._state = QuotaState()
        return self._state

    async def status(self, now: Optional[int] = None) -> AdmissionDecision:
        """Current remaining quota and cooldown, without consuming anything."""
        now = self.now() if now is None else int(now)
        async with self._lock:
            await self._apply_lazy_reset(now)
            return self.controller.evaluate(self._state, now, status_only=True)

    async def handle_deploy(self, request: DeployRequest, now: Optional[int] = None) -> DeployResult:
        """Admit, stage, publish and account for one deploy request."""
        now = self.now() if now is None else int(now)
        status_only = is_status_probe(request.name)
        if not status_only:
            bind_deploy_context(request.name)

        async with self._lock:
            await self._apply_lazy_reset(now)
            decision = self.controller.evaluate(self._state, now, status_only=status_only)

            if decision.outcome == AdmissionOutcome.STATUS_ONLY:
                return self._finish(DeployResult(
                    outcome=DeployOutcome.STATUS,
                    remaining_quota=decision.remaining_quota,
                    cooldown=decision.cooldown,
                    remaining_seconds=decision.remaining_seconds,
                ))

            if decision.outcome == AdmissionOutcome.REJECT_QUOTA:
                logger.info("Deploy rejected, quota exhausted", quota_used=self._state.quotaUsed)
                return self._finish(DeployResult(
                    outcome=DeployOutcome.REJECTED_QUOTA,
                    error="Daily quota exhausted",
                    remaining_quota=0,
                    cooldown=True,
                ))

            if decision.outcome == AdmissionOutcome.REJECT_COOLDOWN:
                logger.info("Deploy rejected, cooldown active", remaining_seconds=decision.remaining_seconds)
                return self._finish(DeployResult(
                    outcome=DeployOutcome.REJECTED_COOLDOWN,
                    error=f"Wait {decision.remaining_seconds} seconds before deploying again",
                    remaining_quota=decision.remaining_quota,
                    cooldown=True,
                    remaining_seconds=decision.remaining_seconds,
                ))

            if not request.fileData or not request.fileName:
                exc = MissingFileError()
                return self._finish(DeployResult(
                    outcome=DeployOutcome.MISSING_FILE,
                    error=str(exc),
                    error_code=exc.code,
                ))

            return await self._deploy_admitted(request.name, request.fileData, request.fileName, decision, now)

    async def _deploy_admitted(
        self,
        name: str,
        file_data: str,
        file_name: str,
        decision: AdmissionDecision,
        now: int,
    ) -> DeployResult:
        site_dir: Optional[Path] = None
        try:
            site_dir = self.pipeline.directory_for(name)
            # A removal left over from an earlier request must not hit the fresh staging
            await self.scheduler.cancel(site_dir)
            site = await self._stage(name, file_data, file_name)
            url = await self.publisher.publish(site)
        except UploadTooLargeError as e:
            return self._finish(DeployResult(
                outcome=DeployOutcome.UPLOAD_TOO_LARGE,
                error=str(e),
                error_code=e.code,
            ))
        except StagingError as e:
            logger.error("Staging failed", error=str(e), code=e.code)
            return self._fail(site_dir, f"Deploy failed: {e}", decision, e.code)
        except Exception as e:
            logger.exception("Deploy failed")
            return self._fail(site_dir, f"Deploy failed: {e}", decision, "internal_error")

        self._state = self._state.after_deploy(now)
        await self._persist()
        self.scheduler.schedule_removal(site.path, self.cleanup_delay_seconds)

        remaining = self.controller.remaining_quota(self._state)
        logger.info("Deploy succeeded", url=url, remaining_quota=remaining)
        return self._finish(DeployResult(
            outcome=DeployOutcome.SUCCESS,
            url=url,
            remaining_quota=remaining,
            message="Deploy succeeded!",
        ))

    async def _stage(self, name: str, file_data: str, file_name: str) -> StagedSite:
        loop = asyncio.get_running_loop()
        cancelled = threading.Event()
        job = loop.run_in_executor(None, self.pipeline.stage, name, file_data, file_name, cancelled)
        try:
            return await asyncio.wait_for(asyncio.shield(job), timeout=self.stage_timeout_seconds)
        except asyncio.TimeoutError as e:
            # The worker thread cannot be interrupted; hold the lock until it
            # returns so nothing else writes into the same directory meanwhile
            cancelled.set()
            logger.warning("Staging timed out, waiting for worker to stop", timeout=self.stage_timeout_seconds)
            await asyncio.gather(job, return_exceptions=True)
            raise ExtractFailedError(f"Staging timed out after {self.stage_timeout_seconds}s") from e

    def _fail(self, site_dir: Optional[Path], error: str, decision: AdmissionDecision, code: Optional[str]) -> DeployResult:
        # Partial staging is left for the janitor, same as a successful deploy
        if site_dir is not None and site_dir.exists():
            self.scheduler.schedule_removal(site_dir, self.cleanup_delay_seconds)
        return self._finish(DeployResult(
            outcome=DeployOutcome.STAGING_FAILED,
            error=error,
            error_code=code,
            remaining_quota=decision.remaining_quota,
        ))

    async def _apply_lazy_reset(self, now: int) -> None:
        reset = self.controller.apply_lazy_reset(self._state, now)
        if reset == self._state:
            return
        logger.info("Quota window elapsed, resetting quota", previous_quota_used=self._state.quotaUsed)
        self._state = reset
        await self._persist()

    async def _persist(self) -> None:
        try:
            await self.store.commit(self._state)
        except StateSaveError as e:
            # In-memory counters stay authoritative for this process
            logger.error(
                "Failed to persist quota state",
                error=str(e),
                quota_used=self._state.quotaUsed,
                last_deploy=self._state.lastDeployTimestamp,
            )

    def _finish(self, result: DeployResult) -> DeployResult:
        DEPLOY_OUTCOMES.labels(outcome=result.outcome.value).inc()
        return result
