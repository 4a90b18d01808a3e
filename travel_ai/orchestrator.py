# travel_ai/orchestrator.py
from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from travel_ai.agents.destination_gate import DestinationGate
from travel_ai.agents.price_validator import PriceValidator
from travel_ai.agents.request_normalizer import NormalizedRequest, generate_plan_id, normalize_request
from travel_ai.config import Settings, settings as default_settings
from travel_ai.errors import (
    GenerationTimeout,
    PersistenceFailure,
    PlanGenerationError,
    PlanQueueFull,
    RejectedDestination,
)
from travel_ai.llm import OpenAIPlanClient, PlanGenerator
from travel_ai.metrics import PlanMetrics
from travel_ai.schemas import (
    DestinationVerdict,
    GeneratedPlan,
    PlanAccepted,
    PlanRequest,
    ValidationReport,
)
from travel_ai.store import PlanStore
from travel_ai.tools.currency import CurrencyConverter

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRAVEL_AI_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

# Failures nobody will ever poll for (the plan record itself could not be written).
operator_logger = logging.getLogger("travel_ai.operator")
if not operator_logger.handlers:
    _operator_handler = logging.StreamHandler()
    _operator_handler.setFormatter(logging.Formatter("[%(levelname)s] OPERATOR %(name)s: %(message)s"))
    operator_logger.addHandler(_operator_handler)
operator_logger.setLevel(logging.WARNING)
operator_logger.propagate = False

RESTART_REASON = "Generation interrupted by a service restart"
SHUTDOWN_REASON = "Generation interrupted by a service shutdown"
VALIDATION_UNAVAILABLE = "Price validation system temporarily unavailable"

PRICE_ALERT_PREFIX = "Price Alert: "
ADVISORY_PREFIX = "Travel Advisory: "
INFO_PREFIX = "Travel Info: "


@dataclass
class PlanJob:
    plan_id: str
    user_id: Optional[str]
    request: PlanRequest
    verdict: DestinationVerdict
    accepted_at: float = field(default_factory=time.perf_counter)


def fold_tips(local_tips: List[str], report: ValidationReport, verdict: DestinationVerdict) -> List[str]:
    """Append price and destination advisories to the generated tips, each with its own prefix."""
    tips = list(local_tips)
    tips.extend(f"{PRICE_ALERT_PREFIX}{warning}" for warning in report.warnings[:3])
    tips.extend(f"{ADVISORY_PREFIX}{warning}" for warning in verdict.warnings)
    tips.extend(f"{INFO_PREFIX}{item}" for item in verdict.recommendations[:2])
    return tips


class PlanOrchestrator:
    """Accepts plan requests and runs generation on a bounded pool of background workers.

    ``submit`` only runs the destination gate and creates the draft record;
    generation, price validation and the final write happen on a worker, so
    the caller never waits on the AI provider.
    """

    def __init__(
        self,
        store: PlanStore,
        generator: PlanGenerator,
        validator: PriceValidator,
        gate: Optional[DestinationGate] = None,
        metrics: Optional[PlanMetrics] = None,
        *,
        workers: int = 4,
        queue_size: int = 100,
        generation_timeout: Optional[float] = None,
        stale_draft_seconds: float = 900.0,
    ):
        self.store = store
        self.generator = generator
        self.validator = validator
        self.gate = gate if gate is not None else DestinationGate()
        self.metrics = metrics if metrics is not None else PlanMetrics()
        self.workers = max(1, workers)
        self.queue_size = max(1, queue_size)
        self.generation_timeout = generation_timeout
        self.stale_draft_seconds = stale_draft_seconds
        self._queue: Optional[asyncio.Queue[PlanJob]] = None
        self._tasks: List[asyncio.Task] = []
        self._reserved = 0
        self._active: Dict[str, PlanJob] = {}

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "PlanOrchestrator":
        config = config or default_settings
        gate = DestinationGate()
        converter = CurrencyConverter(
            api_url=config.currency_api_url,
            fallback_url=config.currency_fallback_url,
            cache_ttl=config.currency_cache_ttl,
        )
        return cls(
            store=PlanStore(config.database_url),
            generator=PlanGenerator(OpenAIPlanClient(api_key=config.openai_api_key, model=config.openai_model)),
            validator=PriceValidator(converter, gate, reference_currency=config.reference_currency),
            gate=gate,
            metrics=PlanMetrics(),
            workers=config.workers,
            queue_size=config.queue_size,
            generation_timeout=config.generation_timeout,
            stale_draft_seconds=config.stale_draft_seconds,
        )

    # ---------- lifecycle ----------
    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self.running:
            return
        # drafts touched recently may belong to another live process on the same database
        recovered = await asyncio.to_thread(self.store.fail_stale_drafts, RESTART_REASON, self.stale_draft_seconds)
        if recovered:
            logger.warning("Recovered %d plan(s) stranded by a previous process", recovered)
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._tasks = [asyncio.create_task(self._worker(index)) for index in range(self.workers)]
        logger.info("Plan orchestrator started with %d worker(s), queue size %d", self.workers, self.queue_size)

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        interrupted = list(self._active.values())
        self._active.clear()
        while self._queue is not None and not self._queue.empty():
            interrupted.append(self._queue.get_nowait())
            self._queue.task_done()
        if interrupted:
            logger.warning("Stopping with %d unfinished plan(s); marking them failed", len(interrupted))
        for job in interrupted:
            await self._fail(job, SHUTDOWN_REASON, "INTERRUPTED")
        logger.info("Plan orchestrator stopped")

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        while True:
            job = await self._queue.get()
            try:
                await self.process(job)
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued plan has been processed."""
        if self._queue is not None:
            await self._queue.join()

    # ---------- synchronous phase ----------
    def _record_metric(self, method: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        try:
            method(*args, **kwargs)
        except Exception:
            logger.warning("Metrics sink failed in %s", getattr(method, "__name__", method), exc_info=True)

    def _verify(self, request: PlanRequest) -> DestinationVerdict:
        verdict = self.gate.verify(request.destination)
        if not verdict.is_accessible or not verdict.is_safe:
            alternatives = self.gate.safe_alternatives(request.destination)
            logger.warning(
                "Rejected plan request for %s (%s): %s",
                request.destination,
                verdict.country,
                "; ".join(verdict.warnings),
            )
            self._record_metric(self.metrics.record_rejected, verdict.country)
            raise RejectedDestination(verdict, alternatives)
        return verdict

    async def _create_job(
        self, request: PlanRequest, user_id: Optional[str], verdict: DestinationVerdict
    ) -> Tuple[PlanJob, NormalizedRequest]:
        normalized = normalize_request(request)
        plan_id = generate_plan_id()
        await asyncio.to_thread(
            self.store.create_draft, plan_id, user_id, request.to_document(), normalized.fingerprint
        )
        self._record_metric(self.metrics.record_accepted, verdict.country, request.travel_style)
        return PlanJob(plan_id=plan_id, user_id=user_id, request=request, verdict=verdict), normalized

    async def submit(self, request: PlanRequest, user_id: Optional[str] = None) -> PlanAccepted:
        if self._queue is None:
            raise RuntimeError("Plan orchestrator is not started")
        verdict = self._verify(request)

        if self._queue.qsize() + self._reserved >= self._queue.maxsize:
            self._record_metric(self.metrics.record_error, "queue_full", "orchestrator", "warning")
            raise PlanQueueFull("Plan generation queue is full, please retry shortly")

        # Hold a slot while the draft is written so put_nowait cannot overflow.
        self._reserved += 1
        try:
            job, normalized = await self._create_job(request, user_id, verdict)
        finally:
            self._reserved -= 1
        self._queue.put_nowait(job)

        logger.info(
            "Accepted plan %s for %s (eta %ds, queued %d)",
            job.plan_id,
            request.destination,
            normalized.estimated_seconds,
            self._queue.qsize(),
        )
        return PlanAccepted(plan_id=job.plan_id, estimated_seconds=normalized.estimated_seconds)

    async def run_inline(self, request: PlanRequest, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Gate, generate, validate and persist in the current task; returns the stored plan."""
        verdict = self._verify(request)
        job, _ = await self._create_job(request, user_id, verdict)
        await self.process(job)
        return await asyncio.to_thread(self.store.get_plan, job.plan_id)

    # ---------- asynchronous phase ----------
    async def _generate(self, job: PlanJob) -> GeneratedPlan:
        call = self.generator.generate(job.request, job.verdict)
        if self.generation_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.generation_timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationTimeout(f"AI generation exceeded {self.generation_timeout:g}s") from exc

    async def _validate(self, plan: GeneratedPlan, request: PlanRequest) -> ValidationReport:
        try:
            return await self.validator.validate(plan, request)
        except Exception:
            logger.exception("Price validation crashed for %s", request.destination)
            self._record_metric(self.metrics.record_error, "validation_error", "price_validator")
            return ValidationReport(is_valid=False, errors=[VALIDATION_UNAVAILABLE])

    async def process(self, job: PlanJob) -> bool:
        """Run one plan to a terminal state. Never raises; returns True when completed."""
        self._active[job.plan_id] = job
        completed = await self._process(job)
        # a cancelled job stays in _active so stop() can fail it
        del self._active[job.plan_id]
        return completed

    async def _process(self, job: PlanJob) -> bool:
        plan_id = job.plan_id
        request = job.request
        try:
            if not await asyncio.to_thread(self.store.set_stage, plan_id, "generating"):
                self._superseded(job, "generating")
                return False
            plan = await self._generate(job)

            if not await asyncio.to_thread(self.store.set_stage, plan_id, "validating"):
                self._superseded(job, "validating")
                return False
            report = await self._validate(plan, request)

            metadata: Dict[str, Any] = plan.metadata.model_dump(mode="json", by_alias=True) if plan.metadata else {}
            metadata["priceValidation"] = report.summary()
            patch = {
                "status": "completed",
                "stage": "completed",
                "mainRoutes": [route.model_dump(mode="json", by_alias=True) for route in plan.routes],
                "surpriseAlternatives": [alt.model_dump(mode="json", by_alias=True) for alt in plan.alternatives],
                "localTips": fold_tips(plan.local_tips, report, job.verdict),
                "timingAdvice": plan.timing_advice.model_dump(mode="json", by_alias=True),
                "metadata": metadata,
            }
            if not await asyncio.to_thread(self.store.update_plan, plan_id, patch):
                self._superseded(job, "completed")
                return False
        except PlanGenerationError as exc:
            logger.warning("Plan %s failed during generation: %s", plan_id, exc.reason())
            await self._fail(job, exc.reason(), exc.code)
            return False
        except PersistenceFailure as exc:
            logger.error("Plan %s could not be persisted: %s", plan_id, exc)
            await self._fail(job, f"PERSISTENCE_FAILURE: {exc}", "PERSISTENCE_FAILURE")
            return False
        except Exception as exc:
            logger.exception("Unexpected error while processing plan %s", plan_id)
            await self._fail(job, f"UNEXPECTED_ERROR: {exc}", "UNEXPECTED_ERROR")
            return False

        elapsed = time.perf_counter() - job.accepted_at
        best_cost = round(plan.cheapest_route().total_cost * report.conversion_rate, 2)
        credits = plan.metadata.credits_used if plan.metadata else 0
        self._record_metric(
            self.metrics.record_generation,
            "completed",
            job.verdict.country,
            request.travel_style,
            elapsed,
            best_cost,
            credits,
        )
        self._record_metric(self.metrics.record_validation, report.is_valid, len(report.outliers))
        logger.info(
            "Plan %s completed in %.2fs (%d routes, best %.2f %s, price check valid=%s)",
            plan_id,
            elapsed,
            len(plan.routes),
            best_cost,
            report.reference_currency,
            report.is_valid,
        )
        return True

    def _superseded(self, job: PlanJob, stage: str) -> None:
        """The record went terminal outside this worker, so the generated result is dropped."""
        operator_logger.error(
            "Plan %s was finalized outside this worker before stage %r; generated result discarded",
            job.plan_id,
            stage,
        )
        self._record_metric(self.metrics.record_error, "plan_superseded", "orchestrator", "warning")

    async def _fail(self, job: PlanJob, reason: str, code: str) -> None:
        elapsed = time.perf_counter() - job.accepted_at
        self._record_metric(self.metrics.record_error, code, "orchestrator")
        self._record_metric(
            self.metrics.record_generation, "failed", job.verdict.country, job.request.travel_style, elapsed
        )
        try:
            await asyncio.to_thread(self.store.mark_failed, job.plan_id, reason, code)
        except Exception as exc:
            operator_logger.error(
                "Plan %s is stuck: could not record failure (%s) because the store raised: %s",
                job.plan_id,
                reason,
                exc,
            )
