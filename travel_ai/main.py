from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Path, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from travel_ai.agents.request_normalizer import plan_summary, validate_date_range
from travel_ai.config import settings
from travel_ai.errors import (
    PersistenceFailure,
    PlanNotCompleted,
    PlanNotFound,
    PlanQueueFull,
    RejectedDestination,
)
from travel_ai.orchestrator import PlanOrchestrator
from travel_ai.schemas import PlanRequest, PlanStatus, RatingRequest, VisibilityUpdate

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRAVEL_AI_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

PLAN_ID_PATTERN = r"^plan_[a-z0-9_]+$"


def _orchestrator(request: Request) -> PlanOrchestrator:
    return request.app.state.orchestrator


def create_app(orchestrator: Optional[PlanOrchestrator] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        orch = orchestrator or PlanOrchestrator.from_settings(settings)
        app.state.orchestrator = orch
        await orch.start()
        try:
            yield
        finally:
            await orch.stop()

    app = FastAPI(title="Travel AI Planner API", lifespan=lifespan)

    # Browser frontends call the API directly; scope with TRAVEL_AI_ALLOWED_ORIGINS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PersistenceFailure)
    async def _persistence_failure(_: Request, exc: PersistenceFailure) -> JSONResponse:
        logger.error("Plan store unavailable: %s", exc)
        return JSONResponse(status_code=500, content={"detail": {"message": "Plan storage temporarily unavailable"}})

    # ---------- plans ----------
    @app.post("/api/plans", status_code=202)
    async def create_plan(
        payload: Dict[str, Any] = Body(...),
        user_id: Optional[str] = Query(None),
        orch: PlanOrchestrator = Depends(_orchestrator),
    ) -> Dict[str, Any]:
        """Accept a plan request; generation continues in the background."""
        try:
            plan_request = PlanRequest.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(
                status_code=422, detail=exc.errors(include_url=False, include_context=False, include_input=False)
            ) from exc

        date_errors = validate_date_range(plan_request.start_date, plan_request.end_date)
        if date_errors:
            raise HTTPException(status_code=422, detail={"message": "Invalid date range", "errors": date_errors})

        try:
            accepted = await orch.submit(plan_request, user_id)
        except RejectedDestination as exc:
            raise HTTPException(status_code=400, detail=exc.to_detail()) from exc
        except PlanQueueFull as exc:
            raise HTTPException(status_code=503, detail={"message": str(exc)}) from exc
        return accepted.model_dump(by_alias=True)

    @app.get("/api/plans")
    async def list_plans(
        user_id: Optional[str] = Query(None),
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        status: Optional[PlanStatus] = Query(None),
        orch: PlanOrchestrator = Depends(_orchestrator),
    ) -> Dict[str, Any]:
        return await asyncio.to_thread(orch.store.list_plans, user_id, page, limit, status)

    @app.get("/api/plans/{plan_id}")
    async def get_plan(
        plan_id: str = Path(..., pattern=PLAN_ID_PATTERN),
        user_id: Optional[str] = Query(None),
        orch: PlanOrchestrator = Depends(_orchestrator),
    ) -> Dict[str, Any]:
        plan = await asyncio.to_thread(orch.store.get_visible_plan, plan_id, user_id)
        if plan is None:
            raise HTTPException(status_code=404, detail={"message": "Travel plan not found"})
        summary = None
        if plan["status"] == "completed":
            plan["views"] = await asyncio.to_thread(orch.store.increment_views, plan_id)
            summary = plan_summary(plan)
        return {"plan": plan, "summary": summary}

    @app.patch("/api/plans/{plan_id}")
    async def update_visibility(
        update: VisibilityUpdate,
        plan_id: str = Path(..., pattern=PLAN_ID_PATTERN),
        user_id: Optional[str] = Query(None),
        orch: PlanOrchestrator = Depends(_orchestrator),
    ) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(orch.store.set_visibility, plan_id, user_id, update.is_public)
        except PlanNotFound as exc:
            raise HTTPException(status_code=404, detail={"message": "Travel plan not found"}) from exc
        except PlanNotCompleted as exc:
            raise HTTPException(status_code=400, detail={"message": str(exc)}) from exc

    @app.post("/api/plans/{plan_id}/rating")
    async def rate_plan(
        rating: RatingRequest,
        plan_id: str = Path(..., pattern=PLAN_ID_PATTERN),
        user_id: Optional[str] = Query(None),
        orch: PlanOrchestrator = Depends(_orchestrator),
    ) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(
                orch.store.rate_plan, plan_id, user_id, rating.score, rating.feedback
            )
        except PlanNotFound as exc:
            raise HTTPException(status_code=404, detail={"message": "Travel plan not found"}) from exc
        except PlanNotCompleted as exc:
            raise HTTPException(status_code=400, detail={"message": str(exc)}) from exc

    @app.delete("/api/plans/{plan_id}")
    async def delete_plan(
        plan_id: str = Path(..., pattern=PLAN_ID_PATTERN),
        user_id: Optional[str] = Query(None),
        orch: PlanOrchestrator = Depends(_orchestrator),
    ) -> Dict[str, Any]:
        try:
            await asyncio.to_thread(orch.store.delete_plan, plan_id, user_id)
        except PlanNotFound as exc:
            raise HTTPException(status_code=404, detail={"message": "Travel plan not found"}) from exc
        return {"planId": plan_id, "deleted": True}

    # ---------- destinations ----------
    @app.get("/api/destinations/popular")
    async def popular_destinations(
        limit: int = Query(10, ge=1, le=50),
        orch: PlanOrchestrator = Depends(_orchestrator),
    ) -> Dict[str, Any]:
        destinations = await asyncio.to_thread(orch.store.popular_destinations, limit)
        return {"destinations": destinations}

    @app.get("/api/destinations/visa/{country}")
    async def visa_requirements(country: str, orch: PlanOrchestrator = Depends(_orchestrator)) -> Dict[str, Any]:
        resolved = orch.gate.resolve_country(country)
        target = resolved if resolved != "Unknown" else country.strip()
        return {"country": target, **orch.gate.visa_requirements(target)}

    @app.get("/api/destinations/{destination}/verify")
    async def verify_destination(destination: str, orch: PlanOrchestrator = Depends(_orchestrator)) -> Dict[str, Any]:
        return orch.gate.verify(destination).model_dump(by_alias=True)

    @app.get("/api/destinations/{destination}/alternatives")
    async def destination_alternatives(
        destination: str, orch: PlanOrchestrator = Depends(_orchestrator)
    ) -> Dict[str, Any]:
        alternatives = orch.gate.safe_alternatives(destination)
        return {
            "destination": destination,
            "alternatives": [alt.model_dump(by_alias=True) for alt in alternatives],
        }

    @app.get("/api/destinations/{destination}/recommendation")
    async def destination_recommendation(
        destination: str, orch: PlanOrchestrator = Depends(_orchestrator)
    ) -> Dict[str, Any]:
        return {"destination": destination, **orch.gate.is_recommended(destination)}

    # ---------- monitoring ----------
    @app.get("/api/monitoring/metrics")
    async def metrics(orch: PlanOrchestrator = Depends(_orchestrator)) -> Dict[str, Any]:
        return orch.metrics.snapshot()

    @app.get("/health")
    async def health(orch: PlanOrchestrator = Depends(_orchestrator)) -> Dict[str, Any]:
        return {"status": "ok", "workersRunning": orch.running}

    return app


app = create_app()
