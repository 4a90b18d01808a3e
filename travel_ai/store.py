"""
Plan persistence - SQLAlchemy over SQLite by default
One session per call, so the store is safe to use from worker threads.
"""
from __future__ import annotations

import logging
import math
import os
import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, create_engine, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from travel_ai.config import settings
from travel_ai.errors import PersistenceFailure, PlanNotCompleted, PlanNotFound

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRAVEL_AI_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

Base = declarative_base()

TERMINAL_STATUSES = {"completed", "failed"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TravelPlanRecord(Base):
    __tablename__ = "travel_plans"

    plan_id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=True)
    destination = Column(String, index=True)
    status = Column(String, default="draft", index=True)  # draft, completed, failed
    stage = Column(String, default="accepted")  # accepted, generating, validating, completed, failed
    fingerprint = Column(String, index=True)
    request = Column(JSON, default=dict)
    main_routes = Column(JSON, default=list)
    surprise_alternatives = Column(JSON, default=list)
    local_tips = Column(JSON, default=list)
    timing_advice = Column(JSON, default=dict)
    plan_metadata = Column("metadata", JSON, default=dict)
    error = Column(Text, nullable=True)
    error_code = Column(String, nullable=True)
    is_public = Column(Boolean, default=False)
    views = Column(Integer, default=0)
    rating_score = Column(Integer, nullable=True)
    rating_feedback = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


# camelCase patch keys accepted by update_plan
_PATCH_COLUMNS = {
    "status": "status",
    "stage": "stage",
    "mainRoutes": "main_routes",
    "surpriseAlternatives": "surprise_alternatives",
    "localTips": "local_tips",
    "timingAdvice": "timing_advice",
    "metadata": "plan_metadata",
    "error": "error",
    "errorCode": "error_code",
}


def make_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same in-memory database.
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _to_dict(record: TravelPlanRecord) -> Dict[str, Any]:
    rating = None
    if record.rating_score is not None:
        rating = {"score": record.rating_score, "feedback": record.rating_feedback or ""}
    return {
        "planId": record.plan_id,
        "userId": record.user_id,
        "status": record.status,
        "stage": record.stage,
        "request": record.request or {},
        "mainRoutes": record.main_routes or [],
        "surpriseAlternatives": record.surprise_alternatives or [],
        "localTips": record.local_tips or [],
        "timingAdvice": record.timing_advice or {},
        "metadata": record.plan_metadata or {},
        "error": record.error,
        "errorCode": record.error_code,
        "isPublic": bool(record.is_public),
        "views": record.views or 0,
        "rating": rating,
        "createdAt": _iso(record.created_at),
        "updatedAt": _iso(record.updated_at),
    }


def _to_list_item(record: TravelPlanRecord) -> Dict[str, Any]:
    request = record.request or {}
    routes = record.main_routes or []
    return {
        "planId": record.plan_id,
        "destination": request.get("destination"),
        "dates": {"start": request.get("startDate"), "end": request.get("endDate")},
        "budget": {"amount": request.get("budget"), "currency": request.get("currency")},
        "bestPrice": min((route.get("totalCost", 0) for route in routes), default=None),
        "status": record.status,
        "createdAt": _iso(record.created_at),
        "views": record.views or 0,
        "rating": record.rating_score,
    }


class PlanStore:
    def __init__(self, database_url: Optional[str] = None, *, engine: Optional[Engine] = None):
        self.engine = engine if engine is not None else make_engine(database_url or settings.database_url)
        self._Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        # an in-memory database is one shared connection, so sessions take turns
        self._lock = threading.RLock() if isinstance(self.engine.pool, StaticPool) else None
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._lock if self._lock is not None else nullcontext():
            db = self._Session()
            try:
                yield db
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise PersistenceFailure(str(exc)) from exc
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    @staticmethod
    def _require(db: Session, plan_id: str) -> TravelPlanRecord:
        record = db.get(TravelPlanRecord, plan_id)
        if record is None:
            raise PlanNotFound(plan_id)
        return record

    # ---------- pipeline writes ----------
    def create_draft(
        self,
        plan_id: str,
        user_id: Optional[str],
        request: Mapping[str, Any],
        fingerprint: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self._session() as db:
            record = TravelPlanRecord(
                plan_id=plan_id,
                user_id=user_id,
                destination=request.get("destination"),
                status="draft",
                stage="accepted",
                fingerprint=fingerprint,
                request=dict(request),
                main_routes=[],
                surprise_alternatives=[],
                local_tips=[],
                timing_advice={},
                plan_metadata={},
            )
            db.add(record)
            db.flush()
            logger.info("Created draft plan %s for %s", plan_id, record.destination)
            return _to_dict(record)

    def update_plan(self, plan_id: str, patch: Mapping[str, Any]) -> bool:
        """Apply a camelCase patch. Returns False when the plan is already terminal."""
        unknown = set(patch) - set(_PATCH_COLUMNS)
        if unknown:
            raise ValueError(f"Unsupported plan fields: {', '.join(sorted(unknown))}")
        with self._session() as db:
            record = self._require(db, plan_id)
            if record.status in TERMINAL_STATUSES:
                logger.warning("Ignoring update to %s plan %s", record.status, plan_id)
                return False
            for key, value in patch.items():
                setattr(record, _PATCH_COLUMNS[key], value)
            return True

    def set_stage(self, plan_id: str, stage: str) -> bool:
        return self.update_plan(plan_id, {"stage": stage})

    def mark_failed(self, plan_id: str, reason: str, code: Optional[str] = None) -> bool:
        with self._session() as db:
            record = self._require(db, plan_id)
            if record.status in TERMINAL_STATUSES:
                logger.warning("Plan %s already %s; not marking failed", plan_id, record.status)
                return False
            record.status = "failed"
            record.stage = "failed"
            record.error = reason
            record.error_code = code
            metadata = dict(record.plan_metadata or {})
            metadata["error"] = reason
            if code:
                metadata["errorCode"] = code
            record.plan_metadata = metadata
            return True

    def fail_stale_drafts(self, reason: str, idle_seconds: float = 0.0) -> int:
        """Fail drafts untouched for ``idle_seconds``; fresher drafts may belong to a live process."""
        cutoff = _utcnow() - timedelta(seconds=idle_seconds)
        with self._session() as db:
            stale = (
                db.query(TravelPlanRecord)
                .filter(TravelPlanRecord.status == "draft", TravelPlanRecord.updated_at <= cutoff)
                .all()
            )
            for record in stale:
                record.status = "failed"
                record.stage = "failed"
                record.error = reason
                record.error_code = "INTERRUPTED"
                record.plan_metadata = {**(record.plan_metadata or {}), "error": reason}
            if stale:
                logger.warning("Marked %d stale draft plan(s) as failed", len(stale))
            return len(stale)

    # ---------- read path ----------
    def get_plan(self, plan_id: str) -> Optional[Dict[str, Any]]:
        with self._session() as db:
            record = db.get(TravelPlanRecord, plan_id)
            return _to_dict(record) if record is not None else None

    def get_visible_plan(self, plan_id: str, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """The plan if ``user_id`` owns it or it is public; anonymous callers only see public plans."""
        with self._session() as db:
            record = db.get(TravelPlanRecord, plan_id)
            if record is None:
                return None
            is_owner = user_id is not None and record.user_id == user_id
            if not is_owner and not record.is_public:
                return None
            return _to_dict(record)

    def list_plans(
        self,
        user_id: Optional[str],
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        if user_id is None:
            return {
                "plans": [],
                "pagination": {
                    "currentPage": page,
                    "totalPages": 0,
                    "totalPlans": 0,
                    "hasNext": False,
                    "hasPrev": page > 1,
                },
            }
        with self._session() as db:
            query = db.query(TravelPlanRecord).filter(TravelPlanRecord.user_id == user_id)
            if status:
                query = query.filter(TravelPlanRecord.status == status)
            total = query.count()
            records = (
                query.order_by(TravelPlanRecord.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            total_pages = math.ceil(total / limit) if total else 0
            return {
                "plans": [_to_list_item(record) for record in records],
                "pagination": {
                    "currentPage": page,
                    "totalPages": total_pages,
                    "totalPlans": total,
                    "hasNext": page < total_pages,
                    "hasPrev": page > 1,
                },
            }

    def increment_views(self, plan_id: str) -> int:
        with self._session() as db:
            record = self._require(db, plan_id)
            record.views = (record.views or 0) + 1
            return record.views

    # ---------- owner actions ----------
    def _owned(self, db: Session, plan_id: str, user_id: Optional[str]) -> TravelPlanRecord:
        record = self._require(db, plan_id)
        if user_id is None or record.user_id != user_id:
            raise PlanNotFound(plan_id)
        return record

    def set_visibility(self, plan_id: str, user_id: Optional[str], is_public: bool) -> Dict[str, Any]:
        with self._session() as db:
            record = self._owned(db, plan_id, user_id)
            if record.status != "completed":
                raise PlanNotCompleted("Only completed plans can be shared")
            record.is_public = bool(is_public)
            return {"planId": record.plan_id, "isPublic": record.is_public}

    def rate_plan(self, plan_id: str, user_id: Optional[str], score: int, feedback: Optional[str] = None) -> Dict[str, Any]:
        if not 1 <= score <= 5:
            raise ValueError("Rating score must be between 1 and 5")
        if feedback and len(feedback) > 500:
            raise ValueError("Feedback cannot exceed 500 characters")
        with self._session() as db:
            record = self._owned(db, plan_id, user_id)
            if record.status != "completed":
                raise PlanNotCompleted("Only completed plans can be rated")
            record.rating_score = score
            record.rating_feedback = feedback or ""
            return {"planId": record.plan_id, "rating": {"score": score, "feedback": feedback or ""}}

    def delete_plan(self, plan_id: str, user_id: Optional[str]) -> bool:
        with self._session() as db:
            record = self._owned(db, plan_id, user_id)
            db.delete(record)
            logger.info("Deleted plan %s", plan_id)
            return True

    def popular_destinations(self, limit: int = 10) -> List[Dict[str, Any]]:
        with self._session() as db:
            count = func.count(TravelPlanRecord.plan_id)
            rows = (
                db.query(
                    TravelPlanRecord.destination,
                    count.label("plan_count"),
                    func.avg(TravelPlanRecord.rating_score).label("avg_rating"),
                )
                .filter(TravelPlanRecord.status == "completed")
                .group_by(TravelPlanRecord.destination)
                .order_by(count.desc())
                .limit(limit)
                .all()
            )
            return [
                {
                    "destination": row.destination,
                    "count": row.plan_count,
                    "avgRating": round(float(row.avg_rating), 2) if row.avg_rating is not None else None,
                }
                for row in rows
            ]
