from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import secrets
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from travel_ai.schemas import MAX_TRIP_DAYS, PlanRequest

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRAVEL_AI_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

BASE_PROCESSING_SECONDS = 10
MAX_PROCESSING_SECONDS = 45
COMPLEX_DESTINATION_KEYWORDS = ("asia", "africa", "multiple", "tour")


@dataclass(frozen=True)
class NormalizedRequest:
    duration: int
    estimated_seconds: int
    fingerprint: str
    season: str


def trip_duration(start: date, end: date) -> int:
    """Whole days between two calendar dates."""
    return abs((end - start).days)


def estimate_processing_seconds(destination: str, duration: int, travelers: int) -> int:
    seconds = BASE_PROCESSING_SECONDS
    seconds += min(duration * 2, 20)
    seconds += min(travelers * 2, 10)
    lowered = (destination or "").lower()
    if any(keyword in lowered for keyword in COMPLEX_DESTINATION_KEYWORDS):
        seconds += 10
    return min(seconds, MAX_PROCESSING_SECONDS)


def _normalise_destination(destination: str) -> str:
    return re.sub(r"\s+", " ", (destination or "").strip().lower())


def cache_fingerprint(request: PlanRequest) -> str:
    """Deterministic SHA-256 over the request fields that affect the generated plan."""
    key_data = {
        "destination": _normalise_destination(request.destination),
        "startDate": request.start_date.isoformat(),
        "endDate": request.end_date.isoformat(),
        "budget": round(float(request.budget), 2),
        "currency": request.currency,
        "travelers": request.travelers,
        "travelStyle": request.travel_style,
        "interests": sorted(request.interests),
    }
    canonical = json.dumps(key_data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def validate_date_range(start: date, end: date, today: Optional[date] = None) -> List[str]:
    today = today or date.today()
    errors: List[str] = []
    if start < today:
        errors.append("Start date cannot be in the past")
    if end <= start:
        errors.append("End date must be after start date")
    duration = trip_duration(start, end)
    if duration > MAX_TRIP_DAYS:
        errors.append(f"Trip duration cannot exceed {MAX_TRIP_DAYS} days")
    if duration < 1:
        errors.append("Trip must be at least 1 day")
    return errors


def season_for(day: date) -> str:
    if 3 <= day.month <= 5:
        return "spring"
    if 6 <= day.month <= 8:
        return "summer"
    if 9 <= day.month <= 11:
        return "autumn"
    return "winter"


def generate_plan_id() -> str:
    # Millisecond timestamp in hex plus 48 random bits; ids are never reused.
    return f"plan_{int(time.time() * 1000):x}_{secrets.token_hex(6)}"


def normalize_request(request: PlanRequest) -> NormalizedRequest:
    duration = trip_duration(request.start_date, request.end_date)
    normalized = NormalizedRequest(
        duration=duration,
        estimated_seconds=estimate_processing_seconds(request.destination, duration, request.travelers),
        fingerprint=cache_fingerprint(request),
        season=season_for(request.start_date),
    )
    logger.debug(
        "Normalized request for %s: duration=%d eta=%ds season=%s",
        request.destination,
        normalized.duration,
        normalized.estimated_seconds,
        normalized.season,
    )
    return normalized


def plan_summary(plan: Mapping[str, Any]) -> Dict[str, Any] | str:
    """Compact read-path summary of a stored plan (as returned by ``PlanStore.get_plan``)."""
    routes = plan.get("mainRoutes") or []
    if not routes:
        return "No routes available"

    request = plan.get("request") or {}
    best = min(routes, key=lambda route: route.get("totalCost", 0))
    duration = trip_duration(
        date.fromisoformat(str(request["startDate"])),
        date.fromisoformat(str(request["endDate"])),
    )
    return {
        "destination": request.get("destination"),
        "duration": f"{duration} days",
        "bestPrice": f"{best.get('totalCost', 0):,.0f} {request.get('currency', 'USD')}",
        "routeCount": len(routes),
        "alternativeCount": len(plan.get("surpriseAlternatives") or []),
    }
