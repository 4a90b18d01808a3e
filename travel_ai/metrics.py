"""In-process counters for plan generation, exposed by the monitoring endpoint."""
from __future__ import annotations

import logging
import os
import threading
from collections import defaultdict
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRAVEL_AI_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


class _Summary:
    __slots__ = ("count", "total", "minimum", "maximum")

    def __init__(self) -> None:
        self.count = 0
        self.total = 0.0
        self.minimum: Optional[float] = None
        self.maximum: Optional[float] = None

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.minimum = value if self.minimum is None else min(self.minimum, value)
        self.maximum = value if self.maximum is None else max(self.maximum, value)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "sum": round(self.total, 3),
            "avg": round(self.total / self.count, 3) if self.count else None,
            "min": self.minimum,
            "max": self.maximum,
        }


class PlanMetrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._plans: Dict[tuple, int] = defaultdict(int)
            self._rejections: Dict[str, int] = defaultdict(int)
            self._validations: Dict[tuple, int] = defaultdict(int)
            self._errors: Dict[tuple, int] = defaultdict(int)
            self._durations: Dict[str, _Summary] = defaultdict(_Summary)
            self._costs: Dict[str, _Summary] = defaultdict(_Summary)
            self._outliers = 0
            self._credits = 0

    def record_accepted(self, country: str, travel_style: str) -> None:
        with self._lock:
            self._plans[("accepted", country, travel_style)] += 1
        logger.debug("metric plan accepted country=%s style=%s", country, travel_style)

    def record_rejected(self, country: str) -> None:
        with self._lock:
            self._rejections[country] += 1
        logger.info("metric plan rejected country=%s", country)

    def record_generation(
        self,
        status: str,
        country: str,
        travel_style: str,
        duration_seconds: float,
        best_cost: Optional[float] = None,
        credits: int = 0,
    ) -> None:
        with self._lock:
            self._plans[(status, country, travel_style)] += 1
            self._durations[status].observe(duration_seconds)
            if best_cost is not None:
                self._costs[country].observe(best_cost)
            self._credits += credits
        logger.info(
            "metric plan %s country=%s style=%s duration=%.2fs best_cost=%s",
            status,
            country,
            travel_style,
            duration_seconds,
            best_cost,
        )

    def record_validation(self, is_valid: bool, outlier_count: int) -> None:
        with self._lock:
            self._validations[(is_valid, outlier_count > 0)] += 1
            self._outliers += outlier_count
        logger.debug("metric price validation valid=%s outliers=%d", is_valid, outlier_count)

    def record_error(self, error_type: str, service: str, severity: str = "error") -> None:
        with self._lock:
            self._errors[(error_type, service, severity)] += 1
        logger.info("metric error type=%s service=%s severity=%s", error_type, service, severity)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            plans: List[Dict[str, Any]] = [
                {"status": status, "country": country, "travelStyle": style, "count": count}
                for (status, country, style), count in sorted(self._plans.items())
            ]
            return {
                "plans": plans,
                "rejections": dict(self._rejections),
                "generationSeconds": {status: summary.as_dict() for status, summary in self._durations.items()},
                "bestRouteCost": {country: summary.as_dict() for country, summary in self._costs.items()},
                "priceValidation": [
                    {"isValid": valid, "hasOutliers": has_outliers, "count": count}
                    for (valid, has_outliers), count in self._validations.items()
                ],
                "outliersTotal": self._outliers,
                "creditsUsed": self._credits,
                "errors": [
                    {"type": error_type, "service": service, "severity": severity, "count": count}
                    for (error_type, service, severity), count in sorted(self._errors.items())
                ],
            }
