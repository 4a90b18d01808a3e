"""Sanity checks for AI-generated route prices.

Every finding here is advisory: a plan with ``is_valid=False`` is still
delivered, it just carries the errors and warnings alongside it.
"""
from __future__ import annotations

import logging
import math
import os
from statistics import fmean, pstdev
from typing import Dict, List, Optional, Tuple

from travel_ai.agents.destination_gate import DestinationGate
from travel_ai.config import settings
from travel_ai.schemas import (
    ComponentCheck,
    GeneratedPlan,
    PlanRequest,
    PriceOutlier,
    RouteCheck,
    RouteOption,
    ValidationReport,
)
from travel_ai.tools.currency import CurrencyConverter

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRAVEL_AI_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

Band = Tuple[float, float]

# Price bands in USD before country/style scaling.
PRICE_BANDS: Dict[str, Dict[str, Band]] = {
    "flights": {"domestic": (50, 1000), "international": (200, 5000), "luxury": (1000, 15000)},
    "hotels": {"budget": (15, 100), "midRange": (50, 300), "luxury": (200, 2000)},
    "activities": {"perDay": (10, 500), "perActivity": (5, 300)},
    "food": {"perDay": (10, 200), "budget": (10, 50), "midRange": (30, 100), "luxury": (80, 200)},
    "transport": {"perDay": (5, 100), "perKm": (0.1, 5)},
}

COUNTRY_MULTIPLIERS: Dict[str, float] = {
    # developed
    "United States": 1.2,
    "Canada": 1.1,
    "United Kingdom": 1.15,
    "Germany": 1.1,
    "France": 1.1,
    "Italy": 1.0,
    "Spain": 0.9,
    "Japan": 1.3,
    "Australia": 1.2,
    "Netherlands": 1.1,
    "Switzerland": 1.5,
    # emerging
    "Turkey": 0.6,
    "Thailand": 0.4,
    "Vietnam": 0.3,
    "India": 0.3,
    "Mexico": 0.5,
    "Egypt": 0.4,
    "Morocco": 0.4,
    "Indonesia": 0.4,
    "Philippines": 0.4,
    "Malaysia": 0.5,
    "Brazil": 0.6,
}
DEFAULT_COUNTRY_MULTIPLIER = 0.8

STYLE_MULTIPLIERS: Dict[str, float] = {"budget": 0.7, "mid-range": 1.0, "luxury": 1.8}
_HOTEL_BAND_FOR_STYLE = {"budget": "budget", "mid-range": "midRange", "luxury": "luxury"}

OUTLIER_THRESHOLD = 2.0
OUTLIER_CATEGORIES = ("totalCost", "flightCost", "hotelCost", "activityCost")


def scaled_bands(country_multiplier: float, style_multiplier: float) -> Dict[str, Dict[str, Band]]:
    factor = country_multiplier * style_multiplier
    return {
        category: {name: (low * factor, high * factor) for name, (low, high) in sub.items()}
        for category, sub in PRICE_BANDS.items()
    }


def _fmt(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


class _ConvertedRoute:
    __slots__ = ("route", "total", "flights", "hotels", "activities")

    def __init__(self, route: RouteOption, rate: float):
        self.route = route
        self.total = round(route.total_cost * rate, 2)
        self.flights = round(route.breakdown.flights * rate, 2)
        self.hotels = round(route.breakdown.hotels * rate, 2)
        self.activities = round(route.breakdown.activities * rate, 2)

    def category(self, name: str) -> float:
        return {
            "totalCost": self.total,
            "flightCost": self.flights,
            "hotelCost": self.hotels,
            "activityCost": self.activities,
        }[name]


class PriceValidator:
    def __init__(
        self,
        converter: Optional[CurrencyConverter] = None,
        gate: Optional[DestinationGate] = None,
        *,
        reference_currency: Optional[str] = None,
    ):
        self.converter = converter if converter is not None else CurrencyConverter()
        self.gate = gate if gate is not None else DestinationGate()
        self.reference_currency = (reference_currency or settings.reference_currency).upper()

    async def _reference_rate(self, request: PlanRequest, report: ValidationReport) -> float:
        if request.currency == self.reference_currency:
            return 1.0
        try:
            result = await self.converter.convert(request.budget, request.currency, self.reference_currency)
        except Exception as exc:
            logger.warning(
                "Currency conversion %s->%s failed; validating unconverted values: %s",
                request.currency,
                self.reference_currency,
                exc,
            )
            report.warnings.append(
                f"Currency conversion from {request.currency} to {self.reference_currency} unavailable; "
                "prices were checked without conversion"
            )
            return 1.0
        if result.is_fallback:
            report.warnings.append(
                f"Exchange rate {request.currency}->{self.reference_currency} is an offline estimate; "
                "price checks are approximate"
            )
        return result.rate

    async def validate(self, plan: GeneratedPlan, request: PlanRequest) -> ValidationReport:
        report = ValidationReport(reference_currency=self.reference_currency)
        rate = await self._reference_rate(request, report)
        report.conversion_rate = rate
        report.reference_budget = round(request.budget * rate, 2)

        duration = max(request.duration, 1)
        travelers = max(request.travelers, 1)
        country = self.gate.resolve_country(request.destination)
        country_multiplier = COUNTRY_MULTIPLIERS.get(country, DEFAULT_COUNTRY_MULTIPLIER)
        style_multiplier = STYLE_MULTIPLIERS.get(request.travel_style, 1.0)
        bands = scaled_bands(country_multiplier, style_multiplier)

        converted = [_ConvertedRoute(route, rate) for route in plan.routes]
        for item in converted:
            check = self._check_route(item, request, bands, report.reference_budget, duration, travelers)
            report.per_route_checks[item.route.id] = check
            report.warnings.extend(check.warnings)
            if not check.is_valid:
                report.is_valid = False
                report.errors.extend(check.errors)

        self._check_feasibility(converted, report)
        report.outliers = detect_outliers(converted)
        if report.outliers:
            report.warnings.append(f"Found {len(report.outliers)} price outliers that may need verification")

        logger.info(
            "Price validation for %s (country=%s): valid=%s warnings=%d errors=%d outliers=%d",
            request.destination,
            country,
            report.is_valid,
            len(report.warnings),
            len(report.errors),
            len(report.outliers),
        )
        return report

    def _check_route(
        self,
        item: _ConvertedRoute,
        request: PlanRequest,
        bands: Dict[str, Dict[str, Band]],
        reference_budget: float,
        duration: int,
        travelers: int,
    ) -> RouteCheck:
        prefix = f"Route {item.route.id}: "
        style = request.travel_style
        check = RouteCheck()

        # flights, per traveler
        per_person = round(item.flights / travelers, 2)
        low, high = bands["flights"]["international"]
        flights = ComponentCheck(value=per_person)
        if per_person < low:
            flights.warnings.append(f"{prefix}Flight price ({_fmt(per_person)} per person) seems unusually low")
        elif per_person > high:
            flights.errors.append(f"{prefix}Flight price ({_fmt(per_person)} per person) seems unusually high")
            flights.is_valid = False
        elif per_person > high * 0.8:
            flights.warnings.append(f"{prefix}Flight price ({_fmt(per_person)} per person) is quite expensive")
        check.flights = flights

        # hotels, per night against the requested style
        per_night = round(item.hotels / duration, 2)
        low, high = bands["hotels"][_HOTEL_BAND_FOR_STYLE.get(style, "midRange")]
        hotels = ComponentCheck(value=per_night)
        if per_night < low:
            hotels.warnings.append(f"{prefix}Hotel price ({_fmt(per_night)} per night) seems low for {style} category")
        elif per_night > high:
            hotels.errors.append(f"{prefix}Hotel price ({_fmt(per_night)} per night) exceeds {style} category limits")
            hotels.is_valid = False
        elif per_night > high * 0.8:
            hotels.warnings.append(f"{prefix}Hotel price ({_fmt(per_night)} per night) is at the high end for {style}")
        check.hotels = hotels

        # activities, per day (warnings only)
        per_day = round(item.activities / duration, 2)
        low, high = bands["activities"]["perDay"]
        activities = ComponentCheck(value=per_day)
        if per_day > high:
            activities.warnings.append(f"{prefix}Activity cost ({_fmt(per_day)} per day) seems high")
        elif per_day < low:
            activities.warnings.append(
                f"{prefix}Activity cost ({_fmt(per_day)} per day) seems low - consider adding more activities"
            )
        check.activities = activities

        for component in (flights, hotels, activities):
            check.warnings.extend(component.warnings)
            check.errors.extend(component.errors)
            if not component.is_valid:
                check.is_valid = False

        budget_per_person = reference_budget / travelers
        if item.total > budget_per_person * 1.2:
            check.errors.append(f"{prefix}Route total cost ({_fmt(item.total)}) exceeds budget by more than 20%")
            check.is_valid = False
        elif item.total > budget_per_person:
            check.warnings.append(f"{prefix}Route total cost ({_fmt(item.total)}) slightly exceeds budget")

        floor = (
            bands["flights"]["international"][0]
            + bands["hotels"]["budget"][0] * duration
            + bands["activities"]["perDay"][0] * duration
        ) * travelers
        if item.total < floor * 0.5:
            check.warnings.append(f"{prefix}Route cost seems unusually low, please verify pricing accuracy")

        breakdown_total = round(item.flights + item.hotels + item.activities, 2)
        if abs(breakdown_total - item.total) > max(1.0, item.total * 0.01):
            check.warnings.append(
                f"{prefix}Cost breakdown ({_fmt(breakdown_total)}) does not add up to the total ({_fmt(item.total)})"
            )

        # a 6-night trip spans 7 calendar days
        bad_days = sorted({day.day for day in item.route.daily_plan if not 1 <= day.day <= duration + 1})
        if bad_days:
            check.warnings.append(
                f"{prefix}Daily plan has days outside the trip dates: {', '.join(str(d) for d in bad_days)}"
            )

        return check

    @staticmethod
    def _check_feasibility(converted: List[_ConvertedRoute], report: ValidationReport) -> None:
        if not converted or report.reference_budget <= 0:
            return
        cheapest = min(item.total for item in converted)
        utilization = cheapest / report.reference_budget * 100
        report.budget_utilization = round(utilization, 1)
        if utilization > 100:
            report.warnings.append(f"Even the cheapest option exceeds budget by {utilization - 100:.1f}%")
        elif utilization >= 90:
            report.warnings.append(f"Budget utilization is {utilization:.1f}% - very tight budget")
        elif utilization < 60:
            report.warnings.append(f"Budget utilization is only {utilization:.1f}% - consider upgrading experiences")


def detect_outliers(converted: List[_ConvertedRoute]) -> List[PriceOutlier]:
    """Flag routes more than two standard deviations from their sibling routes.

    Each route is scored against the mean and population standard deviation
    of the *other* routes in the plan. A sibling set without variance yields
    no outlier.
    """
    if len(converted) < 2:
        return []

    outliers: List[PriceOutlier] = []
    for category in OUTLIER_CATEGORIES:
        values = [item.category(category) for item in converted]
        for index, item in enumerate(converted):
            siblings = values[:index] + values[index + 1:]
            mean = fmean(siblings)
            spread = pstdev(siblings)
            if spread == 0 or math.isnan(spread):
                continue
            score = (values[index] - mean) / spread
            if abs(score) > OUTLIER_THRESHOLD:
                outliers.append(
                    PriceOutlier(
                        route_id=item.route.id,
                        category=category,
                        value=values[index],
                        deviation_score=round(abs(score), 2),
                        direction="above" if score > 0 else "below",
                    )
                )
    return outliers
