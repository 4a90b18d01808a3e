from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

Currency = Literal["USD", "EUR", "TRY", "GBP"]
TravelStyle = Literal["budget", "mid-range", "luxury"]
Interest = Literal["culture", "food", "beaches", "adventure", "nightlife", "nature", "history", "shopping"]
Language = Literal["en", "tr"]
AdvisoryLevel = Literal["none", "caution", "do-not-travel", "unknown"]
PlanStatus = Literal["draft", "completed", "failed"]
PipelineStage = Literal["accepted", "generating", "validating", "completed", "failed"]

MIN_BUDGET = 100
MAX_BUDGET = 1_000_000
MAX_TRIP_DAYS = 365


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ------- Request models -------
class PlanRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    destination: str = Field(..., min_length=2, max_length=100)
    start_date: date = Field(..., validation_alias=AliasChoices("start_date", "startDate"))
    end_date: date = Field(..., validation_alias=AliasChoices("end_date", "endDate"))
    budget: float = Field(..., ge=MIN_BUDGET, le=MAX_BUDGET)
    currency: Currency = "USD"
    travelers: int = Field(1, ge=1, le=20, validation_alias=AliasChoices("travelers", "travelerCount"))
    travel_style: TravelStyle = Field(
        "mid-range", validation_alias=AliasChoices("travel_style", "travelStyle")
    )
    interests: List[Interest] = Field(default_factory=list)
    language: Language = "en"

    @model_validator(mode="before")
    @classmethod
    def _lift_preferences(cls, data: Any) -> Any:
        # Older clients nest style/interests under "preferences".
        if isinstance(data, dict) and isinstance(data.get("preferences"), dict):
            data = dict(data)
            prefs = data.pop("preferences")
            data.setdefault("travelStyle", prefs.get("travelStyle", prefs.get("travel_style", "mid-range")))
            data.setdefault("interests", prefs.get("interests", []))
        return data

    @field_validator("destination")
    @classmethod
    def _strip_destination(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Destination must be between 2 and 100 characters")
        return value

    @field_validator("interests")
    @classmethod
    def _dedupe_interests(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def _check_dates(self) -> "PlanRequest":
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        if (self.end_date - self.start_date).days > MAX_TRIP_DAYS:
            raise ValueError(f"Trip duration cannot exceed {MAX_TRIP_DAYS} days")
        return self

    @property
    def duration(self) -> int:
        return (self.end_date - self.start_date).days

    def to_document(self) -> Dict[str, Any]:
        """JSON-ready camelCase form, as stored on the plan record."""
        return {
            "destination": self.destination,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "budget": self.budget,
            "currency": self.currency,
            "travelers": self.travelers,
            "preferences": {"travelStyle": self.travel_style, "interests": list(self.interests)},
            "language": self.language,
        }


# ------- Destination verdict -------
class Accessibility(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_airport: bool = Field(False, alias="hasAirport")
    transport_options: List[str] = Field(default_factory=list, alias="transportOptions")
    visa_free: bool = Field(False, alias="visaFree")


class DestinationVerdict(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_accessible: bool = Field(True, alias="isAccessible")
    is_safe: bool = Field(True, alias="isSafe")
    country: str = "Unknown"
    city: Optional[str] = None
    visa_required: bool = Field(False, alias="visaRequired")
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    advisory_level: AdvisoryLevel = Field("none", alias="advisoryLevel")
    accessibility: Accessibility = Field(default_factory=Accessibility)


class SafeAlternative(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    destination: str
    reason: str
    visa_required: bool = Field(True, alias="visaRequired")


# ------- Generated plan (AI wire format uses camelCase) -------
class CostBreakdown(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    flights: float = Field(0.0, validation_alias=AliasChoices("flights", "flightCost"))
    hotels: float = Field(0.0, validation_alias=AliasChoices("hotels", "hotelCost"))
    activities: float = Field(0.0, validation_alias=AliasChoices("activities", "activityCost"))

    @property
    def total(self) -> float:
        return self.flights + self.hotels + self.activities


class DayPlan(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    day: int
    location: str = ""
    activities: List[str] = Field(default_factory=list)
    accommodation: Optional[str] = None
    estimated_cost: Optional[float] = Field(None, alias="estimatedCost")


class BookingLinks(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    flights: Optional[str] = Field(None, validation_alias=AliasChoices("flights", "flightSearchUrl"))
    hotels: Optional[str] = Field(None, validation_alias=AliasChoices("hotels", "hotelSearchUrl"))


class RouteOption(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    total_cost: float = Field(..., alias="totalCost")
    breakdown: CostBreakdown
    daily_plan: List[DayPlan] = Field(default_factory=list, alias="dailyPlan")
    booking_links: BookingLinks = Field(default_factory=BookingLinks, alias="bookingLinks")


class AlternativeSuggestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    destination: str
    reason: str = ""
    estimated_cost: Optional[float] = Field(None, alias="estimatedCost")
    highlights: List[str] = Field(default_factory=list)


class TimingAdvice(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    best_season: Optional[str] = Field(
        None, alias="bestTimeToVisit", validation_alias=AliasChoices("bestTimeToVisit", "bestSeason")
    )
    weather_note: Optional[str] = Field(
        None, alias="weatherInfo", validation_alias=AliasChoices("weatherInfo", "weatherNote")
    )
    seasonal_tips: List[str] = Field(default_factory=list, alias="seasonalTips")


class GenerationMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    generated_at: datetime = Field(default_factory=_utcnow, alias="generatedAt")
    credits_used: int = Field(1, alias="creditsUsed")
    response_time: float = Field(0.0, alias="responseTime")
    model: str = ""
    prompt_version: str = Field("1.0", alias="promptVersion")
    prompt_tokens: Optional[int] = Field(None, alias="promptTokens")
    completion_tokens: Optional[int] = Field(None, alias="completionTokens")


class GeneratedPlan(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    routes: List[RouteOption] = Field(..., min_length=1, alias="mainRoutes")
    alternatives: List[AlternativeSuggestion] = Field(default_factory=list, alias="surpriseAlternatives")
    local_tips: List[str] = Field(default_factory=list, alias="localTips")
    timing_advice: TimingAdvice = Field(default_factory=TimingAdvice, alias="timingAdvice")
    metadata: Optional[GenerationMetadata] = None

    def cheapest_route(self) -> RouteOption:
        return min(self.routes, key=lambda route: route.total_cost)


# ------- Price validation report -------
class ComponentCheck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(True, alias="isValid")
    value: float = 0.0
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class RouteCheck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(True, alias="isValid")
    flights: ComponentCheck = Field(default_factory=ComponentCheck)
    hotels: ComponentCheck = Field(default_factory=ComponentCheck)
    activities: ComponentCheck = Field(default_factory=ComponentCheck)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class PriceOutlier(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    route_id: int = Field(..., alias="routeId")
    category: Literal["totalCost", "flightCost", "hotelCost", "activityCost"]
    value: float
    deviation_score: float = Field(..., alias="deviationScore")
    direction: Literal["above", "below"]


class ValidationReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(True, alias="isValid")
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    reference_currency: str = Field("USD", alias="referenceCurrency")
    reference_budget: float = Field(0.0, alias="referenceBudget")
    conversion_rate: float = Field(1.0, alias="conversionRate")
    budget_utilization: Optional[float] = Field(None, alias="budgetUtilization")
    per_route_checks: Dict[int, RouteCheck] = Field(default_factory=dict, alias="perRouteChecks")
    outliers: List[PriceOutlier] = Field(default_factory=list)
    validated_at: datetime = Field(default_factory=_utcnow, alias="validatedAt")

    def summary(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "warningCount": len(self.warnings),
            "errorCount": len(self.errors),
            "hasOutliers": bool(self.outliers),
            "outliers": [outlier.model_dump(by_alias=True) for outlier in self.outliers],
            "budgetUtilization": self.budget_utilization,
            "referenceCurrency": self.reference_currency,
            "validatedAt": self.validated_at.isoformat(),
        }


# ------- Response models -------
class PlanAccepted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_id: str = Field(..., alias="planId")
    status: Literal["processing"] = "processing"
    estimated_seconds: int = Field(..., alias="estimatedSeconds")
    message: str = "Travel plan generation started"


class VisibilityUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_public: bool = Field(..., alias="isPublic")


class RatingRequest(BaseModel):
    score: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=500)
