"""Exception taxonomy shared by the planning pipeline."""
from __future__ import annotations

from typing import Any, Dict, List, Sequence


class TravelAIError(Exception):
    """Base class for every error raised by the travel_ai package."""


class RejectedDestination(TravelAIError):
    """The safety gate refused the destination; no plan record is created."""

    def __init__(self, verdict: Any, alternatives: Sequence[Any] | None = None):
        self.verdict = verdict
        self.alternatives = list(alternatives or [])
        super().__init__(f"Destination not accessible or safe for travel: {getattr(verdict, 'country', 'Unknown')}")

    def to_detail(self) -> Dict[str, Any]:
        return {
            "message": "Destination not accessible or safe for travel",
            "isSafe": bool(getattr(self.verdict, "is_safe", False)),
            "advisoryLevel": getattr(self.verdict, "advisory_level", "unknown"),
            "warnings": list(getattr(self.verdict, "warnings", []) or []),
            "safeAlternatives": [
                alt.model_dump(by_alias=True) if hasattr(alt, "model_dump") else alt
                for alt in self.alternatives
            ],
        }


class PlanQueueFull(TravelAIError):
    """The generation queue is saturated; the request was not accepted."""


class PlanNotFound(TravelAIError):
    pass


class PlanNotCompleted(TravelAIError):
    """Visibility and rating changes only apply to completed plans."""


class PersistenceFailure(TravelAIError):
    pass


class CurrencyConversionUnavailable(TravelAIError):
    pass


# ---------- generation failures (terminal for a plan, never retried) ----------
class PlanGenerationError(TravelAIError):
    code = "GENERATION_FAILED"

    def reason(self) -> str:
        return f"{self.code}: {self}"


class InvalidAIResponse(PlanGenerationError):
    code = "INVALID_AI_RESPONSE"


class MalformedRoute(PlanGenerationError):
    code = "MALFORMED_ROUTE"

    def __init__(self, index: int, missing: List[str] | None = None, detail: str | None = None):
        self.index = index
        self.missing = list(missing or [])
        if self.missing:
            message = f"Route {index + 1} missing fields: {', '.join(self.missing)}"
        else:
            message = f"Route {index + 1} is malformed: {detail or 'invalid field types'}"
        super().__init__(message)


class GenerationTimeout(PlanGenerationError):
    code = "GENERATION_TIMEOUT"


class ProviderError(PlanGenerationError):
    code = "PROVIDER_ERROR"


class ProviderQuotaExceeded(ProviderError):
    code = "QUOTA_EXCEEDED"


class ProviderRateLimited(ProviderError):
    code = "RATE_LIMIT_EXCEEDED"


class ProviderContentFiltered(ProviderError):
    code = "CONTENT_FILTERED"


class ProviderGenericError(ProviderError):
    code = "PROVIDER_ERROR"
