# travel_ai/llm.py
import json
import logging
import math
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from openai import AsyncOpenAI, RateLimitError
from pydantic import ValidationError

from travel_ai.config import settings
from travel_ai.errors import (
    InvalidAIResponse,
    MalformedRoute,
    ProviderContentFiltered,
    ProviderError,
    ProviderGenericError,
    ProviderQuotaExceeded,
    ProviderRateLimited,
)
from travel_ai.i18n import (
    DEFAULT_LANGUAGE,
    format_interests,
    format_travel_style,
    is_language_supported,
    translate,
)
from travel_ai.schemas import DestinationVerdict, GeneratedPlan, GenerationMetadata, PlanRequest, RouteOption

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRAVEL_AI_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

PROMPT_VERSION = "1.0"

SYSTEM_PROMPT = """You are a travel-planning agent.
Ground every price in live web search results.
Return ONLY valid JSON inside a single ```json fenced block.
If unsure about a price, give your best current estimate; do not invent booking links.
"""

LANGUAGE_NOTE = {
    "en": "Write all descriptive text in English.",
    "tr": "Tüm açıklamaları Türkçe yaz.",
}

REQUIRED_PLAN_FIELDS = ("mainRoutes", "surpriseAlternatives", "localTips", "timingAdvice")
REQUIRED_ROUTE_FIELDS = ("id", "name", "totalCost", "breakdown", "dailyPlan")

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\r?\n?(.*?)```", re.DOTALL)


@dataclass
class Completion:
    text: str
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None


class CompletionClient(Protocol):
    model: str

    async def complete(self, prompt: str, language: str, grounding_enabled: bool = True) -> Completion:
        ...


# ---------- prompt ----------
def _format_amount(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def _destination_context(verdict: Optional[DestinationVerdict], language: str) -> str:
    if verdict is None or verdict.country == "Unknown":
        return "-"
    bits: List[str] = []
    if verdict.city:
        bits.append(f"{verdict.city}, {verdict.country}")
    else:
        bits.append(verdict.country)
    bits.append(translate("prompts.visaRequired" if verdict.visa_required else "prompts.visaFree", language))
    return "; ".join(bits)


def build_plan_prompt(request: PlanRequest, verdict: Optional[DestinationVerdict] = None) -> str:
    language = request.language if is_language_supported(request.language) else DEFAULT_LANGUAGE
    interests = format_interests(request.interests, language) or translate("prompts.defaultInterests", language)
    duration = (request.end_date - request.start_date).days
    return translate(
        "prompts.travelPlanPrompt",
        language,
        destination=request.destination,
        startDate=request.start_date.isoformat(),
        endDate=request.end_date.isoformat(),
        duration=duration,
        budget=_format_amount(request.budget),
        currency=request.currency,
        travelers=request.travelers,
        travelStyle=format_travel_style(request.travel_style, language),
        interests=interests,
        context=_destination_context(verdict, language),
    )


# ---------- provider ----------
def classify_provider_error(text: str) -> ProviderError:
    lowered = (text or "").lower()
    if "quota" in lowered:
        return ProviderQuotaExceeded(text)
    if "safety" in lowered or "content filter" in lowered or "content_filter" in lowered:
        return ProviderContentFiltered(text)
    if "rate limit" in lowered or "rate_limit" in lowered:
        return ProviderRateLimited(text)
    return ProviderGenericError(text or "Unknown provider error")


class OpenAIPlanClient:
    """Thin wrapper over the OpenAI Responses API with web-search grounding."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Any = None):
        self.model = model or settings.openai_model
        api_key = api_key if api_key is not None else settings.openai_api_key
        if client is not None:
            self._client = client
        elif api_key:
            self._client = AsyncOpenAI(api_key=api_key)
        else:
            self._client = None
            logger.warning("OPENAI_API_KEY not set; plan generation will fail until it is configured")

    async def complete(self, prompt: str, language: str = DEFAULT_LANGUAGE, grounding_enabled: bool = True) -> Completion:
        if self._client is None:
            raise ProviderGenericError("OpenAI client is not configured (missing OPENAI_API_KEY)")

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "input": [
                {"role": "system", "content": SYSTEM_PROMPT + LANGUAGE_NOTE.get(language, LANGUAGE_NOTE["en"])},
                {"role": "user", "content": prompt},
            ],
        }
        if grounding_enabled:
            kwargs["tools"] = [{"type": "web_search_preview"}]

        logger.info("Invoking model %s (grounding=%s, language=%s)", self.model, grounding_enabled, language)
        try:
            response = await self._client.responses.create(**kwargs)
        except RateLimitError as exc:
            classified = classify_provider_error(str(exc))
            if isinstance(classified, ProviderGenericError):
                classified = ProviderRateLimited(str(exc))
            raise classified from exc
        except Exception as exc:
            raise classify_provider_error(str(exc)) from exc

        usage = getattr(response, "usage", None)
        return Completion(
            text=getattr(response, "output_text", "") or "",
            prompt_tokens=getattr(usage, "input_tokens", None),
            completion_tokens=getattr(usage, "output_tokens", None),
        )


# ---------- response parsing ----------
def _balanced_object(text: str) -> Optional[str]:
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def extract_json_payload(text: str) -> Dict[str, Any]:
    """Decode the first fenced JSON block, or failing that the first balanced ``{...}`` span."""
    if not text:
        raise InvalidAIResponse("Empty response from AI service")

    candidate: Optional[str] = None
    fence = _FENCE_RE.search(text)
    if fence and "{" in fence.group(1):
        candidate = fence.group(1).strip()
    else:
        candidate = _balanced_object(text)

    if candidate is None:
        raise InvalidAIResponse("No JSON found in AI response")

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise InvalidAIResponse(f"Invalid JSON in AI response: {exc.msg}") from exc

    if not isinstance(payload, dict):
        raise InvalidAIResponse("AI response JSON is not an object")
    return payload


def missing_plan_fields(payload: Dict[str, Any]) -> Dict[str, List[str]]:
    """Structured missing-field report: ``{"plan": [...], "route 1": [...], ...}``."""
    report: Dict[str, List[str]] = {}
    top = [field for field in REQUIRED_PLAN_FIELDS if payload.get(field) is None]
    if top:
        report["plan"] = top
    routes = payload.get("mainRoutes")
    if isinstance(routes, list):
        for index, route in enumerate(routes):
            if not isinstance(route, dict):
                report[f"route {index + 1}"] = list(REQUIRED_ROUTE_FIELDS)
                continue
            missing = [field for field in REQUIRED_ROUTE_FIELDS if route.get(field) is None]
            if missing:
                report[f"route {index + 1}"] = missing
    return report


def validate_plan_structure(payload: Dict[str, Any]) -> GeneratedPlan:
    report = missing_plan_fields(payload)
    if "plan" in report:
        raise InvalidAIResponse(f"Missing required fields: {', '.join(report['plan'])}")

    routes = payload["mainRoutes"]
    if not isinstance(routes, list) or not routes:
        raise InvalidAIResponse("At least one main route is required")

    for index, route in enumerate(routes):
        missing = report.get(f"route {index + 1}")
        if missing:
            raise MalformedRoute(index, missing)
        try:
            RouteOption.model_validate(route)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise MalformedRoute(index, detail=f"{location}: {first.get('msg')}") from exc

    try:
        return GeneratedPlan.model_validate(payload)
    except ValidationError as exc:
        raise InvalidAIResponse(f"AI response failed validation: {exc.error_count()} error(s)") from exc


def credits_used(prompt_tokens: Optional[int], completion_tokens: Optional[int]) -> int:
    total = (prompt_tokens or 0) + (completion_tokens or 0)
    if total <= 0:
        return 1
    return math.ceil(total / 1000)


class PlanGenerator:
    """Builds the localized prompt, calls the provider once and returns a validated plan."""

    def __init__(self, client: Optional[CompletionClient] = None, *, grounding_enabled: bool = True):
        self.client = client if client is not None else OpenAIPlanClient()
        self.grounding_enabled = grounding_enabled

    async def generate(self, request: PlanRequest, verdict: Optional[DestinationVerdict] = None) -> GeneratedPlan:
        language = request.language if is_language_supported(request.language) else DEFAULT_LANGUAGE
        prompt = build_plan_prompt(request, verdict)
        logger.info(
            "Generating travel plan for %s (%s to %s, budget %s %s)",
            request.destination,
            request.start_date,
            request.end_date,
            _format_amount(request.budget),
            request.currency,
        )

        started = time.perf_counter()
        completion = await self.client.complete(prompt, language, grounding_enabled=self.grounding_enabled)
        response_time = round(time.perf_counter() - started, 3)

        payload = extract_json_payload(completion.text)
        plan = validate_plan_structure(payload)
        plan.metadata = GenerationMetadata(
            credits_used=credits_used(completion.prompt_tokens, completion.completion_tokens),
            response_time=response_time,
            model=getattr(self.client, "model", ""),
            prompt_version=PROMPT_VERSION,
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
        )
        logger.info(
            "Travel plan generated in %.2fs with %d route(s), %d credit(s)",
            response_time,
            len(plan.routes),
            plan.metadata.credits_used,
        )
        return plan
