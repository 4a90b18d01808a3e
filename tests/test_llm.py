import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from travel_ai.agents.destination_gate import DestinationGate
from travel_ai.errors import (
    InvalidAIResponse,
    MalformedRoute,
    ProviderContentFiltered,
    ProviderGenericError,
    ProviderQuotaExceeded,
    ProviderRateLimited,
)
from travel_ai.llm import (
    Completion,
    OpenAIPlanClient,
    PlanGenerator,
    build_plan_prompt,
    classify_provider_error,
    credits_used,
    extract_json_payload,
    missing_plan_fields,
    validate_plan_structure,
)
from travel_ai.schemas import PlanRequest


def _request(**overrides) -> PlanRequest:
    payload = {
        "destination": "Paris, France",
        "startDate": "2026-06-01",
        "endDate": "2026-06-07",
        "budget": 2000,
        "currency": "USD",
        "travelers": 2,
        "travelStyle": "luxury",
        "interests": ["food", "history", "nature"],
    }
    payload.update(overrides)
    return PlanRequest.model_validate(payload)


def _route(route_id=1, total=1800, **overrides):
    route = {
        "id": route_id,
        "name": f"Route {route_id}",
        "totalCost": total,
        "breakdown": {"flights": 600, "hotels": 900, "activities": 300},
        "dailyPlan": [{"day": 1, "location": "Paris", "activities": ["Louvre"]}],
    }
    route.update(overrides)
    return route


def _plan_payload(routes=None):
    return {
        "mainRoutes": routes if routes is not None else [_route()],
        "surpriseAlternatives": [],
        "localTips": ["Carry cash for markets"],
        "timingAdvice": {"bestTimeToVisit": "Spring"},
    }


class FakeCompletionClient:
    model = "fake-model"

    def __init__(self, text, prompt_tokens=None, completion_tokens=None):
        self.completion = Completion(text, prompt_tokens, completion_tokens)
        self.calls = []

    async def complete(self, prompt, language, grounding_enabled=True):
        self.calls.append((prompt, language, grounding_enabled))
        return self.completion


# ---------- prompt ----------
def test_english_prompt_interpolates_request_and_context():
    verdict = DestinationGate().verify("Paris, France")
    prompt = build_plan_prompt(_request(), verdict)

    assert "Destination: Paris, France" in prompt
    assert "Travel dates: 2026-06-01 to 2026-06-07 (6 days)" in prompt
    assert "Budget: 2000 USD" in prompt
    assert "Travelers: 2 person(s)" in prompt
    assert "Travel style: luxury" in prompt
    assert "Interests: culinary experiences, historical sites, and nature and outdoor activities" in prompt
    assert "Destination context: Paris, France; no visa required" in prompt
    assert "{destination}" not in prompt


def test_turkish_prompt_uses_localised_labels_and_default_interests():
    prompt = build_plan_prompt(_request(language="tr", interests=[], travelStyle="budget"))

    assert "Seyahat tarihleri: 2026-06-01 - 2026-06-07 (6 gün)" in prompt
    assert "Seyahat tarzı: ekonomik" in prompt
    assert "İlgi alanları: genel gezi" in prompt
    assert "Destinasyon bilgisi: -" in prompt


# ---------- parsing ----------
def test_extract_prefers_fenced_block():
    text = 'Here you go {"noise": true}\n```json\n{"mainRoutes": []}\n```\nEnjoy!'

    assert extract_json_payload(text) == {"mainRoutes": []}


def test_extract_accepts_bare_fence():
    assert extract_json_payload('```\n{"a": 1}\n```') == {"a": 1}


def test_extract_falls_back_to_first_balanced_object():
    text = 'Sure! {"name": "brace } inside string", "nested": {"x": 1}} trailing {"other": 2}'

    assert extract_json_payload(text) == {"name": "brace } inside string", "nested": {"x": 1}}


@pytest.mark.parametrize(
    "text",
    [
        "",
        "I could not find any prices for that trip.",
        '```json\n{"mainRoutes": [1, 2,]}\n```',
        '{"unterminated": ',
        "[1, 2, 3]",
    ],
)
def test_extract_raises_invalid_ai_response(text):
    with pytest.raises(InvalidAIResponse):
        extract_json_payload(text)


def test_missing_top_level_fields_are_named():
    payload = _plan_payload()
    del payload["localTips"]
    del payload["timingAdvice"]

    with pytest.raises(InvalidAIResponse, match="Missing required fields: localTips, timingAdvice"):
        validate_plan_structure(payload)


def test_empty_routes_are_rejected():
    with pytest.raises(InvalidAIResponse, match="At least one main route"):
        validate_plan_structure(_plan_payload(routes=[]))


def test_route_missing_fields_reports_route_number():
    broken = _route(2)
    del broken["totalCost"]
    del broken["dailyPlan"]

    with pytest.raises(MalformedRoute) as excinfo:
        validate_plan_structure(_plan_payload(routes=[_route(1), broken]))

    assert str(excinfo.value) == "Route 2 missing fields: totalCost, dailyPlan"
    assert excinfo.value.index == 1
    assert excinfo.value.code == "MALFORMED_ROUTE"


def test_route_with_wrong_types_is_malformed():
    with pytest.raises(MalformedRoute, match="Route 1 is malformed"):
        validate_plan_structure(_plan_payload(routes=[_route(totalCost="about two thousand")]))


def test_missing_field_report_is_structured():
    broken = _route(1)
    del broken["name"]
    payload = _plan_payload(routes=[broken, "not a route"])
    del payload["surpriseAlternatives"]

    assert missing_plan_fields(payload) == {
        "plan": ["surpriseAlternatives"],
        "route 1": ["name"],
        "route 2": ["id", "name", "totalCost", "breakdown", "dailyPlan"],
    }


# ---------- provider ----------
@pytest.mark.parametrize(
    "message, expected",
    [
        ("You exceeded your current quota, please check your plan", ProviderQuotaExceeded),
        ("Response blocked by safety settings", ProviderContentFiltered),
        ("finish_reason=content_filter", ProviderContentFiltered),
        ("Rate limit reached for gpt-4o-mini", ProviderRateLimited),
        ("Connection reset by peer", ProviderGenericError),
    ],
)
def test_classify_provider_error(message, expected):
    error = classify_provider_error(message)

    assert type(error) is expected
    assert str(error) == message


def test_credits_used():
    assert credits_used(None, None) == 1
    assert credits_used(0, 0) == 1
    assert credits_used(800, 200) == 1
    assert credits_used(1500, 1501) == 4


def test_openai_client_without_key_fails_fast():
    client = OpenAIPlanClient(api_key="")

    with pytest.raises(ProviderGenericError, match="OPENAI_API_KEY"):
        asyncio.run(client.complete("prompt", "en"))


def test_openai_client_reads_text_and_usage():
    response = SimpleNamespace(
        output_text='```json\n{"ok": true}\n```',
        usage=SimpleNamespace(input_tokens=1200, output_tokens=900),
    )
    create = AsyncMock(return_value=response)
    sdk = SimpleNamespace(responses=SimpleNamespace(create=create))
    client = OpenAIPlanClient(api_key="test", model="gpt-test", client=sdk)

    completion = asyncio.run(client.complete("Plan Paris", "tr"))

    assert completion == Completion('```json\n{"ok": true}\n```', 1200, 900)
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "gpt-test"
    assert kwargs["tools"] == [{"type": "web_search_preview"}]
    assert kwargs["input"][1] == {"role": "user", "content": "Plan Paris"}
    assert "Türkçe" in kwargs["input"][0]["content"]


def test_openai_client_without_grounding_sends_no_tools():
    create = AsyncMock(return_value=SimpleNamespace(output_text="{}", usage=None))
    client = OpenAIPlanClient(api_key="test", client=SimpleNamespace(responses=SimpleNamespace(create=create)))

    completion = asyncio.run(client.complete("p", "en", grounding_enabled=False))

    assert "tools" not in create.await_args.kwargs
    assert completion.prompt_tokens is None


def test_openai_client_classifies_sdk_errors():
    create = AsyncMock(side_effect=RuntimeError("Rate limit reached, retry later"))
    client = OpenAIPlanClient(api_key="test", client=SimpleNamespace(responses=SimpleNamespace(create=create)))

    with pytest.raises(ProviderRateLimited) as excinfo:
        asyncio.run(client.complete("p", "en"))

    assert excinfo.value.reason().startswith("RATE_LIMIT_EXCEEDED: ")


# ---------- generator ----------
def test_generator_returns_plan_with_metadata():
    text = "```json\n" + json.dumps(_plan_payload()) + "\n```"
    client = FakeCompletionClient(text, prompt_tokens=1500, completion_tokens=700)
    generator = PlanGenerator(client)

    plan = asyncio.run(generator.generate(_request(language="tr"), DestinationGate().verify("Paris")))

    assert plan.routes[0].total_cost == 1800
    assert plan.metadata.credits_used == 3
    assert plan.metadata.model == "fake-model"
    assert plan.metadata.prompt_tokens == 1500
    prompt, language, grounding = client.calls[0]
    assert language == "tr"
    assert grounding is True
    assert "Destinasyon: Paris, France" in prompt


def test_generator_surfaces_invalid_response_without_retry():
    client = FakeCompletionClient("Sorry, I cannot help with that.")
    generator = PlanGenerator(client)

    with pytest.raises(InvalidAIResponse):
        asyncio.run(generator.generate(_request()))

    assert len(client.calls) == 1
