import pytest

from travel_ai.errors import PlanNotCompleted, PlanNotFound
from travel_ai.store import PlanStore


def _request_doc(destination="Paris, France"):
    return {
        "destination": destination,
        "startDate": "2026-06-01",
        "endDate": "2026-06-07",
        "budget": 2000,
        "currency": "USD",
        "travelers": 1,
        "preferences": {"travelStyle": "mid-range", "interests": []},
        "language": "en",
    }


def _completed(store, plan_id, user_id="u1", destination="Paris, France", total=1800):
    store.create_draft(plan_id, user_id, _request_doc(destination), fingerprint="f" * 64)
    store.update_plan(
        plan_id,
        {
            "status": "completed",
            "stage": "completed",
            "mainRoutes": [{"id": 1, "name": "Classic", "totalCost": total}],
            "metadata": {"creditsUsed": 2},
        },
    )


@pytest.fixture
def store():
    return PlanStore("sqlite://")


def test_create_draft_and_read_back(store):
    draft = store.create_draft("plan_1", "u1", _request_doc(), fingerprint="abc")

    assert draft["status"] == "draft"
    assert draft["stage"] == "accepted"
    assert draft["mainRoutes"] == []

    plan = store.get_plan("plan_1")
    assert plan["request"]["destination"] == "Paris, France"
    assert plan["userId"] == "u1"
    assert plan["isPublic"] is False
    assert plan["views"] == 0
    assert plan["rating"] is None


def test_update_plan_applies_camel_case_patch(store):
    store.create_draft("plan_1", "u1", _request_doc())

    assert store.set_stage("plan_1", "generating") is True
    assert store.update_plan("plan_1", {"localTips": ["Tip"], "timingAdvice": {"bestTimeToVisit": "Spring"}})

    plan = store.get_plan("plan_1")
    assert plan["stage"] == "generating"
    assert plan["localTips"] == ["Tip"]
    assert plan["timingAdvice"] == {"bestTimeToVisit": "Spring"}


def test_update_plan_rejects_unknown_fields(store):
    store.create_draft("plan_1", "u1", _request_doc())

    with pytest.raises(ValueError, match="Unsupported plan fields: views"):
        store.update_plan("plan_1", {"views": 99})


def test_terminal_plans_are_not_rewritten(store):
    _completed(store, "plan_1")

    assert store.update_plan("plan_1", {"status": "draft"}) is False
    assert store.mark_failed("plan_1", "late failure", "PROVIDER_ERROR") is False
    assert store.get_plan("plan_1")["status"] == "completed"


def test_mark_failed_records_reason_in_metadata(store):
    store.create_draft("plan_1", "u1", _request_doc())

    assert store.mark_failed("plan_1", "No JSON found in AI response", "INVALID_AI_RESPONSE") is True

    plan = store.get_plan("plan_1")
    assert plan["status"] == "failed"
    assert plan["stage"] == "failed"
    assert plan["errorCode"] == "INVALID_AI_RESPONSE"
    assert plan["metadata"] == {"error": "No JSON found in AI response", "errorCode": "INVALID_AI_RESPONSE"}


def test_missing_plan(store):
    assert store.get_plan("plan_missing") is None
    with pytest.raises(PlanNotFound):
        store.update_plan("plan_missing", {"stage": "generating"})
    with pytest.raises(PlanNotFound):
        store.increment_views("plan_missing")


def test_private_plans_are_hidden_from_other_users(store):
    _completed(store, "plan_1", user_id="owner")

    assert store.get_visible_plan("plan_1", "owner") is not None
    assert store.get_visible_plan("plan_1", "someone-else") is None
    assert store.get_visible_plan("plan_1", None) is None

    store.set_visibility("plan_1", "owner", True)
    assert store.get_visible_plan("plan_1", "someone-else")["isPublic"] is True
    assert store.get_visible_plan("plan_1", None)["isPublic"] is True


def test_anonymous_callers_cannot_act_on_plans(store):
    _completed(store, "plan_1", user_id="owner")

    with pytest.raises(PlanNotFound):
        store.delete_plan("plan_1", None)
    with pytest.raises(PlanNotFound):
        store.set_visibility("plan_1", None, True)
    with pytest.raises(PlanNotFound):
        store.rate_plan("plan_1", None, 5)

    assert store.get_plan("plan_1")["isPublic"] is False
    assert store.list_plans(None)["plans"] == []


def test_fail_stale_drafts_only_touches_drafts(store):
    store.create_draft("plan_1", "u1", _request_doc())
    store.create_draft("plan_2", "u1", _request_doc())
    _completed(store, "plan_3")

    assert store.fail_stale_drafts("Generation interrupted by a service restart") == 2

    stale = store.get_plan("plan_1")
    assert stale["status"] == "failed"
    assert stale["errorCode"] == "INTERRUPTED"
    assert stale["metadata"]["error"] == "Generation interrupted by a service restart"
    assert store.get_plan("plan_3")["status"] == "completed"
    assert store.fail_stale_drafts("again") == 0


def test_recently_touched_drafts_are_not_stale(store):
    store.create_draft("plan_1", "u1", _request_doc())

    assert store.fail_stale_drafts("restart", idle_seconds=600) == 0
    assert store.get_plan("plan_1")["status"] == "draft"


def test_list_plans_paginates_per_user(store):
    for index in range(5):
        _completed(store, f"plan_{index}", user_id="u1", total=1000 + index)
    store.create_draft("plan_draft", "u1", _request_doc())
    _completed(store, "plan_other", user_id="u2")

    first = store.list_plans("u1", page=1, limit=2)
    assert len(first["plans"]) == 2
    assert first["pagination"] == {
        "currentPage": 1,
        "totalPages": 3,
        "totalPlans": 6,
        "hasNext": True,
        "hasPrev": False,
    }

    last = store.list_plans("u1", page=3, limit=2)
    assert len(last["plans"]) == 2
    assert last["pagination"]["hasNext"] is False
    assert last["pagination"]["hasPrev"] is True

    drafts = store.list_plans("u1", status="draft")
    assert [item["planId"] for item in drafts["plans"]] == ["plan_draft"]
    assert drafts["plans"][0]["bestPrice"] is None

    item = store.list_plans("u2")["plans"][0]
    assert item["destination"] == "Paris, France"
    assert item["dates"] == {"start": "2026-06-01", "end": "2026-06-07"}
    assert item["budget"] == {"amount": 2000, "currency": "USD"}
    assert item["bestPrice"] == 1800


def test_empty_listing(store):
    assert store.list_plans("nobody")["pagination"]["totalPages"] == 0


def test_views_increment(store):
    _completed(store, "plan_1")

    store.increment_views("plan_1")
    assert store.increment_views("plan_1") == 2
    assert store.get_plan("plan_1")["views"] == 2


def test_visibility_and_rating_require_completed_plan(store):
    store.create_draft("plan_1", "u1", _request_doc())

    with pytest.raises(PlanNotCompleted):
        store.set_visibility("plan_1", "u1", True)
    with pytest.raises(PlanNotCompleted):
        store.rate_plan("plan_1", "u1", 5)


def test_rating_a_completed_plan(store):
    _completed(store, "plan_1")

    result = store.rate_plan("plan_1", "u1", 4, "Great value")

    assert result == {"planId": "plan_1", "rating": {"score": 4, "feedback": "Great value"}}
    assert store.get_plan("plan_1")["rating"] == {"score": 4, "feedback": "Great value"}
    with pytest.raises(ValueError):
        store.rate_plan("plan_1", "u1", 6)
    with pytest.raises(PlanNotFound):
        store.rate_plan("plan_1", "intruder", 1)


def test_delete_plan_checks_owner(store):
    _completed(store, "plan_1", user_id="owner")

    with pytest.raises(PlanNotFound):
        store.delete_plan("plan_1", "intruder")

    assert store.delete_plan("plan_1", "owner") is True
    assert store.get_plan("plan_1") is None
    with pytest.raises(PlanNotFound):
        store.delete_plan("plan_1", "owner")


def test_popular_destinations_counts_completed_plans(store):
    _completed(store, "plan_1", destination="Paris, France")
    _completed(store, "plan_2", destination="Paris, France")
    _completed(store, "plan_3", destination="Rome, Italy")
    store.create_draft("plan_4", "u1", _request_doc("Rome, Italy"))
    store.create_draft("plan_5", "u1", _request_doc("Rome, Italy"))
    store.rate_plan("plan_1", "u1", 5)
    store.rate_plan("plan_2", "u1", 4)

    popular = store.popular_destinations()

    assert popular == [
        {"destination": "Paris, France", "count": 2, "avgRating": 4.5},
        {"destination": "Rome, Italy", "count": 1, "avgRating": None},
    ]
    assert len(store.popular_destinations(limit=1)) == 1
