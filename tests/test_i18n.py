from travel_ai.i18n import (
    format_interests,
    format_travel_style,
    is_language_supported,
    supported_languages,
    translate,
)


def test_format_interests_english_joining():
    assert format_interests([], "en") == ""
    assert format_interests(["food"], "en") == "culinary experiences"
    assert format_interests(["food", "history"], "en") == "culinary experiences and historical sites"
    assert (
        format_interests(["food", "history", "nature"], "en")
        == "culinary experiences, historical sites, and nature and outdoor activities"
    )


def test_format_interests_turkish_joining():
    assert format_interests(["food"], "tr") == "gastronomi deneyimleri"
    assert format_interests(["food", "history", "shopping"], "tr") == (
        "gastronomi deneyimleri, tarihi yerler ve alışveriş ve pazarlar"
    )


def test_unknown_interest_is_passed_through():
    assert format_interests(["stargazing"], "en") == "stargazing"


def test_travel_style_labels():
    assert format_travel_style("budget", "en") == "budget-friendly"
    assert format_travel_style("luxury", "tr") == "lüks"
    assert format_travel_style("glamping", "en") == "glamping"


def test_translate_fills_placeholders_and_falls_back():
    prompt = translate("prompts.travelPlanPrompt", "tr", destination="Roma", budget=1500, currency="EUR")

    assert "Destinasyon: Roma" in prompt
    assert "Bütçe: 1500 EUR" in prompt
    # unfilled placeholders stay visible rather than becoming empty
    assert "{startDate}" in prompt
    # the JSON example keeps its braces
    assert '"mainRoutes": [' in prompt

    assert translate("prompts.defaultInterests", "de") == "general sightseeing"
    assert translate("prompts.doesNotExist", "en") == "prompts.doesNotExist"


def test_supported_languages():
    assert supported_languages() == ["en", "tr"]
    assert is_language_supported("tr")
    assert not is_language_supported("fr")
    assert not is_language_supported(None)
