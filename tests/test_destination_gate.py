from travel_ai.agents.destination_gate import DestinationGate


def test_city_match_inherits_country_and_airport():
    verdict = DestinationGate().verify("Paris, France")

    assert verdict.country == "France"
    assert verdict.city == "Paris"
    assert verdict.is_safe and verdict.is_accessible
    assert verdict.advisory_level == "none"
    assert verdict.accessibility.has_airport is True
    assert "Main airport: CDG" in verdict.recommendations


def test_country_match_is_case_insensitive():
    verdict = DestinationGate().verify("  a week in JAPAN ")

    assert verdict.country == "Japan"
    assert verdict.city is None
    assert verdict.accessibility.has_airport is False


def test_aliases_resolve_to_canonical_country():
    gate = DestinationGate()

    assert gate.resolve_country("Türkiye coast") == "Turkey"
    assert gate.resolve_country("road trip across the USA") == "United States"
    assert gate.resolve_country("Scotland and the UK") == "United Kingdom"


def test_longest_country_name_wins():
    verdict = DestinationGate().verify("Juba, South Sudan")

    assert verdict.country == "South Sudan"
    assert verdict.is_safe is False


def test_word_boundaries_prevent_false_matches():
    # "Chadwick" contains "chad" but is not Chad.
    gate = DestinationGate()

    assert gate.resolve_country("Chadwick Springs") == "Unknown"


def test_unknown_destination_is_flagged_not_rejected():
    verdict = DestinationGate().verify("Atlantis")

    assert verdict.country == "Unknown"
    assert verdict.is_safe is True
    assert verdict.is_accessible is True
    assert verdict.visa_required is True
    assert verdict.advisory_level == "unknown"
    assert "Limited information available for this destination" in verdict.warnings


def test_advisory_country_is_inaccessible_and_unsafe():
    verdict = DestinationGate().verify("Damascus, Syria")

    assert verdict.country == "Syria"
    assert verdict.is_safe is False
    assert verdict.is_accessible is False
    assert verdict.advisory_level == "do-not-travel"
    assert verdict.warnings == ["Do not travel - active conflict"]


def test_safe_country_with_standing_warning_is_caution():
    verdict = DestinationGate().verify("Cairo, Egypt")

    assert verdict.is_safe is True
    assert verdict.advisory_level == "caution"
    assert "Check latest security situation" in verdict.warnings


def test_verify_never_raises_on_odd_input():
    gate = DestinationGate()

    assert gate.verify(None).country == "Unknown"
    assert gate.verify(12345).country == "Unknown"
    assert gate.verify("").country == "Unknown"


def test_passport_guidance():
    gate = DestinationGate()

    thailand = gate.verify("Bangkok")
    assert thailand.visa_required is False
    assert thailand.accessibility.visa_free is True
    assert "Visa-free travel for Turkish passport holders" in thailand.recommendations

    italy = gate.verify("Rome")
    assert any("Schengen" in item for item in italy.recommendations)


def test_safe_alternatives_for_mapped_and_unmapped_countries():
    gate = DestinationGate()

    syria = gate.safe_alternatives("Syria")
    assert [alt.destination for alt in syria] == ["Jordan", "Turkey", "Cyprus"]
    assert syria[1].visa_required is False

    assert gate.safe_alternatives("Yemen") == []
    assert gate.safe_alternatives("Paris") == []


def test_visa_requirements_and_recommendation():
    gate = DestinationGate()

    usa = gate.visa_requirements("United States")
    assert usa["required"] is True
    assert usa["type"] == "tourist-visa"
    assert usa["processingTime"] == "5-15 business days"
    assert "Valid passport (6+ months)" in usa["requirements"]

    assert gate.visa_requirements("France")["type"] == "visa-free"
    assert gate.visa_requirements("Narnia")["type"] == "unknown"

    assert gate.is_recommended("Kabul, Afghanistan")["recommended"] is False
    assert gate.is_recommended("Lisbon, Portugal") == {
        "recommended": True,
        "reason": "Safe destination for travelers",
        "confidence": "high",
    }
    assert gate.is_recommended("Atlantis")["confidence"] == "low"


def test_advisory_country_gets_no_passport_guidance():
    verdict = DestinationGate().verify("Kyiv, Ukraine")

    assert verdict.country == "Ukraine"
    assert verdict.advisory_level == "do-not-travel"
    assert verdict.visa_required is True
    assert verdict.accessibility.visa_free is False
    assert not any("Visa-free" in item for item in verdict.recommendations)
