"""Destination safety and accessibility classification."""
from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, List, Tuple

from travel_ai.schemas import Accessibility, DestinationVerdict, SafeAlternative

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRAVEL_AI_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

UNKNOWN_COUNTRY = "Unknown"

# country -> (visa_required, standing warnings)
SAFE_DESTINATIONS: Dict[str, Tuple[bool, Tuple[str, ...]]] = {
    # European Union
    "Austria": (False, ()),
    "Belgium": (False, ()),
    "Bulgaria": (False, ()),
    "Croatia": (False, ()),
    "Cyprus": (False, ()),
    "Czech Republic": (False, ()),
    "Denmark": (False, ()),
    "Estonia": (False, ()),
    "Finland": (False, ()),
    "France": (False, ()),
    "Germany": (False, ()),
    "Greece": (False, ()),
    "Hungary": (False, ()),
    "Ireland": (False, ()),
    "Italy": (False, ()),
    "Latvia": (False, ()),
    "Lithuania": (False, ()),
    "Luxembourg": (False, ()),
    "Malta": (False, ()),
    "Netherlands": (False, ()),
    "Poland": (False, ()),
    "Portugal": (False, ()),
    "Romania": (False, ()),
    "Slovakia": (False, ()),
    "Slovenia": (False, ()),
    "Spain": (False, ()),
    "Sweden": (False, ()),
    # Other safe destinations
    "Turkey": (False, ()),
    "United Kingdom": (False, ()),
    "Norway": (False, ()),
    "Switzerland": (False, ()),
    "Iceland": (False, ()),
    "Canada": (True, ()),
    "United States": (True, ()),
    "Australia": (True, ()),
    "New Zealand": (True, ()),
    "Japan": (False, ()),
    "South Korea": (False, ()),
    "Singapore": (False, ()),
    "Malaysia": (False, ()),
    "Thailand": (False, ()),
    "Indonesia": (True, ()),
    "Vietnam": (True, ()),
    "Philippines": (False, ()),
    "India": (True, ()),
    "Nepal": (True, ()),
    "Sri Lanka": (True, ()),
    "Maldives": (False, ()),
    "United Arab Emirates": (False, ()),
    "Qatar": (False, ()),
    "Oman": (True, ()),
    "Jordan": (True, ()),
    "Israel": (False, ("Check latest security situation",)),
    "Morocco": (False, ()),
    "Egypt": (True, ("Check latest security situation",)),
    "South Africa": (False, ("Take precautions in certain areas",)),
    "Kenya": (True, ()),
    "Tanzania": (True, ()),
    "Brazil": (False, ("Take precautions in certain areas",)),
    "Argentina": (False, ()),
    "Chile": (False, ()),
    "Peru": (False, ()),
    "Mexico": (False, ("Check latest security situation",)),
    "Costa Rica": (False, ()),
    "Panama": (False, ()),
}

# Countries under a do-not-travel or reconsider-travel advisory. Plans are never generated for these.
ADVISORY_DESTINATIONS: Dict[str, str] = {
    "Afghanistan": "Do not travel - extreme security risk",
    "Iraq": "Do not travel - extreme security risk",
    "Syria": "Do not travel - active conflict",
    "Yemen": "Do not travel - active conflict",
    "Somalia": "Do not travel - extreme security risk",
    "Libya": "Do not travel - active conflict",
    "Mali": "Do not travel - security threats",
    "Burkina Faso": "Reconsider travel - security threats",
    "Chad": "Reconsider travel - security threats",
    "Central African Republic": "Do not travel - active conflict",
    "South Sudan": "Do not travel - active conflict",
    "Democratic Republic of Congo": "Reconsider travel - security threats",
    "Venezuela": "Reconsider travel - political instability",
    "Myanmar": "Reconsider travel - political instability",
    "Belarus": "Reconsider travel - political situation",
    "North Korea": "Do not travel - extreme restrictions",
    "Iran": "Reconsider travel - security risks",
    "Russia": "Reconsider travel - current situation",
    "Ukraine": "Do not travel - active conflict",
}

# city -> (country, main airport)
CITY_INFO: Dict[str, Tuple[str, str]] = {
    "Istanbul": ("Turkey", "IST"),
    "Ankara": ("Turkey", "ESB"),
    "Antalya": ("Turkey", "AYT"),
    "Paris": ("France", "CDG"),
    "London": ("United Kingdom", "LHR"),
    "Rome": ("Italy", "FCO"),
    "Barcelona": ("Spain", "BCN"),
    "Amsterdam": ("Netherlands", "AMS"),
    "Berlin": ("Germany", "BER"),
    "Vienna": ("Austria", "VIE"),
    "Prague": ("Czech Republic", "PRG"),
    "Budapest": ("Hungary", "BUD"),
    "Warsaw": ("Poland", "WAW"),
    "Stockholm": ("Sweden", "ARN"),
    "Copenhagen": ("Denmark", "CPH"),
    "Oslo": ("Norway", "OSL"),
    "Helsinki": ("Finland", "HEL"),
    "Zurich": ("Switzerland", "ZRH"),
    "Bangkok": ("Thailand", "BKK"),
    "Tokyo": ("Japan", "NRT"),
    "Seoul": ("South Korea", "ICN"),
    "Singapore": ("Singapore", "SIN"),
    "Dubai": ("United Arab Emirates", "DXB"),
    "New York": ("United States", "JFK"),
    "Los Angeles": ("United States", "LAX"),
    "Toronto": ("Canada", "YYZ"),
    "Sydney": ("Australia", "SYD"),
    "Melbourne": ("Australia", "MEL"),
}

COUNTRY_ALIASES: Dict[str, str] = {
    "türkiye": "Turkey",
    "turkiye": "Turkey",
    "usa": "United States",
    "america": "United States",
    "uk": "United Kingdom",
    "england": "United Kingdom",
    "great britain": "United Kingdom",
    "uae": "United Arab Emirates",
    "czechia": "Czech Republic",
    "holland": "Netherlands",
    "drc": "Democratic Republic of Congo",
}

SAFE_ALTERNATIVES: Dict[str, Tuple[str, ...]] = {
    "Syria": ("Jordan", "Turkey", "Cyprus"),
    "Iraq": ("Jordan", "Oman", "United Arab Emirates"),
    "Afghanistan": ("Uzbekistan", "Kazakhstan", "Kyrgyzstan"),
    "Venezuela": ("Colombia", "Peru", "Costa Rica"),
    "Myanmar": ("Thailand", "Vietnam", "Malaysia"),
}

# Visa guidance for the passport holders the service is built for (Turkish citizens).
VISA_FREE_FOR_PASSPORT = frozenset({
    "Turkey", "Albania", "Bosnia and Herzegovina", "Montenegro", "Serbia",
    "North Macedonia", "Moldova", "Ukraine", "Georgia", "Azerbaijan",
    "Kazakhstan", "Kyrgyzstan", "Uzbekistan", "Tajikistan", "Qatar",
    "Malaysia", "Thailand", "Philippines", "Indonesia", "Singapore",
    "South Korea", "Japan", "Hong Kong", "Macao", "Morocco", "Tunisia",
    "South Africa", "Brazil", "Argentina", "Chile", "Peru", "Colombia",
    "Ecuador", "Bolivia", "Paraguay", "Uruguay",
})
E_VISA_COUNTRIES = frozenset({
    "United States", "Canada", "Australia", "India", "Vietnam",
    "Egypt", "Kenya", "Tanzania", "Ethiopia", "Madagascar",
    "Cambodia", "Laos", "Myanmar", "Sri Lanka", "Bangladesh",
})
SCHENGEN_COUNTRIES = frozenset({
    "Austria", "Belgium", "Czech Republic", "Denmark", "Estonia",
    "Finland", "France", "Germany", "Greece", "Hungary", "Iceland",
    "Italy", "Latvia", "Lithuania", "Luxembourg", "Malta",
    "Netherlands", "Norway", "Poland", "Portugal", "Slovakia",
    "Slovenia", "Spain", "Sweden", "Switzerland",
})
_COUNTRY_VISA_NOTES: Dict[str, Tuple[str, ...]] = {
    "United States": ("ESTA or B1/B2 visa required", "Interview may be required for visa"),
    "United Kingdom": ("UK visa required for Turkish passport holders",),
    "Canada": ("eTA or visitor visa required",),
    "Australia": ("ETA or visitor visa required",),
}

_TRANSPORT_BY_REGION: Tuple[Tuple[frozenset, Tuple[str, ...]], ...] = (
    (frozenset({"Turkey"}), ("Domestic flights", "Bus", "Car rental")),
    (frozenset({"France", "Germany", "Italy", "Spain"}), ("High-speed rail", "Regional flights", "Car rental")),
    (frozenset({"Thailand", "Malaysia", "Singapore"}), ("Regional flights", "Bus", "Ferry")),
)


def _word_pattern(name: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(name.lower())}(?!\w)")


# Longest names first so "South Sudan" wins over shorter embedded names.
_CITY_PATTERNS: List[Tuple[re.Pattern[str], str]] = [
    (_word_pattern(city), city) for city in sorted(CITY_INFO, key=len, reverse=True)
]
_COUNTRY_PATTERNS: List[Tuple[re.Pattern[str], str]] = [
    (_word_pattern(name), country)
    for name, country in sorted(
        [(c, c) for c in (*SAFE_DESTINATIONS, *ADVISORY_DESTINATIONS)] + list(COUNTRY_ALIASES.items()),
        key=lambda item: len(item[0]),
        reverse=True,
    )
]


class DestinationGate:
    """Static classification of free-text destinations.

    Everything here is read-only module data; ``verify`` performs no I/O and
    never raises. Unknown destinations are flagged rather than rejected: only
    countries on the advisory list make a destination inaccessible.
    """

    def parse_destination(self, destination: Any) -> Dict[str, Any]:
        cleaned = str(destination or "").strip().lower()
        if not cleaned:
            return {"city": None, "country": UNKNOWN_COUNTRY}

        for pattern, city in _CITY_PATTERNS:
            if pattern.search(cleaned):
                return {"city": city, "country": CITY_INFO[city][0]}

        for pattern, country in _COUNTRY_PATTERNS:
            if pattern.search(cleaned):
                return {"city": None, "country": country}

        return {"city": None, "country": UNKNOWN_COUNTRY}

    def resolve_country(self, destination: Any) -> str:
        return self.parse_destination(destination)["country"]

    def verify(self, destination: Any) -> DestinationVerdict:
        location = self.parse_destination(destination)
        country: str = location["country"]
        city: str | None = location["city"]

        verdict = DestinationVerdict(country=country, city=city)
        accessibility = Accessibility()

        if country in ADVISORY_DESTINATIONS:
            verdict.is_safe = False
            verdict.is_accessible = False
            verdict.visa_required = True
            verdict.warnings = [ADVISORY_DESTINATIONS[country]]
            verdict.advisory_level = "do-not-travel"
        elif country in SAFE_DESTINATIONS:
            visa_required, warnings = SAFE_DESTINATIONS[country]
            verdict.visa_required = visa_required
            verdict.warnings = list(warnings)
            verdict.advisory_level = "caution" if warnings else "none"
            accessibility.visa_free = not visa_required
        else:
            verdict.warnings.append("Limited information available for this destination")
            verdict.recommendations.append("Please verify current travel conditions")
            verdict.visa_required = True
            verdict.advisory_level = "unknown"

        if city:
            accessibility.has_airport = True
            accessibility.transport_options.append("International airport available")
            verdict.recommendations.append(f"Main airport: {CITY_INFO[city][1]}")

        self._add_passport_guidance(verdict, accessibility)
        for countries, options in _TRANSPORT_BY_REGION:
            if country in countries:
                accessibility.transport_options.extend(options)
        verdict.accessibility = accessibility

        logger.info(
            "Destination verification for %r -> country=%s safe=%s accessible=%s warnings=%d",
            destination,
            verdict.country,
            verdict.is_safe,
            verdict.is_accessible,
            len(verdict.warnings),
        )
        return verdict

    def _add_passport_guidance(self, verdict: DestinationVerdict, accessibility: Accessibility) -> None:
        country = verdict.country
        if country in ADVISORY_DESTINATIONS:
            return
        if country in VISA_FREE_FOR_PASSPORT:
            accessibility.visa_free = True
            verdict.visa_required = False
            verdict.recommendations.append("Visa-free travel for Turkish passport holders")
        elif country in E_VISA_COUNTRIES:
            verdict.recommendations.append("E-visa available for Turkish passport holders")
        elif country in SCHENGEN_COUNTRIES:
            verdict.recommendations.append("Schengen visa required - can visit multiple EU countries")

        verdict.recommendations.extend(_COUNTRY_VISA_NOTES.get(country, ()))
        if country in SCHENGEN_COUNTRIES:
            verdict.recommendations.append("Apply for Schengen visa at consulate")
            verdict.recommendations.append("Travel insurance required for Schengen visa")

    def safe_alternatives(self, destination: Any) -> List[SafeAlternative]:
        country = self.resolve_country(destination)
        if country not in ADVISORY_DESTINATIONS:
            return []
        alternatives: List[SafeAlternative] = []
        for candidate in SAFE_ALTERNATIVES.get(country, ()):
            visa_required = SAFE_DESTINATIONS.get(candidate, (True, ()))[0]
            alternatives.append(
                SafeAlternative(
                    destination=candidate,
                    reason="Safe alternative in the region",
                    visa_required=visa_required,
                )
            )
        return alternatives

    def visa_requirements(self, country: str) -> Dict[str, Any]:
        if country in SAFE_DESTINATIONS:
            required = SAFE_DESTINATIONS[country][0]
        elif country in ADVISORY_DESTINATIONS:
            required = True
        else:
            return {
                "required": True,
                "type": "unknown",
                "processingTime": "unknown",
                "requirements": ["Please check with consulate"],
            }

        requirements: List[str] = []
        if required:
            requirements = [
                "Valid passport (6+ months)",
                "Completed visa application",
                "Recent passport photos",
                "Travel itinerary",
                "Proof of accommodation",
                "Financial proof",
                "Travel insurance (for some countries)",
            ]
        return {
            "required": required,
            "type": "tourist-visa" if required else "visa-free",
            "processingTime": "5-15 business days" if required else "not required",
            "requirements": requirements,
        }

    def is_recommended(self, destination: Any) -> Dict[str, Any]:
        country = self.resolve_country(destination)
        if country in ADVISORY_DESTINATIONS:
            return {"recommended": False, "reason": ADVISORY_DESTINATIONS[country], "confidence": "high"}
        if country in SAFE_DESTINATIONS:
            return {"recommended": True, "reason": "Safe destination for travelers", "confidence": "high"}
        return {"recommended": True, "reason": "Limited information available", "confidence": "low"}
