"""Localized prompt templates and label helpers (English and Turkish)."""
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List

_EN_PLAN_PROMPT = """You are an expert travel planner. Generate a comprehensive travel plan in JSON format with real-time pricing data.

REQUIREMENTS:
- Destination: {destination}
- Travel dates: {startDate} to {endDate} ({duration} days)
- Budget: {budget} {currency}
- Travelers: {travelers} person(s)
- Travel style: {travelStyle}
- Interests: {interests}
- Destination context: {context}

SEARCH FOR CURRENT DATA:
Use web search to find current prices for:
1. Flights from major Turkish cities to {destination}
2. Hotel rates in {destination} for the specified dates
3. Popular activities and their costs
4. Local transportation costs
5. Food and dining expenses

RESPONSE FORMAT (JSON):
```json
{
  "mainRoutes": [
    {
      "id": 1,
      "name": "Route name",
      "totalCost": number,
      "breakdown": {
        "flights": number,
        "hotels": number,
        "activities": number
      },
      "dailyPlan": [
        {
          "day": 1,
          "location": "City/Area",
          "activities": ["Activity 1", "Activity 2"],
          "accommodation": "Hotel name/type",
          "estimatedCost": number
        }
      ],
      "bookingLinks": {
        "flights": "Search URL",
        "hotels": "Search URL"
      }
    }
  ],
  "surpriseAlternatives": [
    {
      "destination": "Alternative destination",
      "reason": "Why this is a good alternative",
      "estimatedCost": number,
      "highlights": ["Highlight 1", "Highlight 2"]
    }
  ],
  "localTips": ["Tip 1", "Tip 2", "Tip 3"],
  "timingAdvice": {
    "bestTimeToVisit": "Season info",
    "weatherInfo": "Weather during travel dates",
    "seasonalTips": ["Seasonal tip 1", "Seasonal tip 2"]
  }
}
```

IMPORTANT:
- Use REAL current prices from web search
- Stay within the {budget} {currency} budget
- Provide at least 2-3 main route options
- Include 2-3 surprise alternatives (similar but different/cheaper destinations)
- All costs should be in {currency}
- Be specific with hotel names, activity locations, and practical details
- Include actual booking links or search URLs
- Return the JSON inside a single ```json fenced block"""

_TR_PLAN_PROMPT = """Sen uzman bir seyahat planlayıcısısın. Gerçek zamanlı fiyat verilerini kullanarak kapsamlı bir seyahat planını JSON formatında oluştur.

GEREKSİNİMLER:
- Destinasyon: {destination}
- Seyahat tarihleri: {startDate} - {endDate} ({duration} gün)
- Bütçe: {budget} {currency}
- Seyahat eden kişi sayısı: {travelers} kişi
- Seyahat tarzı: {travelStyle}
- İlgi alanları: {interests}
- Destinasyon bilgisi: {context}

GÜNCEL VERİLERİ ARAŞTIR:
Web araması yaparak şu güncel fiyatları bul:
1. Türkiye'nin büyük şehirlerinden {destination} destinasyonuna uçak biletleri
2. Belirtilen tarihler için {destination} destinasyonundaki otel fiyatları
3. Popüler aktiviteler ve maliyetleri
4. Yerel ulaşım ücretleri
5. Yemek ve restoran masrafları

YANIT FORMATI (JSON):
```json
{
  "mainRoutes": [
    {
      "id": 1,
      "name": "Rota adı",
      "totalCost": sayı,
      "breakdown": {
        "flights": sayı,
        "hotels": sayı,
        "activities": sayı
      },
      "dailyPlan": [
        {
          "day": 1,
          "location": "Şehir/Bölge",
          "activities": ["Aktivite 1", "Aktivite 2"],
          "accommodation": "Otel adı/tipi",
          "estimatedCost": sayı
        }
      ],
      "bookingLinks": {
        "flights": "Arama URL'si",
        "hotels": "Arama URL'si"
      }
    }
  ],
  "surpriseAlternatives": [
    {
      "destination": "Alternatif destinasyon",
      "reason": "Bu neden iyi bir alternatif",
      "estimatedCost": sayı,
      "highlights": ["Öne çıkan özellik 1", "Öne çıkan özellik 2"]
    }
  ],
  "localTips": ["İpucu 1", "İpucu 2", "İpucu 3"],
  "timingAdvice": {
    "bestTimeToVisit": "Mevsim bilgisi",
    "weatherInfo": "Seyahat tarihlerindeki hava durumu",
    "seasonalTips": ["Mevsimsel ipucu 1", "Mevsimsel ipucu 2"]
  }
}
```

ÖNEMLİ:
- Web aramasından GERÇEK güncel fiyatları kullan
- {budget} {currency} bütçesi içinde kal
- En az 2-3 ana rota seçeneği sun
- 2-3 sürpriz alternatif ekle (benzer ama farklı/daha ucuz destinasyonlar)
- Tüm maliyetler {currency} cinsinden olmalı
- Otel isimleri, aktivite lokasyonları ve pratik detaylarla spesifik ol
- Gerçek rezervasyon linkleri veya arama URL'leri ekle
- JSON'u tek bir ```json bloğu içinde döndür"""

TRANSLATIONS: Dict[str, Dict[str, Any]] = {
    "en": {
        "prompts": {
            "travelPlanPrompt": _EN_PLAN_PROMPT,
            "defaultInterests": "general sightseeing",
            "visaRequired": "visa required",
            "visaFree": "no visa required",
            "travelStyleNames": {
                "budget": "budget-friendly",
                "mid-range": "mid-range",
                "luxury": "luxury",
            },
            "interestNames": {
                "culture": "cultural experiences",
                "food": "culinary experiences",
                "beaches": "beaches and coastal activities",
                "adventure": "adventure activities",
                "nightlife": "nightlife and entertainment",
                "nature": "nature and outdoor activities",
                "history": "historical sites",
                "shopping": "shopping and markets",
            },
        }
    },
    "tr": {
        "prompts": {
            "travelPlanPrompt": _TR_PLAN_PROMPT,
            "defaultInterests": "genel gezi",
            "visaRequired": "vize gerekli",
            "visaFree": "vize gerekmez",
            "travelStyleNames": {
                "budget": "ekonomik",
                "mid-range": "orta segment",
                "luxury": "lüks",
            },
            "interestNames": {
                "culture": "kültürel deneyimler",
                "food": "gastronomi deneyimleri",
                "beaches": "plajlar ve sahil aktiviteleri",
                "adventure": "macera aktiviteleri",
                "nightlife": "gece hayatı ve eğlence",
                "nature": "doğa ve açık hava aktiviteleri",
                "history": "tarihi yerler",
                "shopping": "alışveriş ve pazarlar",
            },
        }
    },
}

DEFAULT_LANGUAGE = "en"
_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def _lookup(language: str, key: str) -> Any:
    value: Any = TRANSLATIONS.get(language)
    for part in key.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def translate(key: str, language: str = DEFAULT_LANGUAGE, **params: Any) -> Any:
    """Resolve a dotted key, falling back to English and then to the key itself.

    String values have ``{name}`` placeholders filled from ``params``; unknown
    placeholders (including the literal braces of the JSON example) are left alone.
    """
    value = _lookup(language, key)
    if value is None:
        value = _lookup(DEFAULT_LANGUAGE, key)
    if value is None:
        return key
    if isinstance(value, str):
        def _fill(match: re.Match[str]) -> str:
            name = match.group(1)
            if name in params and params[name] is not None and params[name] != "":
                return str(params[name])
            return match.group(0)

        return _PLACEHOLDER.sub(_fill, value)
    return value


def format_interests(interests: Iterable[str] | None, language: str = DEFAULT_LANGUAGE) -> str:
    if not interests:
        return ""
    names = translate("prompts.interestNames", language)
    labels: List[str] = [names.get(item, item) for item in interests if item]
    if not labels:
        return ""
    if len(labels) == 1:
        return labels[0]
    if language == "tr":
        return f"{', '.join(labels[:-1])} ve {labels[-1]}"
    if len(labels) == 2:
        return " and ".join(labels)
    return f"{', '.join(labels[:-1])}, and {labels[-1]}"


def format_travel_style(style: str, language: str = DEFAULT_LANGUAGE) -> str:
    names = translate("prompts.travelStyleNames", language)
    return names.get(style, style)


def supported_languages() -> List[str]:
    return list(TRANSLATIONS.keys())


def is_language_supported(language: str | None) -> bool:
    return language in TRANSLATIONS
