"""
application.routing.entities - Rule-based entity extraction.

Cheap, deterministic extraction that feeds the structural classifier and the
classification payload. Every extractor returns a de-duplicated list of the
matched strings (case-insensitive, first spelling wins).
"""

from __future__ import annotations

import re
from typing import Iterable

_MONTH = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|"
    r"Aug(?:ust)?|Sep(?:t\.?|tember)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
_WEEKDAY = (
    r"(?:Mon(?:day)?|Tue(?:sday)?|Wed(?:nesday)?|Thu(?:rsday)?|Fri(?:day)?|"
    r"Sat(?:urday)?|Sun(?:day)?)"
)

_DATETIME_PATTERNS = [
    re.compile(r"\b(?:19|20)\d{2}-(?:0?[1-9]|1[0-2])-(?:0?[1-9]|[12]\d|3[01])\b"),
    re.compile(r"\b(?:0?[1-9]|1[0-2])[/.-](?:0?[1-9]|[12]\d|3[01])[/.-]\d{2,4}\b"),
    re.compile(rf"\b{_MONTH}\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,\s*\d{{4}})?\b", re.I),
    re.compile(rf"\b\d{{1,2}}(?:st|nd|rd|th)?\s+{_MONTH}(?:,\s*\d{{4}})?\b", re.I),
    re.compile(rf"\b(?:this|next|last)\s+{_WEEKDAY}\b", re.I),
    re.compile(rf"\b{_WEEKDAY}\b", re.I),
    re.compile(
        r"\b(?:today|tonight|tomorrow|tmr|yesterday|"
        r"this\s+(?:morning|afternoon|evening|week|month|year|weekend)|"
        r"next\s+(?:week|month|year|quarter)|last\s+(?:week|month|year)|"
        r"in\s+(?:a|an|\d+)\s+(?:minute|hour|day|week|month|year)s?|"
        r"after\s+\d+\s+(?:minute|hour|day|week|month|year)s?)\b",
        re.I,
    ),
    re.compile(r"\b(?:[01]?\d|2[0-3]):\d{2}(?::\d{2})?\s*(?:am|pm)?\b", re.I),
    re.compile(r"\b\d{1,2}\s*(?:am|pm)\b", re.I),
    re.compile(r"\b(?:soon|coming up|in a bit|later today|end of day|eod)\b", re.I),
]

_TITLED_NAME = re.compile(
    r"\b(?:Dr\.|Doctor|Prof\.|Professor|Mr\.|Mrs\.|Ms\.|Mx\.)\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b"
)
_FULL_NAME = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+){1,3}\b")
_HANDLE = re.compile(r"@[A-Za-z0-9_.]+")
_ROLE_WORDS = (
    "president", "senator", "governor", "mayor", "manager", "boss", "teacher",
    "professor", "coach", "doctor", "dentist", "therapist", "nurse", "client",
    "customer", "colleague", "coworker", "parent", "spouse", "wife", "husband",
    "partner", "friend", "mom", "dad", "sister", "brother",
)

_PLACE_WORDS = (
    "office", "home", "house", "apartment", "campus", "hospital", "clinic",
    "school", "university", "library", "bank", "church", "museum", "restaurant",
    "cafe", "coffee shop", "bar", "park", "beach", "gym", "pool", "stadium",
    "mall", "store", "supermarket", "grocery", "market", "airport", "hotel",
    "station", "downtown",
)
_ADDRESS = re.compile(
    r"\b\d{1,6}\s+[A-Za-z0-9.]+(?:\s+[A-Za-z0-9.]+){0,5}\s+"
    r"(?:St|Street|Ave|Avenue|Rd|Road|Blvd|Boulevard|Ln|Lane|Dr|Drive|Ct|Court|Pl|Place)\b",
    re.I,
)

_EVENT_WORDS = (
    "appointment", "appt", "meeting", "event", "video call", "zoom", "conference",
    "webinar", "workshop", "seminar", "presentation", "demo", "standup", "lunch",
    "brunch", "dinner", "breakfast", "interview", "checkup", "visit", "party",
    "ceremony", "wedding", "birthday", "deadline", "trip", "vacation", "holiday",
)
_SPECIFIC_EVENTS = [
    (re.compile(r"\bdentist\b", re.I), "dentist appointment"),
    (re.compile(r"\bdoctor\s*(?:appointment|appt|checkup|visit|exam)", re.I), "doctor appointment"),
    (re.compile(r"\bhair\s*(?:appointment|appt|cut|trim)", re.I), "hair appointment"),
    (re.compile(r"\bvet\s*(?:appointment|appt|checkup|visit)", re.I), "veterinary appointment"),
    (re.compile(r"\btherapy\s*(?:session|appointment)", re.I), "therapy session"),
]

_EMAIL = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_PHONE = re.compile(r"(?<!\w)(?:\+?\d{1,3}[\s.-]?)?(?:\(?\d{3}\)?[\s.-]?)\d{3}[\s.-]?\d{4}\b")
_URL = re.compile(r"\bhttps?://[^\s)]+", re.I)

_ITEM_PATTERNS = [
    re.compile(r"\b(?:shoes?|boots?|shirts?|pants|jeans|dress(?:es)?|jackets?|coats?|hats?)\b", re.I),
    re.compile(r"\b(?:phones?|laptops?|computers?|tablets?|headphones|cameras?|keyboards?|monitors?)\b", re.I),
    re.compile(r"\b(?:books?|movies?|albums?)\b", re.I),
    re.compile(r"\b(?:cats?|dogs?|puppy|kittens?|birds?|hamsters?|rabbits?)\b", re.I),
]

_CAPABILITY = re.compile(r"\b(?:screenshots?|screen\s*shots?|screen|capture|clipboard)\b", re.I)


def _find_words(text: str, words: Iterable[str]) -> list[str]:
    return [w for w in words if re.search(rf"\b{re.escape(w)}\b", text, re.I)]


def _findall(pattern: re.Pattern, text: str) -> list[str]:
    return [m.group(0) for m in pattern.finditer(text)]


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        cleaned = value.strip().strip(".,;:!?")
        key = cleaned.lower()
        if cleaned and key not in seen:
            seen.add(key)
            out.append(cleaned)
    return out


class EntityExtractor:
    """Regex entity extraction over a single utterance."""

    def extract(self, text: str) -> dict[str, list[str]]:
        """Return only the entity types that matched something."""
        found = {
            "datetime": self.datetimes(text),
            "person": self.people(text),
            "location": self.locations(text),
            "event": self.events(text),
            "contact": self.contacts(text),
            "items": self.items(text),
            "capability": self.capabilities(text),
        }
        return {kind: values for kind, values in found.items() if values}

    def datetimes(self, text: str) -> list[str]:
        hits: list[str] = []
        for pattern in _DATETIME_PATTERNS:
            hits.extend(_findall(pattern, text))
        return _unique(hits)

    def people(self, text: str) -> list[str]:
        hits = _findall(_TITLED_NAME, text)
        # Sentence-initial capitalised words ("Remember Tuesday") are not names
        hits.extend(
            m.group(0) for m in _FULL_NAME.finditer(text) if m.start() > 0
        )
        hits.extend(_findall(_HANDLE, text))
        hits.extend(_find_words(text, _ROLE_WORDS))
        return _unique(hits)

    def locations(self, text: str) -> list[str]:
        hits = _find_words(text, _PLACE_WORDS)
        hits.extend(_findall(_ADDRESS, text))
        return _unique(hits)

    def events(self, text: str) -> list[str]:
        hits = _find_words(text, _EVENT_WORDS)
        hits.extend(label for pattern, label in _SPECIFIC_EVENTS if pattern.search(text))
        return _unique(hits)

    def contacts(self, text: str) -> list[str]:
        hits = _findall(_EMAIL, text) + _findall(_PHONE, text) + _findall(_URL, text)
        return _unique(hits)

    def items(self, text: str) -> list[str]:
        hits: list[str] = []
        for pattern in _ITEM_PATTERNS:
            hits.extend(_findall(pattern, text))
        return _unique(hits)

    def capabilities(self, text: str) -> list[str]:
        return _unique(m.group(0).lower() for m in _CAPABILITY.finditer(text))
