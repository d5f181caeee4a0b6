"""
Fact extraction from free text.

Synchronous keyword and dictionary matching tuned to recruiting chats:
brands, Shanghai locations, age, schedule preference and urgency.
"""

import re
from typing import Iterable

from ctxbudget.memory.dictionary import DictionaryService, get_dictionary_service
from ctxbudget.memory.reference import TIME_PATTERNS, URGENCY_PATTERNS
from ctxbudget.memory.types import FactSet, Urgency

AGE_PATTERN = re.compile(r"(?<!\d)(\d{1,2})\s*岁")
MIN_WORKING_AGE = 16
MAX_WORKING_AGE = 70


def find_longest_matches(text: str, terms: Iterable[str]) -> list[str]:
    """
    Find the terms occurring in text, longest match first.

    A match lying inside a longer match is suppressed for that occurrence,
    so "天津肯德基" yields only "天津肯德基", not also "肯德基".

    Returns:
        Matched terms, deduplicated, in order of first appearance.
    """
    occurrences: list[tuple[int, int, str]] = []
    for term in set(terms):
        if not term:
            continue
        start = text.find(term)
        while start != -1:
            occurrences.append((start, start + len(term), term))
            start = text.find(term, start + 1)

    occurrences.sort(key=lambda o: (o[0] - o[1], o[0]))
    kept: list[tuple[int, int, str]] = []
    for start, end, term in occurrences:
        if any(k_start <= start and end <= k_end for k_start, k_end, _ in kept):
            continue
        kept.append((start, end, term))

    kept.sort()
    return list(dict.fromkeys(term for _, _, term in kept))


class FactExtractor:
    """Extracts facts with dictionaries from a shared DictionaryService."""

    def __init__(self, dictionary: DictionaryService | None = None):
        self._dictionary = dictionary

    @property
    def dictionary(self) -> DictionaryService:
        return self._dictionary or get_dictionary_service()

    def extract_brands(self, text: str) -> list[str]:
        """
        Extract brands.

        Business brand names and aliases are matched together; each match
        resolves to its brand, and the longest match wins where names nest.
        """
        cache = self.dictionary.get()
        matches = find_longest_matches(text, cache.brand_terms)
        return list(dict.fromkeys(cache.brand_terms[m] for m in matches))

    def extract_locations(self, text: str) -> list[str]:
        """Extract districts, business areas and metro stations."""
        return find_longest_matches(text, self.dictionary.get().location_terms)

    @staticmethod
    def extract_age(text: str) -> int | None:
        """Extract an age; only plausible working ages are accepted."""
        for match in AGE_PATTERN.finditer(text):
            age = int(match.group(1))
            if MIN_WORKING_AGE <= age <= MAX_WORKING_AGE:
                return age
        return None

    @staticmethod
    def extract_time_preferences(text: str) -> list[str]:
        return [
            preference
            for preference, keywords in TIME_PATTERNS.items()
            if any(keyword in text for keyword in keywords)
        ]

    @staticmethod
    def extract_urgency(text: str) -> Urgency | None:
        """Classify urgency; high beats medium beats low."""
        for level in ("high", "medium", "low"):
            if any(keyword in text for keyword in URGENCY_PATTERNS[level]):
                return level
        return None

    def extract_all(self, text: str) -> FactSet:
        return FactSet(
            brands=self.extract_brands(text),
            locations=self.extract_locations(text),
            age=self.extract_age(text),
            time_preferences=self.extract_time_preferences(text),
            urgency=self.extract_urgency(text),
        )


def extract_facts(text: str, dictionary: DictionaryService | None = None) -> FactSet:
    """Extract all facts from text with the shared dictionaries."""
    return FactExtractor(dictionary).extract_all(text)
