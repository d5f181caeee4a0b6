"""
Brand and location dictionaries with a two-way invalidated cache.

The dictionaries are built once from the reference data and cached:

1. invalidate() drops the cache right after the reference data changes.
2. A TTL (5 minutes by default) expires it in case a write path forgot to.

The service is shared by every session of a process. Reads go lock-free
against an immutable snapshot; rebuilds and invalidation take a lock.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from ctxbudget.memory.reference import ReferenceData


@dataclass(frozen=True)
class DictionaryCache:
    """An immutable snapshot of the built dictionaries."""

    brand_dictionary: dict[str, list[str]]  # brand -> aliases
    brand_terms: dict[str, str]  # every matchable name or alias -> brand
    districts: list[str]  # districts and their short forms
    areas: list[str]
    stations: list[str]
    built_at: float

    @property
    def location_terms(self) -> list[str]:
        return list(dict.fromkeys([*self.districts, *self.areas, *self.stations]))


def build_brand_dictionary(reference: ReferenceData) -> dict[str, list[str]]:
    """
    Build brand -> aliases, business brands first.

    An alias that is itself a business brand (a regional brand listed under
    its parent) is dropped from the parent so it keeps its own identity.
    """
    actual = list(dict.fromkeys(reference.organizations.values()))
    actual_set = set(actual)
    dictionary: dict[str, list[str]] = {}

    for brand in actual:
        predefined = reference.brand_aliases.get(brand, [])
        valid = [a for a in predefined if a not in actual_set or a == brand]
        dictionary[brand] = valid or [brand]

    for brand, aliases in reference.brand_aliases.items():
        if brand not in dictionary:
            dictionary[brand] = list(aliases)

    return dictionary


def build_location_terms(reference: ReferenceData) -> list[str]:
    """Districts with their aliases; unknown districts get the suffix-less form."""
    terms: list[str] = []
    for district in reference.regions.values():
        aliases = reference.district_aliases.get(district)
        if aliases:
            terms.extend(aliases)
        else:
            terms.append(district)
            if district.endswith("区"):
                terms.append(district[:-1])
    return list(dict.fromkeys(terms))


def build_dictionaries(reference: ReferenceData, built_at: float) -> DictionaryCache:
    brand_dictionary = build_brand_dictionary(reference)
    actual = frozenset(reference.organizations.values())

    brand_terms: dict[str, str] = {}
    for brand, aliases in brand_dictionary.items():
        brand_terms.setdefault(brand, brand)
        for alias in aliases:
            # A business brand name always resolves to itself
            if alias in actual and alias != brand:
                continue
            brand_terms.setdefault(alias, brand)

    return DictionaryCache(
        brand_dictionary=brand_dictionary,
        brand_terms=brand_terms,
        districts=build_location_terms(reference),
        areas=list(reference.areas),
        stations=list(reference.stations),
        built_at=built_at,
    )


class DictionaryService:
    """
    Owns the reference data and the cached dictionaries built from it.

    Tests inject a clock to drive the TTL deterministically.
    """

    def __init__(
        self,
        reference: ReferenceData | None = None,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._reference = reference or ReferenceData()
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: DictionaryCache | None = None
        self._lock = threading.Lock()
        self._build_count = 0

    @property
    def reference(self) -> ReferenceData:
        return self._reference

    @property
    def build_count(self) -> int:
        """Number of times the dictionaries were (re)built."""
        return self._build_count

    def _is_fresh(self, cache: DictionaryCache | None) -> bool:
        return cache is not None and self._clock() - cache.built_at < self.ttl_seconds

    def is_valid(self) -> bool:
        """True if a cache exists and has not expired."""
        return self._is_fresh(self._cache)

    def get(self) -> DictionaryCache:
        """Return the cached dictionaries, rebuilding them if missing or expired."""
        cache = self._cache
        if self._is_fresh(cache):
            return cache

        with self._lock:
            cache = self._cache
            if self._is_fresh(cache):
                return cache
            if cache is not None:
                logger.debug("Dictionary cache TTL expired, rebuilding")
            cache = build_dictionaries(self._reference, self._clock())
            self._cache = cache
            self._build_count += 1
            return cache

    def invalidate(self) -> None:
        """Drop the cache now. Call after any write to the reference data."""
        with self._lock:
            if self._cache is not None:
                logger.debug("Dictionary cache invalidated")
            self._cache = None

    def update_reference(self, reference: ReferenceData) -> None:
        """Replace the reference data and invalidate the cache."""
        with self._lock:
            self._reference = reference
            self._cache = None
        logger.info(
            f"Reference data updated: {len(reference.organizations)} brands, "
            f"{len(reference.regions)} regions"
        )


_default_service: DictionaryService | None = None
_default_lock = threading.Lock()


def get_dictionary_service() -> DictionaryService:
    """Get the process-wide dictionary service."""
    global _default_service
    if _default_service is None:
        with _default_lock:
            if _default_service is None:
                _default_service = DictionaryService()
    return _default_service


def clear_dictionary_cache() -> None:
    """Invalidate the process-wide dictionary cache."""
    get_dictionary_service().invalidate()
