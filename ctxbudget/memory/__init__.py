"""
Three-tier session memory with fact extraction.

- Short-term: recent exchanges kept verbatim
- Working: per-session key/value scratchpad
- Long-term: brands, locations, age, schedule and urgency extracted from
  the exchanges, deduplicated and capped
"""

from ctxbudget.memory.dictionary import (
    DictionaryCache,
    DictionaryService,
    clear_dictionary_cache,
    get_dictionary_service,
)
from ctxbudget.memory.extractor import FactExtractor, extract_facts, find_longest_matches
from ctxbudget.memory.manager import MemoryManager
from ctxbudget.memory.reference import ReferenceData
from ctxbudget.memory.types import FactSet, FactType, MemorySnapshot

__all__ = [
    "DictionaryCache",
    "DictionaryService",
    "clear_dictionary_cache",
    "get_dictionary_service",
    "FactExtractor",
    "extract_facts",
    "find_longest_matches",
    "MemoryManager",
    "ReferenceData",
    "FactSet",
    "FactType",
    "MemorySnapshot",
]
