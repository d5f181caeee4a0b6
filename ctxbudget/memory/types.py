"""Types for the memory tiers."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Union

Urgency = Literal["high", "medium", "low"]
WorkingValue = Union[str, int, float, bool, None]
LongTermFact = Union[str, int]


class FactType(str, Enum):
    """Kinds of facts kept in long-term memory. Values prefix the store keys."""

    BRAND = "brand"
    LOCATION = "location"
    AGE = "age"
    SCHEDULE = "schedule"
    URGENCY = "urgency"


@dataclass
class FactSet:
    """Everything the extractor found in one text."""

    brands: list[str] = field(default_factory=list)
    locations: list[str] = field(default_factory=list)
    age: int | None = None
    time_preferences: list[str] = field(default_factory=list)
    urgency: Urgency | None = None

    def is_empty(self) -> bool:
        return not (self.brands or self.locations or self.time_preferences) and (
            self.age is None and self.urgency is None
        )


@dataclass
class MemorySnapshot:
    """Bounded view of the three memory tiers."""

    recent_turns: list[str] = field(default_factory=list)
    working_entries: dict[str, WorkingValue] = field(default_factory=dict)
    long_term_facts: dict[str, list[LongTermFact]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "recent": list(self.recent_turns),
            "facts": {k: list(v) for k, v in self.long_term_facts.items()},
            "working": dict(self.working_entries),
        }
