"""Three-tier session memory."""

import json
import math
import re
import time
from typing import Callable

from loguru import logger

from ctxbudget.config.schema import MemoryConfig
from ctxbudget.memory.extractor import FactExtractor
from ctxbudget.memory.types import FactType, LongTermFact, MemorySnapshot, WorkingValue

# Labelled fields ("位置：张江") catch values the dictionaries do not know
LABELLED_PATTERNS: dict[FactType, re.Pattern[str]] = {
    FactType.LOCATION: re.compile(r"(?:在|位于|地址|位置)[：:]\s*([^\s，。]+)"),
    FactType.BRAND: re.compile(r"品牌[：:]\s*([^\s，。]+)"),
    FactType.SCHEDULE: re.compile(r"(?:时间|排班)[：:]\s*([^\s，。]+)"),
}

_SCALAR_TYPES = (str, int, float, bool, type(None))


def render_exchange(user: str, assistant: str) -> str:
    return f"用户: {user}\n助手: {assistant}"


class MemoryManager:
    """
    Session memory in three tiers.

    1. Short-term: every exchange verbatim; bounded only when read.
    2. Working: a key/value scratchpad for the current session.
    3. Long-term: facts extracted from the exchanges, capped by cleanup().

    One manager per session; nothing here is shared between sessions.
    """

    def __init__(
        self,
        config: MemoryConfig | None = None,
        extractor: FactExtractor | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or MemoryConfig()
        self._extractor = extractor or FactExtractor()
        self._clock = clock
        self._last_stamp = 0
        self._short_term: list[str] = []
        self._working: dict[str, WorkingValue] = {}
        self._long_term: dict[str, LongTermFact] = {}

    @property
    def short_term_memory(self) -> list[str]:
        return self._short_term

    @property
    def working_memory(self) -> dict[str, WorkingValue]:
        return self._working

    @property
    def long_term_memory(self) -> dict[str, LongTermFact]:
        """The long-term store. The same dict for the manager's whole life."""
        return self._long_term

    def update_memory(self, user: str, assistant: str) -> None:
        """
        Record an exchange.

        Args:
            user: What the candidate said.
            assistant: What the assistant replied.
        """
        content = render_exchange(user, assistant)
        self._short_term.append(content)
        self._extract_to_long_term(content)

    def load_conversation_history(self, history: list[str]) -> None:
        """Replace short-term memory with already rendered exchanges."""
        self._short_term.clear()
        self._short_term.extend(history)

    def _next_stamp(self) -> int:
        """Millisecond stamp, strictly increasing even within one millisecond."""
        stamp = max(int(self._clock() * 1000), self._last_stamp + 1)
        self._last_stamp = stamp
        return stamp

    def _extract_to_long_term(self, content: str) -> None:
        stamp = self._next_stamp()
        facts = self._extractor.extract_all(content)

        for index, brand in enumerate(facts.brands):
            self._long_term[f"{FactType.BRAND.value}_{stamp}_{index}"] = brand
        for index, location in enumerate(facts.locations):
            self._long_term[f"{FactType.LOCATION.value}_{stamp}_{index}"] = location
        if facts.age is not None:
            self._long_term[f"{FactType.AGE.value}_{stamp}"] = facts.age
        for index, preference in enumerate(facts.time_preferences):
            self._long_term[f"{FactType.SCHEDULE.value}_{stamp}_{index}"] = preference
        if facts.urgency is not None:
            self._long_term[f"{FactType.URGENCY.value}_{stamp}"] = facts.urgency

        known = {
            FactType.BRAND: facts.brands,
            FactType.LOCATION: facts.locations,
            FactType.SCHEDULE: facts.time_preferences,
        }
        for fact_type, pattern in LABELLED_PATTERNS.items():
            for index, match in enumerate(pattern.finditer(content)):
                value = match.group(1)
                if value not in known[fact_type]:
                    self._long_term[f"{fact_type.value}_{stamp}_labelled{index}"] = value

        if not facts.is_empty():
            logger.debug(f"Extracted facts: {facts}")

    def get_optimized_context(self, token_budget: int | None = None) -> MemorySnapshot:
        """
        Render the three tiers within a token budget.

        Recent turns get a share of the budget but never drop below
        min_conversation_history entries.

        Args:
            token_budget: Token budget. Defaults to config.default_token_budget.

        Returns:
            A MemorySnapshot detached from the live stores.
        """
        cfg = self.config
        budget = token_budget or cfg.default_token_budget

        history_tokens = budget * cfg.history_budget_share
        max_entries = min(
            math.floor(history_tokens * cfg.chars_per_token / cfg.chars_per_entry),
            cfg.max_history_entries,
        )
        max_entries = max(max_entries, cfg.min_conversation_history)

        snapshot = MemorySnapshot(
            recent_turns=self._short_term[-max_entries:],
            working_entries=dict(self._working),
            long_term_facts=self._compress_long_term(),
        )
        return self._fit_to_budget(snapshot, budget)

    def snapshot(self, token_budget: int | None = None) -> MemorySnapshot:
        return self.get_optimized_context(token_budget)

    def _compress_long_term(self) -> dict[str, list[LongTermFact]]:
        """Group facts by type, deduplicate, keep the latest few per type."""
        grouped: dict[str, list[LongTermFact]] = {}
        for key, value in self._long_term.items():
            fact_type = key.split("_", 1)[0]
            grouped.setdefault(fact_type, []).append(value)

        cap = self.config.per_type_fact_cap
        return {
            fact_type: list(dict.fromkeys(values))[-cap:]
            for fact_type, values in grouped.items()
        }

    def estimate_tokens(self, snapshot: MemorySnapshot) -> float:
        rendered = json.dumps(snapshot.to_dict(), ensure_ascii=False)
        return len(rendered) / self.config.chars_per_token

    def _fit_to_budget(self, snapshot: MemorySnapshot, budget: int) -> MemorySnapshot:
        estimated = self.estimate_tokens(snapshot)
        minimum = self.config.min_conversation_history

        if estimated <= budget or len(snapshot.recent_turns) <= minimum:
            return snapshot

        keep = max(minimum, math.floor(len(snapshot.recent_turns) * budget / estimated))
        snapshot.recent_turns = snapshot.recent_turns[-keep:]
        return snapshot

    def set_working(self, key: str, value: WorkingValue) -> None:
        """Set a working memory entry. Only scalar values are accepted."""
        if not isinstance(value, _SCALAR_TYPES):
            raise TypeError(f"working memory values must be scalars, got {type(value).__name__}")
        self._working[key] = value

    def get_working(self, key: str, default: WorkingValue = None) -> WorkingValue:
        return self._working.get(key, default)

    def cleanup(self) -> None:
        """
        Cap long-term memory to the most recently inserted entries.

        The store is cleared and refilled in place so references held by
        callers stay valid.
        """
        cap = self.config.max_long_term_entries
        if len(self._long_term) <= cap:
            return

        to_keep = list(self._long_term.items())[-cap:]
        dropped = len(self._long_term) - cap
        self._long_term.clear()
        self._long_term.update(to_keep)
        logger.debug(f"Long-term memory cleanup dropped {dropped} entries")

    def reset(self) -> None:
        """Clear all three tiers."""
        self._short_term.clear()
        self._working.clear()
        self._long_term.clear()

    def get_memory_stats(self) -> dict[str, int]:
        """Get counts per tier and the estimated size of the default snapshot."""
        return {
            "short_term_count": len(self._short_term),
            "working_memory_count": len(self._working),
            "long_term_count": len(self._long_term),
            "estimated_tokens": math.ceil(self.estimate_tokens(self.get_optimized_context())),
        }
