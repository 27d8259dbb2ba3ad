"""
OpenAI usage and spending guard.

Keeps per-day token counts and estimated dollar cost for chat completions and
embeddings, and answers whether another completion is allowed under the daily
and rolling 30-day limits. In-memory only, like the embeddings.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# USD per token
PRICING = {
    "gpt-4o-mini": {"input": 0.15 / 1_000_000, "output": 0.60 / 1_000_000},
    "gpt-4o": {"input": 2.50 / 1_000_000, "output": 10.00 / 1_000_000},
    "text-embedding-3-small": {"input": 0.02 / 1_000_000},
    "text-embedding-3-large": {"input": 0.13 / 1_000_000},
}
DEFAULT_CHAT_PRICING = PRICING["gpt-4o-mini"]
DEFAULT_EMBEDDING_PRICING = PRICING["text-embedding-3-small"]


@dataclass
class DailyUsage:
    completion_requests: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    completion_cost: float = 0.0
    embedding_requests: int = 0
    embedding_tokens: int = 0
    embedding_cost: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.completion_cost + self.embedding_cost


@dataclass
class UsageMonitor:
    daily_limit: float = 5.00
    monthly_limit: float = 100.00
    today: Callable[[], date] = date.today
    _days: Dict[date, DailyUsage] = field(default_factory=dict)

    def _usage(self, day: Optional[date] = None) -> DailyUsage:
        day = day or self.today()
        if day not in self._days:
            self._days[day] = DailyUsage()
        return self._days[day]

    def record_completion(self, model: str, prompt_tokens: int, completion_tokens: int) -> float:
        pricing = PRICING.get(model, DEFAULT_CHAT_PRICING)
        cost = prompt_tokens * pricing["input"] + completion_tokens * pricing.get("output", 0.0)
        usage = self._usage()
        usage.completion_requests += 1
        usage.prompt_tokens += prompt_tokens
        usage.completion_tokens += completion_tokens
        usage.completion_cost += cost
        logger.info(f"[USAGE] Chat completion: {prompt_tokens}+{completion_tokens} tokens, ${cost:.4f}")
        return cost

    def record_embedding(self, model: str, tokens: int) -> float:
        pricing = PRICING.get(model, DEFAULT_EMBEDDING_PRICING)
        cost = tokens * pricing["input"]
        usage = self._usage()
        usage.embedding_requests += 1
        usage.embedding_tokens += tokens
        usage.embedding_cost += cost
        logger.info(f"[USAGE] Embedding: {tokens} tokens, ${cost:.4f}")
        return cost

    def monthly_total(self) -> float:
        end = self.today()
        start = end - timedelta(days=30)
        return sum(u.total_cost for day, u in self._days.items() if start <= day <= end)

    def check_limits(self) -> Tuple[bool, Optional[str]]:
        if self._usage().total_cost >= self.daily_limit:
            return False, "Daily spending limit reached"
        if self.monthly_total() >= self.monthly_limit:
            return False, "Monthly spending limit reached"
        return True, None

    def daily_stats(self, day: Optional[date] = None) -> DailyUsage:
        return self._usage(day)
