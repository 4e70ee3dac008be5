from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence

from .models import Prompt, PromptCategory, PromptSearchCriteria, UsageStats, UsageStatsProvider
from .ranking import order_prompts


def empty_category_counts() -> dict[str, int]:
    return {category.value: 0 for category in PromptCategory}


class PromptRepository(ABC):
    """Storage contract every backend implements identically.

    Listing operations return prompts newest first. When a usage-stats
    provider is given, its snapshot is fetched once per instance and the
    usage score becomes the primary sort key.
    """

    def __init__(self, usage_stats_provider: UsageStatsProvider | None = None):
        self.usage_stats_provider = usage_stats_provider
        self._usage_stats: UsageStats | None = None

    @property
    def usage_stats(self) -> UsageStats | None:
        if self.usage_stats_provider is None:
            return None
        if self._usage_stats is None:
            self._usage_stats = UsageStats.coerce(self.usage_stats_provider())
        return self._usage_stats

    def _order(self, prompts: Iterable[Prompt]) -> list[Prompt]:
        return order_prompts(prompts, self.usage_stats)

    @abstractmethod
    def find_by_id(self, prompt_id: str) -> Prompt | None: ...

    @abstractmethod
    def find_all(self) -> list[Prompt]: ...

    @abstractmethod
    def search(self, criteria: PromptSearchCriteria) -> list[Prompt]: ...

    @abstractmethod
    def save(self, prompt: Prompt) -> None:
        """Insert or fully overwrite the record with ``prompt.id``."""

    @abstractmethod
    def delete(self, prompt_id: str) -> bool:
        """Return True if a record was removed, False if none existed."""

    @abstractmethod
    def exists(self, prompt_id: str) -> bool: ...

    @abstractmethod
    def find_by_category(self, category: PromptCategory) -> list[Prompt]: ...

    @abstractmethod
    def find_by_tags(self, tags: Sequence[str]) -> list[Prompt]: ...

    @abstractmethod
    def count_by_category(self) -> dict[str, int]: ...
