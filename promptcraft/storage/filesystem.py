"""JSON-file-per-prompt storage under one directory per category."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from pathlib import Path

from ..errors import PromptCraftError
from ..models import Prompt, PromptCategory, PromptSearchCriteria, UsageStatsProvider
from ..ranking import order_by_relevance
from ..repository import PromptRepository, empty_category_counts

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^\w\s-]")
_SEPARATORS = re.compile(r"[\s_-]+")


def slugify(text: str) -> str:
    slug = _UNSAFE_CHARS.sub("", text.lower())
    slug = _SEPARATORS.sub("-", slug)
    return slug.strip("-")


class FileSystemPromptRepository(PromptRepository):
    """Keeps every prompt in memory, loaded once from ``<base_dir>/<category>/*.json``.

    Files are named after the prompt's name. Renaming a prompt writes a new
    file and leaves the old one in place; delete removes only the file for
    the current name. Two prompts with the same name in the same category
    share one file, so after a reload only the last one saved remains.
    """

    def __init__(
        self,
        base_dir: Path | str,
        usage_stats_provider: UsageStatsProvider | None = None,
    ):
        super().__init__(usage_stats_provider)
        self.base_dir = Path(base_dir)
        self._prompts: dict[str, Prompt] = {}
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._prompts.clear()
        for category in PromptCategory:
            self._load_category(category)
        self._loaded = True
        logger.debug("Loaded %d prompts from %s", len(self._prompts), self.base_dir)

    def _load_category(self, category: PromptCategory) -> None:
        category_dir = self.base_dir / category.value
        if not category_dir.is_dir():
            logger.info("Category directory %s not found, skipping", category_dir)
            return

        try:
            files = sorted(category_dir.glob("*.json"))
        except OSError as e:
            logger.error("Failed to list %s: %s", category_dir, e)
            raise PromptCraftError.storage(f"load prompts from {category_dir}", str(e)) from e

        for path in files:
            try:
                prompt = Prompt.from_dict(json.loads(path.read_text(encoding="utf-8")))
            except (
                OSError,
                UnicodeDecodeError,
                json.JSONDecodeError,
                KeyError,
                TypeError,
                ValueError,
                AttributeError,
                PromptCraftError,
            ) as e:
                logger.warning("Failed to load prompt from %s: %s", path, e)
                continue
            self._prompts[prompt.id] = prompt

    def _path_for(self, prompt: Prompt) -> Path:
        file_stem = slugify(prompt.name) or prompt.id
        return self.base_dir / prompt.category.value / f"{file_stem}.json"

    def find_by_id(self, prompt_id: str) -> Prompt | None:
        self._ensure_loaded()
        return self._prompts.get(prompt_id)

    def find_all(self) -> list[Prompt]:
        self._ensure_loaded()
        return self._order(self._prompts.values())

    def search(self, criteria: PromptSearchCriteria) -> list[Prompt]:
        self._ensure_loaded()
        results = list(self._prompts.values())

        if criteria.category is not None:
            results = [p for p in results if p.category is criteria.category]

        if criteria.tags:
            wanted = set(criteria.tags)
            results = [p for p in results if wanted.intersection(p.tags)]

        if criteria.author:
            author = criteria.author.lower()
            results = [p for p in results if p.author and author in p.author.lower()]

        if criteria.query:
            results = order_by_relevance(results, criteria.query, self.usage_stats)
        else:
            results = self._order(results)

        limit = criteria.effective_limit
        return results[:limit] if limit else results

    def save(self, prompt: Prompt) -> None:
        self._ensure_loaded()
        path = self._path_for(prompt)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(prompt.to_dict(), indent=2), encoding="utf-8")
        except OSError as e:
            logger.error("Failed to write %s: %s", path, e)
            raise PromptCraftError.storage(f"save prompt with ID {prompt.id}", str(e)) from e
        self._prompts[prompt.id] = prompt

    def delete(self, prompt_id: str) -> bool:
        self._ensure_loaded()
        prompt = self._prompts.pop(prompt_id, None)
        if prompt is None:
            return False

        path = self._path_for(prompt)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("Prompt file %s already missing", path)
        except OSError as e:
            logger.warning("Failed to delete prompt file %s: %s", path, e)
        return True

    def exists(self, prompt_id: str) -> bool:
        self._ensure_loaded()
        return prompt_id in self._prompts

    def find_by_category(self, category: PromptCategory) -> list[Prompt]:
        self._ensure_loaded()
        category = PromptCategory.parse(category)
        return self._order(p for p in self._prompts.values() if p.category is category)

    def find_by_tags(self, tags: Sequence[str]) -> list[Prompt]:
        self._ensure_loaded()
        wanted = set(tags)
        return self._order(p for p in self._prompts.values() if wanted.intersection(p.tags))

    def count_by_category(self) -> dict[str, int]:
        self._ensure_loaded()
        counts = empty_category_counts()
        for prompt in self._prompts.values():
            counts[prompt.category.value] += 1
        return counts
