from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from .errors import PromptCraftError
from .models import (
    DEFAULT_VERSION,
    VALID_VARIABLE_TYPES,
    Prompt,
    PromptCategory,
    PromptSearchCriteria,
    PromptVariable,
    VariableType,
    VariableValue,
    utcnow,
)
from .repository import PromptRepository

logger = logging.getLogger(__name__)


@dataclass
class CreatePromptDTO:
    name: str
    description: str
    content: str
    category: PromptCategory | str
    tags: Sequence[str] | None = None
    author: str | None = None
    version: str | None = None
    variables: Sequence[PromptVariable | Mapping] | None = None
    is_favorite: bool = False


@dataclass
class UpdatePromptDTO:
    """Fields left as None keep their stored value."""

    id: str
    name: str | None = None
    description: str | None = None
    content: str | None = None
    tags: Sequence[str] | None = None
    author: str | None = None
    variables: Sequence[PromptVariable | Mapping] | None = None
    is_favorite: bool | None = None


@dataclass
class RenderPromptDTO:
    id: str
    variable_values: dict[str, VariableValue] = field(default_factory=dict)


@dataclass(frozen=True)
class RenderResult:
    rendered: str
    errors: list[str]

    def to_dict(self) -> dict:
        return {"rendered": self.rendered, "errors": list(self.errors)}


def _variable_fields(variable: PromptVariable | Mapping) -> tuple[object, object, object]:
    if isinstance(variable, PromptVariable):
        return variable.name, variable.description, variable.type.value
    return variable.get("name"), variable.get("description"), variable.get("type")


def _is_blank(value: object) -> bool:
    return not isinstance(value, str) or not value.strip()


class PromptUseCases:
    """Application operations over a single repository.

    Ids and timestamps are assigned here; template logic lives on ``Prompt``.
    """

    def __init__(
        self,
        repository: PromptRepository,
        generate_id: Callable[[], str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self._generate_id = generate_id or (lambda: str(uuid4()))
        self._clock = clock or utcnow

    def create_prompt(self, dto: CreatePromptDTO) -> Prompt:
        now = self._clock()
        prompt = Prompt(
            id=self._generate_id(),
            name=dto.name,
            description=dto.description,
            content=dto.content,
            category=dto.category,
            created_at=now,
            updated_at=now,
            tags=dto.tags or (),
            version=dto.version or DEFAULT_VERSION,
            author=dto.author,
            variables=dto.variables or (),
            is_favorite=dto.is_favorite,
        )
        self.repository.save(prompt)
        logger.info("Created prompt %s (%s)", prompt.id, prompt.name)
        return prompt

    def update_prompt(self, dto: UpdatePromptDTO) -> Prompt:
        existing = self.repository.find_by_id(dto.id)
        if existing is None:
            raise PromptCraftError.prompt_not_found(dto.id)

        updated = existing.with_updated_content(
            name=dto.name,
            description=dto.description,
            content=dto.content,
            tags=dto.tags,
            author=dto.author,
            variables=dto.variables,
            now=self._clock(),
        )
        if dto.is_favorite is not None:
            updated = updated.with_favorite(dto.is_favorite)

        self.repository.save(updated)
        logger.info("Updated prompt %s", updated.id)
        return updated

    def delete_prompt(self, prompt_id: str) -> bool:
        if not self.repository.exists(prompt_id):
            return False
        deleted = self.repository.delete(prompt_id)
        if deleted:
            logger.info("Deleted prompt %s", prompt_id)
        return deleted

    def get_prompt_by_id(self, prompt_id: str) -> Prompt | None:
        return self.repository.find_by_id(prompt_id)

    def get_all_prompts(self) -> list[Prompt]:
        return self.repository.find_all()

    def search_prompts(self, criteria: PromptSearchCriteria) -> list[Prompt]:
        return self.repository.search(criteria)

    def get_prompts_by_category(self, category: PromptCategory | str) -> list[Prompt]:
        return self.repository.find_by_category(PromptCategory.parse(category))

    def get_prompts_by_tags(self, tags: Sequence[str]) -> list[Prompt]:
        return self.repository.find_by_tags(tags)

    def get_category_statistics(self) -> dict[str, int]:
        counts = self.repository.count_by_category()
        return {"total": sum(counts.values()), **counts}

    def render_prompt(self, dto: RenderPromptDTO) -> RenderResult:
        """Render even when validation fails; the errors are advisory."""
        prompt = self.repository.find_by_id(dto.id)
        if prompt is None:
            raise PromptCraftError.prompt_not_found(dto.id)
        errors = prompt.validate_variables(dto.variable_values)
        rendered = prompt.render_with_variables(dto.variable_values)
        return RenderResult(rendered=rendered, errors=errors)

    def set_favorite(self, prompt_id: str, is_favorite: bool) -> Prompt | None:
        existing = self.repository.find_by_id(prompt_id)
        if existing is None:
            return None
        updated = existing.with_favorite(is_favorite)
        self.repository.save(updated)
        return updated

    def validate_prompt_data(self, dto: CreatePromptDTO | UpdatePromptDTO) -> list[str]:
        """Field-level checks for callers to run before create/update.

        For updates only the fields being changed are checked.
        """
        errors: list[str] = []
        partial = isinstance(dto, UpdatePromptDTO)

        for field_name in ("name", "description", "content"):
            value = getattr(dto, field_name)
            if partial and value is None:
                continue
            if _is_blank(value):
                errors.append(f"Prompt {field_name} is required")

        for index, variable in enumerate(dto.variables or (), start=1):
            name, description, variable_type = _variable_fields(variable)
            if _is_blank(name):
                errors.append(f"Variable {index}: name is required")
            if _is_blank(description):
                errors.append(f"Variable {index}: description is required")
            if isinstance(variable_type, VariableType):
                variable_type = variable_type.value
            if not isinstance(variable_type, str) or variable_type not in VALID_VARIABLE_TYPES:
                errors.append(f"Variable {index}: invalid type")

        return errors
