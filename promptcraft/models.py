from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Union

from .errors import PromptCraftError
from .template import extract_variables, fill_template, stringify_value

SCHEMA_VERSION = 1
DEFAULT_VERSION = "1.0.0"

VariableValue = Union[str, int, float, bool, Sequence[str]]

_REQUIRED_KEYS = ("id", "name", "content", "category", "createdAt", "updatedAt")


class PromptCategory(str, Enum):
    WORK = "work"
    PERSONAL = "personal"
    SHARED = "shared"

    @classmethod
    def parse(cls, value: object) -> "PromptCategory":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise PromptCraftError.invalid_category(value) from None


class VariableType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"


VALID_VARIABLE_TYPES = frozenset(t.value for t in VariableType)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: datetime | str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_datetime(value: datetime) -> str:
    """UTC ISO-8601 with fixed microsecond precision, so text order is time order."""
    utc = parse_datetime(value).astimezone(timezone.utc)
    return utc.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _is_missing(value: object) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _is_number(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, str):
        try:
            return math.isfinite(float(value))
        except ValueError:
            return False
    return False


@dataclass(frozen=True)
class PromptVariable:
    name: str
    description: str
    type: VariableType = VariableType.STRING
    required: bool = False
    default_value: VariableValue | None = None

    def __post_init__(self):
        if not isinstance(self.type, VariableType):
            try:
                object.__setattr__(self, "type", VariableType(self.type))
            except ValueError:
                raise PromptCraftError.invalid_variable_type(self.type) from None
        if isinstance(self.default_value, list):
            object.__setattr__(self, "default_value", tuple(self.default_value))

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "required": self.required,
        }
        if self.default_value is not None:
            default = self.default_value
            data["defaultValue"] = list(default) if isinstance(default, tuple) else default
        return data

    @classmethod
    def from_dict(cls, data: Mapping) -> "PromptVariable":
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            type=data.get("type", VariableType.STRING.value),
            required=bool(data.get("required", False)),
            default_value=data.get("defaultValue"),
        )


@dataclass(frozen=True)
class Prompt:
    """A stored prompt template.

    Instances are never modified; ``with_updated_content`` and
    ``with_favorite`` return new values.
    """

    id: str
    name: str
    description: str
    content: str
    category: PromptCategory
    created_at: datetime
    updated_at: datetime
    tags: tuple[str, ...] = ()
    version: str = DEFAULT_VERSION
    author: str | None = None
    variables: tuple[PromptVariable, ...] = ()
    is_favorite: bool = False

    def __post_init__(self):
        object.__setattr__(self, "category", PromptCategory.parse(self.category))
        object.__setattr__(self, "tags", tuple(self.tags or ()))
        object.__setattr__(
            self,
            "variables",
            tuple(
                v if isinstance(v, PromptVariable) else PromptVariable.from_dict(v)
                for v in (self.variables or ())
            ),
        )
        object.__setattr__(self, "created_at", parse_datetime(self.created_at))
        object.__setattr__(self, "updated_at", parse_datetime(self.updated_at))

    def with_updated_content(
        self,
        name: str | None = None,
        description: str | None = None,
        content: str | None = None,
        tags: Sequence[str] | None = None,
        author: str | None = None,
        variables: Sequence[PromptVariable | Mapping] | None = None,
        now: datetime | None = None,
    ) -> "Prompt":
        updated_at = now or utcnow()
        if updated_at <= self.updated_at:
            updated_at = self.updated_at + timedelta(microseconds=1)
        return replace(
            self,
            name=self.name if name is None else name,
            description=self.description if description is None else description,
            content=self.content if content is None else content,
            tags=self.tags if tags is None else tags,
            author=self.author if author is None else author,
            variables=self.variables if variables is None else variables,
            updated_at=updated_at,
        )

    def with_favorite(self, is_favorite: bool) -> "Prompt":
        return replace(self, is_favorite=is_favorite)

    def render_with_variables(self, values: Mapping[str, VariableValue] | None = None) -> str:
        """Substitute declared variables into ``content``.

        A missing or empty value falls back to the variable's default, then
        to an empty string. Placeholders without a declaration stay as-is.
        """
        values = values or {}
        resolved: dict[str, str] = {}
        for variable in self.variables:
            value = values.get(variable.name)
            if _is_missing(value):
                value = variable.default_value
            resolved[variable.name] = stringify_value(value)
        return fill_template(self.content, resolved)

    def validate_variables(self, values: Mapping[str, VariableValue] | None = None) -> list[str]:
        values = values or {}
        errors: list[str] = []
        for variable in self.variables:
            value = values.get(variable.name)
            if _is_missing(value):
                if variable.required:
                    errors.append(f"Variable '{variable.name}' is required but not provided")
                continue

            if variable.type is VariableType.NUMBER and not _is_number(value):
                errors.append(f"Variable '{variable.name}' must be a number")
            elif variable.type is VariableType.BOOLEAN and not (
                isinstance(value, bool) or value in ("true", "false")
            ):
                errors.append(f"Variable '{variable.name}' must be a boolean")
            elif variable.type is VariableType.ARRAY and not isinstance(
                value, (list, tuple, str)
            ):
                errors.append(f"Variable '{variable.name}' must be an array or string")
        return errors

    def validate_consistency(self) -> tuple[list[str], list[str]]:
        """Compare placeholders in ``content`` with declared variables.

        Returns (errors, warnings): undeclared placeholders are errors,
        unused declarations are warnings.
        """
        placeholders = extract_variables(self.content)
        declared = [v.name for v in self.variables]
        errors = [
            f"Placeholder '{{{{{name}}}}}' found in content but no variable declared"
            for name in placeholders
            if name not in declared
        ]
        warnings = [
            f"Variable '{name}' is declared but not used in prompt content"
            for name in declared
            if name not in placeholders
        ]
        return errors, warnings

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "content": self.content,
            "category": self.category.value,
            "tags": list(self.tags),
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
            "version": self.version,
            "isFavorite": self.is_favorite,
        }
        if self.author is not None:
            data["author"] = self.author
        if self.variables:
            data["variables"] = [v.to_dict() for v in self.variables]
        return data

    @classmethod
    def from_dict(cls, data: Mapping) -> "Prompt":
        missing = [key for key in _REQUIRED_KEYS if key not in data]
        if missing:
            raise PromptCraftError.invalid_prompt_data(f"missing {', '.join(missing)}")
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            content=data["content"],
            category=data["category"],
            created_at=data["createdAt"],
            updated_at=data["updatedAt"],
            tags=data.get("tags") or (),
            version=data.get("version") or DEFAULT_VERSION,
            author=data.get("author"),
            variables=data.get("variables") or (),
            is_favorite=bool(data.get("isFavorite", False)),
        )


@dataclass(frozen=True)
class PromptSearchCriteria:
    """Conjunctive search filters; every field is optional."""

    query: str | None = None
    category: PromptCategory | None = None
    tags: tuple[str, ...] = ()
    author: str | None = None
    limit: int | None = None

    def __post_init__(self):
        if self.category is not None:
            object.__setattr__(self, "category", PromptCategory.parse(self.category))
        object.__setattr__(self, "tags", tuple(self.tags or ()))

    @property
    def effective_limit(self) -> int | None:
        if self.limit and self.limit > 0:
            return self.limit
        return None


@dataclass(frozen=True)
class RecentUse:
    prompt_id: str
    used_at: datetime


@dataclass(frozen=True)
class UsageStats:
    """Favorite and recency signals; ``recents`` is most-recent-first."""

    favorites: frozenset[str] = field(default_factory=frozenset)
    recents: tuple[RecentUse, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping) -> "UsageStats":
        recents = []
        for entry in data.get("recents") or []:
            prompt_id = entry.get("id") or entry.get("promptId")
            used_at = entry.get("usedAt")
            if not prompt_id or not used_at:
                continue
            recents.append(RecentUse(prompt_id=prompt_id, used_at=parse_datetime(used_at)))
        return cls(favorites=frozenset(data.get("favorites") or ()), recents=tuple(recents))

    @classmethod
    def coerce(cls, value: "UsageStats | Mapping | None") -> "UsageStats":
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        return cls.from_dict(value)


UsageStatsProvider = Callable[[], Union[UsageStats, Mapping, None]]
