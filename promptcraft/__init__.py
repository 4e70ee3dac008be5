"""PromptCraft: prompt template storage, search and rendering."""

from .errors import ErrorCode, PromptCraftError
from .models import (
    Prompt,
    PromptCategory,
    PromptSearchCriteria,
    PromptVariable,
    UsageStats,
    VariableType,
)
from .repository import PromptRepository
from .usecases import (
    CreatePromptDTO,
    PromptUseCases,
    RenderPromptDTO,
    RenderResult,
    UpdatePromptDTO,
)

__all__ = [
    "ErrorCode",
    "PromptCraftError",
    "Prompt",
    "PromptCategory",
    "PromptSearchCriteria",
    "PromptVariable",
    "UsageStats",
    "VariableType",
    "PromptRepository",
    "CreatePromptDTO",
    "UpdatePromptDTO",
    "RenderPromptDTO",
    "RenderResult",
    "PromptUseCases",
]
