from enum import Enum


class ErrorCode(Enum):
    PROMPT_NOT_FOUND = "prompt_not_found"
    INVALID_CATEGORY = "invalid_category"
    INVALID_VARIABLE_TYPE = "invalid_variable_type"
    INVALID_PROMPT_DATA = "invalid_prompt_data"
    SCHEMA_VERSION = "schema_version"
    STORAGE = "storage"
    CONFIG = "config"


class PromptCraftError(Exception):
    def __init__(self, code: ErrorCode, message: str):
        self.code = code
        self.message = message
        super().__init__(message)

    @classmethod
    def prompt_not_found(cls, prompt_id: str) -> "PromptCraftError":
        return cls(ErrorCode.PROMPT_NOT_FOUND, f"Prompt with ID {prompt_id} not found")

    @classmethod
    def invalid_category(cls, value: object) -> "PromptCraftError":
        return cls(
            ErrorCode.INVALID_CATEGORY,
            f"Invalid category: {value!r}. Must be one of work, personal, shared",
        )

    @classmethod
    def invalid_variable_type(cls, value: object) -> "PromptCraftError":
        return cls(
            ErrorCode.INVALID_VARIABLE_TYPE,
            f"Invalid variable type: {value!r}. Must be one of string, number, boolean, array",
        )

    @classmethod
    def invalid_prompt_data(cls, detail: str) -> "PromptCraftError":
        return cls(ErrorCode.INVALID_PROMPT_DATA, f"Invalid prompt data: {detail}")

    @classmethod
    def schema_version(cls, expected: int, got: int) -> "PromptCraftError":
        return cls(
            ErrorCode.SCHEMA_VERSION,
            f"Schema version mismatch: expected {expected}, got {got}",
        )

    @classmethod
    def storage(cls, operation: str, detail: str) -> "PromptCraftError":
        return cls(ErrorCode.STORAGE, f"Failed to {operation}: {detail}")

    @classmethod
    def config(cls, detail: str) -> "PromptCraftError":
        return cls(ErrorCode.CONFIG, f"Configuration error: {detail}")
