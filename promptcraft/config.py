"""Configuration and the explicit repository/use-case factory."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import PromptCraftError
from .models import UsageStats, UsageStatsProvider
from .repository import PromptRepository
from .usecases import PromptUseCases

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".prompt-craft"
DEFAULT_PROMPTS_DIR = CONFIG_DIR / "prompts"
DEFAULT_SQLITE_PATH = CONFIG_DIR / "prompts.db"

BACKENDS = ("filesystem", "sqlite", "postgres")
BACKEND_ALIASES = {"database": "postgres", "postgresql": "postgres", "fs": "filesystem"}


def json_file_usage_stats(path: Path) -> UsageStatsProvider:
    """Usage provider reading ``{"favorites": [...], "recents": [...]}`` from a file.

    A missing or unreadable file yields empty stats.
    """

    def provider() -> UsageStats:
        try:
            return UsageStats.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except FileNotFoundError:
            return UsageStats()
        except (OSError, ValueError, AttributeError, TypeError) as e:
            logger.warning("Ignoring unreadable usage stats file %s: %s", path, e)
            return UsageStats()

    return provider


@dataclass
class PromptCraftConfig:
    backend: str = "filesystem"
    prompts_dir: Path = DEFAULT_PROMPTS_DIR
    sqlite_path: Path = DEFAULT_SQLITE_PATH
    database_url: str | None = None
    usage_file: Path | None = None
    log_level: str = "WARNING"

    def __post_init__(self):
        backend = self.backend.lower()
        backend = BACKEND_ALIASES.get(backend, backend)
        if backend not in BACKENDS:
            raise PromptCraftError.config(
                f"unknown backend {self.backend!r}, expected one of {', '.join(BACKENDS)}"
            )
        self.backend = backend

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "PromptCraftConfig":
        load_dotenv(env_file)
        usage_file = os.getenv("PROMPTCRAFT_USAGE_FILE")
        return cls(
            backend=os.getenv("PROMPTCRAFT_BACKEND") or os.getenv("REPOSITORY_TYPE") or "filesystem",
            prompts_dir=Path(os.getenv("PROMPTS_DIRECTORY") or DEFAULT_PROMPTS_DIR),
            sqlite_path=Path(os.getenv("SQLITE_PATH") or DEFAULT_SQLITE_PATH),
            database_url=os.getenv("DATABASE_URL") or None,
            usage_file=Path(usage_file) if usage_file else None,
            log_level=os.getenv("PROMPTCRAFT_LOG_LEVEL") or "WARNING",
        )

    def usage_stats_provider(self) -> UsageStatsProvider | None:
        if self.usage_file is None:
            return None
        return json_file_usage_stats(self.usage_file)


@dataclass
class Services:
    repository: PromptRepository
    use_cases: PromptUseCases


def build_repository(config: PromptCraftConfig) -> PromptRepository:
    provider = config.usage_stats_provider()

    if config.backend == "postgres":
        if config.database_url:
            from .storage.postgres import PostgresPromptRepository

            logger.info("Using PostgreSQL repository")
            return PostgresPromptRepository.connect(config.database_url, provider)
        logger.warning(
            "Backend is postgres but DATABASE_URL is not configured, "
            "falling back to filesystem repository"
        )

    if config.backend == "sqlite":
        from .storage.sqlite import SQLitePromptRepository

        logger.info("Using SQLite repository at %s", config.sqlite_path)
        return SQLitePromptRepository(db_path=config.sqlite_path, usage_stats_provider=provider)

    from .storage.filesystem import FileSystemPromptRepository

    logger.info("Using filesystem repository at %s", config.prompts_dir)
    return FileSystemPromptRepository(config.prompts_dir, usage_stats_provider=provider)


def build_services(config: PromptCraftConfig, repository: PromptRepository | None = None) -> Services:
    repository = repository or build_repository(config)
    return Services(repository=repository, use_cases=PromptUseCases(repository))
