import json
import logging
from pathlib import Path

import pytest

from promptcraft.config import (
    DEFAULT_PROMPTS_DIR,
    PromptCraftConfig,
    build_repository,
    build_services,
    json_file_usage_stats,
)
from promptcraft.errors import ErrorCode, PromptCraftError
from promptcraft.storage import FileSystemPromptRepository, SQLitePromptRepository

ENV_VARS = [
    "PROMPTCRAFT_BACKEND",
    "REPOSITORY_TYPE",
    "PROMPTS_DIRECTORY",
    "SQLITE_PATH",
    "DATABASE_URL",
    "PROMPTCRAFT_USAGE_FILE",
    "PROMPTCRAFT_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so values loaded from env files are undone at teardown
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestConfig:
    def test_defaults(self):
        config = PromptCraftConfig.from_env()
        assert config.backend == "filesystem"
        assert config.prompts_dir == DEFAULT_PROMPTS_DIR
        assert config.database_url is None
        assert config.usage_file is None
        assert config.log_level == "WARNING"

    def test_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PROMPTCRAFT_BACKEND", "sqlite")
        monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "x.db"))
        monkeypatch.setenv("PROMPTCRAFT_USAGE_FILE", str(tmp_path / "usage.json"))
        config = PromptCraftConfig.from_env()
        assert config.backend == "sqlite"
        assert config.sqlite_path == tmp_path / "x.db"
        assert config.usage_file == tmp_path / "usage.json"

    def test_repository_type_alias(self, monkeypatch):
        monkeypatch.setenv("REPOSITORY_TYPE", "database")
        assert PromptCraftConfig.from_env().backend == "postgres"

    def test_env_file(self, tmp_path):
        env_file = tmp_path / "custom.env"
        env_file.write_text(f"PROMPTS_DIRECTORY={tmp_path / 'mine'}\n")
        config = PromptCraftConfig.from_env(env_file)
        assert config.prompts_dir == tmp_path / "mine"

    def test_unknown_backend(self):
        with pytest.raises(PromptCraftError) as exc_info:
            PromptCraftConfig(backend="mongo")
        assert exc_info.value.code == ErrorCode.CONFIG


class TestBuildRepository:
    def test_filesystem(self, tmp_path):
        repo = build_repository(PromptCraftConfig(prompts_dir=tmp_path / "p"))
        assert isinstance(repo, FileSystemPromptRepository)
        assert repo.base_dir == tmp_path / "p"

    def test_sqlite(self, tmp_path):
        repo = build_repository(PromptCraftConfig(backend="sqlite", sqlite_path=tmp_path / "p.db"))
        assert isinstance(repo, SQLitePromptRepository)
        repo.close()

    def test_postgres_without_url_falls_back(self, tmp_path, caplog):
        config = PromptCraftConfig(backend="postgres", prompts_dir=tmp_path / "p")
        with caplog.at_level(logging.WARNING, logger="promptcraft.config"):
            repo = build_repository(config)
        assert isinstance(repo, FileSystemPromptRepository)
        assert "falling back to filesystem" in caplog.text

    def test_usage_file_wired(self, tmp_path, make_prompt):
        usage = tmp_path / "usage.json"
        usage.write_text(json.dumps({"favorites": ["b"], "recents": []}))
        services = build_services(
            PromptCraftConfig(prompts_dir=tmp_path / "p", usage_file=usage)
        )
        services.repository.save(make_prompt(id="a", name="A"))
        services.repository.save(make_prompt(id="b", name="B"))
        assert [p.id for p in services.use_cases.get_all_prompts()] == ["b", "a"]

    def test_explicit_repository(self, tmp_path):
        repo = FileSystemPromptRepository(tmp_path)
        services = build_services(PromptCraftConfig(), repository=repo)
        assert services.repository is repo
        assert services.use_cases.repository is repo


class TestUsageFile:
    def test_missing_file(self, tmp_path):
        stats = json_file_usage_stats(tmp_path / "none.json")()
        assert stats.favorites == frozenset()
        assert stats.recents == ()

    def test_broken_file_warns(self, tmp_path, caplog):
        path = tmp_path / "usage.json"
        path.write_text("[[[")
        with caplog.at_level(logging.WARNING, logger="promptcraft.config"):
            stats = json_file_usage_stats(path)()
        assert stats.favorites == frozenset()
        assert "Ignoring unreadable usage stats file" in caplog.text

    def test_reads_recents(self, tmp_path):
        path = tmp_path / "usage.json"
        path.write_text(
            json.dumps({"favorites": [], "recents": [{"id": "a", "usedAt": "2024-01-01T00:00:00Z"}]})
        )
        stats = json_file_usage_stats(Path(path))()
        assert stats.recents[0].prompt_id == "a"
