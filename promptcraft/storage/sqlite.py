from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from pathlib import Path

from ..errors import PromptCraftError
from ..models import (
    SCHEMA_VERSION,
    Prompt,
    PromptCategory,
    PromptSearchCriteria,
    UsageStatsProvider,
    format_datetime,
)
from ..repository import PromptRepository, empty_category_counts
from .sql import escape_like

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".prompt-craft" / "prompts.db"

# Trigram tokens need at least three characters to match.
FTS_MIN_QUERY_LENGTH = 3

_TAG_MATCH = "EXISTS (SELECT 1 FROM json_each(prompts.tags) WHERE {condition})"

# Pattern matches fold case with Python's str.lower, as the filesystem backend does.
_LIKE = "unicode_lower({column}) LIKE unicode_lower(?) ESCAPE '\\'"


def _tag_text(column: str) -> str:
    """Tags as newline-separated text; a phrase never spans two tags."""
    return (
        "(SELECT group_concat(value, char(10)) FROM json_each("
        f"CASE WHEN json_valid({column}) THEN {column} ELSE '[]' END))"
    )


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _fts_phrase(query: str) -> str:
    escaped = query.replace('"', '""')
    return '{name description content tags} : "' + escaped + '"'


class SQLitePromptRepository(PromptRepository):
    def __init__(
        self,
        db_path: Path | None = None,
        usage_stats_provider: UsageStatsProvider | None = None,
        connection: sqlite3.Connection | None = None,
    ):
        super().__init__(usage_stats_provider)
        if connection is None:
            self.db_path = db_path or DEFAULT_DB_PATH
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(str(self.db_path))
        else:
            self.db_path = db_path
        self._conn = connection
        self._conn.row_factory = sqlite3.Row
        self._conn.create_function("unicode_lower", 1, _unicode_lower, deterministic=True)
        self.fts_enabled = False
        self.init_db()

    def init_db(self) -> None:
        try:
            self._conn.executescript("""
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS prompts (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL,
                    content TEXT NOT NULL,
                    category TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    version TEXT NOT NULL DEFAULT '1.0.0',
                    author TEXT,
                    variables TEXT,
                    is_favorite INTEGER NOT NULL DEFAULT 0
                );

                CREATE INDEX IF NOT EXISTS prompts_category_idx ON prompts(category);
                CREATE INDEX IF NOT EXISTS prompts_name_idx ON prompts(name);
                CREATE INDEX IF NOT EXISTS prompts_author_idx ON prompts(author);
                CREATE INDEX IF NOT EXISTS prompts_updated_at_idx ON prompts(updated_at);
            """)
            row = self._conn.execute(
                "SELECT value FROM meta WHERE key = 'schema_version'"
            ).fetchone()
            if row is None:
                self._conn.execute(
                    "INSERT INTO meta (key, value) VALUES ('schema_version', ?)",
                    (str(SCHEMA_VERSION),),
                )
                self._conn.commit()
            else:
                self.check_schema_version(int(row["value"]))
            self._migrate_favorite_column()
        except sqlite3.Error as e:
            logger.error("Failed to initialize SQLite schema: %s", e)
            raise PromptCraftError.storage("initialize database", str(e)) from e
        self.fts_enabled = self._init_fts()

    def check_schema_version(self, version: int) -> None:
        if version != SCHEMA_VERSION:
            raise PromptCraftError.schema_version(SCHEMA_VERSION, version)

    def _migrate_favorite_column(self) -> None:
        columns = {row["name"] for row in self._conn.execute("PRAGMA table_info('prompts')")}
        if "is_favorite" not in columns:
            self._conn.execute(
                "ALTER TABLE prompts ADD COLUMN is_favorite INTEGER NOT NULL DEFAULT 0"
            )
            self._conn.commit()

    def _init_fts(self) -> bool:
        """Create the FTS index and its sync triggers; False if unsupported."""
        existed = self._conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'prompts_search'"
        ).fetchone()
        try:
            self._conn.executescript(f"""
                DROP TRIGGER IF EXISTS prompts_fts_insert;
                DROP TRIGGER IF EXISTS prompts_fts_delete;
                DROP TRIGGER IF EXISTS prompts_fts_update;
                DROP TABLE IF EXISTS prompts_fts;

                CREATE VIRTUAL TABLE IF NOT EXISTS prompts_search USING fts5(
                    id UNINDEXED,
                    name,
                    description,
                    content,
                    category,
                    tags,
                    tokenize='trigram'
                );

                CREATE TRIGGER IF NOT EXISTS prompts_search_insert AFTER INSERT ON prompts BEGIN
                    INSERT INTO prompts_search(id, name, description, content, category, tags)
                    VALUES (new.id, new.name, new.description, new.content,
                            new.category, {_tag_text("new.tags")});
                END;

                CREATE TRIGGER IF NOT EXISTS prompts_search_delete AFTER DELETE ON prompts BEGIN
                    DELETE FROM prompts_search WHERE id = old.id;
                END;

                CREATE TRIGGER IF NOT EXISTS prompts_search_update AFTER UPDATE ON prompts BEGIN
                    DELETE FROM prompts_search WHERE id = old.id;
                    INSERT INTO prompts_search(id, name, description, content, category, tags)
                    VALUES (new.id, new.name, new.description, new.content,
                            new.category, {_tag_text("new.tags")});
                END;
            """)
            if not existed:
                self._conn.execute(f"""
                    INSERT INTO prompts_search(id, name, description, content, category, tags)
                    SELECT id, name, description, content, category, {_tag_text("prompts.tags")}
                    FROM prompts
                """)
                self._conn.commit()
        except sqlite3.OperationalError as e:
            logger.warning("Full-text search unavailable, using pattern matching: %s", e)
            return False
        return True

    def _row_to_prompt(self, row: sqlite3.Row) -> Prompt:
        try:
            tags = json.loads(row["tags"]) if row["tags"] else []
        except json.JSONDecodeError as e:
            logger.error("Invalid tags JSON for prompt %s: %s", row["id"], e)
            tags = []
        try:
            variables = json.loads(row["variables"]) if row["variables"] else []
        except json.JSONDecodeError as e:
            logger.error("Invalid variables JSON for prompt %s: %s", row["id"], e)
            variables = []

        return Prompt(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            content=row["content"],
            category=row["category"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            tags=tags,
            version=row["version"],
            author=row["author"],
            variables=variables,
            is_favorite=bool(row["is_favorite"]),
        )

    def _fetch(self, operation: str, sql: str, params: Sequence = ()) -> list[Prompt]:
        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error("Failed to %s: %s", operation, e)
            raise PromptCraftError.storage(operation, str(e)) from e
        return [self._row_to_prompt(row) for row in rows]

    def find_by_id(self, prompt_id: str) -> Prompt | None:
        rows = self._fetch(
            f"find prompt with ID {prompt_id}",
            "SELECT * FROM prompts WHERE id = ? LIMIT 1",
            (prompt_id,),
        )
        return rows[0] if rows else None

    def find_all(self) -> list[Prompt]:
        prompts = self._fetch(
            "retrieve prompts", "SELECT * FROM prompts ORDER BY updated_at DESC"
        )
        return self._order(prompts)

    def _text_condition(self, query: str) -> tuple[str, list]:
        if self.fts_enabled and len(query) >= FTS_MIN_QUERY_LENGTH:
            return (
                "prompts.id IN (SELECT id FROM prompts_search WHERE prompts_search MATCH ?)",
                [_fts_phrase(query)],
            )
        pattern = f"%{escape_like(query)}%"
        conditions = [_LIKE.format(column=column) for column in ("name", "description", "content")]
        conditions.append(_TAG_MATCH.format(condition=_LIKE.format(column="json_each.value")))
        return "(" + " OR ".join(conditions) + ")", [pattern] * 4

    def search(self, criteria: PromptSearchCriteria) -> list[Prompt]:
        conditions: list[str] = []
        params: list = []

        if criteria.category is not None:
            conditions.append("category = ?")
            params.append(criteria.category.value)

        if criteria.tags:
            placeholders = ", ".join("?" for _ in criteria.tags)
            conditions.append(_TAG_MATCH.format(condition=f"json_each.value IN ({placeholders})"))
            params.extend(criteria.tags)

        if criteria.author:
            conditions.append(_LIKE.format(column="author"))
            params.append(f"%{escape_like(criteria.author)}%")

        if criteria.query:
            condition, query_params = self._text_condition(criteria.query)
            conditions.append(condition)
            params.extend(query_params)

        sql = "SELECT * FROM prompts"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY updated_at DESC"

        # Text queries keep recency order; otherwise usage ranking runs in Python
        reorder = self.usage_stats_provider is not None and not criteria.query
        limit = criteria.effective_limit
        if limit and not reorder:
            sql += " LIMIT ?"
            params.append(limit)

        results = self._fetch("search prompts", sql, params)
        if reorder:
            results = self._order(results)
            if limit:
                results = results[:limit]
        return results

    def save(self, prompt: Prompt) -> None:
        try:
            self._conn.execute(
                """INSERT INTO prompts
                   (id, name, description, content, category, tags, created_at,
                    updated_at, version, author, variables, is_favorite)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    content = excluded.content,
                    category = excluded.category,
                    tags = excluded.tags,
                    updated_at = excluded.updated_at,
                    version = excluded.version,
                    author = excluded.author,
                    variables = excluded.variables,
                    is_favorite = excluded.is_favorite""",
                (
                    prompt.id,
                    prompt.name,
                    prompt.description,
                    prompt.content,
                    prompt.category.value,
                    json.dumps(list(prompt.tags), ensure_ascii=False),
                    format_datetime(prompt.created_at),
                    format_datetime(prompt.updated_at),
                    prompt.version,
                    prompt.author,
                    json.dumps([v.to_dict() for v in prompt.variables], ensure_ascii=False)
                    if prompt.variables
                    else None,
                    int(prompt.is_favorite),
                ),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            logger.error("Failed to save prompt %s: %s", prompt.id, e)
            raise PromptCraftError.storage(f"save prompt with ID {prompt.id}", str(e)) from e

    def delete(self, prompt_id: str) -> bool:
        try:
            cursor = self._conn.execute("DELETE FROM prompts WHERE id = ?", (prompt_id,))
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            logger.error("Failed to delete prompt %s: %s", prompt_id, e)
            raise PromptCraftError.storage(f"delete prompt with ID {prompt_id}", str(e)) from e
        return cursor.rowcount > 0

    def exists(self, prompt_id: str) -> bool:
        try:
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM prompts WHERE id = ?", (prompt_id,)
            ).fetchone()
        except sqlite3.Error as e:
            logger.error("Failed to check prompt %s: %s", prompt_id, e)
            raise PromptCraftError.storage(
                f"check existence of prompt with ID {prompt_id}", str(e)
            ) from e
        return row["n"] > 0

    def find_by_category(self, category: PromptCategory) -> list[Prompt]:
        category = PromptCategory.parse(category)
        prompts = self._fetch(
            f"find prompts for category {category.value}",
            "SELECT * FROM prompts WHERE category = ? ORDER BY updated_at DESC",
            (category.value,),
        )
        return self._order(prompts)

    def find_by_tags(self, tags: Sequence[str]) -> list[Prompt]:
        if not tags:
            return []
        placeholders = ", ".join("?" for _ in tags)
        prompts = self._fetch(
            f"find prompts for tags {', '.join(tags)}",
            "SELECT * FROM prompts WHERE "
            + _TAG_MATCH.format(condition=f"json_each.value IN ({placeholders})")
            + " ORDER BY updated_at DESC",
            list(tags),
        )
        return self._order(prompts)

    def count_by_category(self) -> dict[str, int]:
        try:
            rows = self._conn.execute(
                "SELECT category, COUNT(*) AS n FROM prompts GROUP BY category"
            ).fetchall()
        except sqlite3.Error as e:
            logger.error("Failed to count prompts: %s", e)
            raise PromptCraftError.storage("get category counts", str(e)) from e
        counts = empty_category_counts()
        for row in rows:
            counts[row["category"]] = row["n"]
        return counts

    def close(self) -> None:
        self._conn.close()
