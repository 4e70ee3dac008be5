"""PostgreSQL storage: native text[] tags, JSONB variables, GIN indexes."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import psycopg2
from psycopg2.extras import Json, RealDictCursor

from ..errors import PromptCraftError
from ..models import Prompt, PromptCategory, PromptSearchCriteria, UsageStatsProvider
from ..repository import PromptRepository, empty_category_counts
from .sql import escape_like

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS prompts (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL,
    content TEXT NOT NULL,
    category TEXT NOT NULL,
    tags TEXT[] NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    version TEXT NOT NULL DEFAULT '1.0.0',
    author TEXT,
    variables JSONB,
    is_favorite BOOLEAN NOT NULL DEFAULT FALSE
);

CREATE INDEX IF NOT EXISTS prompts_category_idx ON prompts (category);
CREATE INDEX IF NOT EXISTS prompts_name_idx ON prompts (name);
CREATE INDEX IF NOT EXISTS prompts_author_idx ON prompts (author);
CREATE INDEX IF NOT EXISTS prompts_updated_at_idx ON prompts (updated_at);
CREATE INDEX IF NOT EXISTS prompts_tags_idx ON prompts USING gin (tags);
CREATE INDEX IF NOT EXISTS prompts_content_search_idx ON prompts
    USING gin (to_tsvector('english', content || ' ' || description || ' ' || name));
"""

TEXT_MATCH_SQL = (
    "(name ILIKE %s OR description ILIKE %s OR content ILIKE %s"
    " OR EXISTS (SELECT 1 FROM unnest(tags) AS tag WHERE tag ILIKE %s))"
)

UPSERT_SQL = """
INSERT INTO prompts
    (id, name, description, content, category, tags, created_at, updated_at,
     version, author, variables, is_favorite)
VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
ON CONFLICT (id) DO UPDATE SET
    name = EXCLUDED.name,
    description = EXCLUDED.description,
    content = EXCLUDED.content,
    category = EXCLUDED.category,
    tags = EXCLUDED.tags,
    updated_at = EXCLUDED.updated_at,
    version = EXCLUDED.version,
    author = EXCLUDED.author,
    variables = EXCLUDED.variables,
    is_favorite = EXCLUDED.is_favorite
"""


class PostgresPromptRepository(PromptRepository):
    """Repository over an open psycopg2 connection.

    Each operation runs in its own transaction. Connection pooling and
    migrations beyond ``init_schema`` belong to the caller.
    """

    def __init__(self, connection, usage_stats_provider: UsageStatsProvider | None = None):
        super().__init__(usage_stats_provider)
        self._conn = connection

    @classmethod
    def connect(
        cls,
        database_url: str,
        usage_stats_provider: UsageStatsProvider | None = None,
        init_schema: bool = True,
    ) -> "PostgresPromptRepository":
        try:
            connection = psycopg2.connect(database_url)
        except psycopg2.Error as e:
            logger.error("Failed to connect to PostgreSQL: %s", e)
            raise PromptCraftError.storage("connect to database", str(e)) from e
        repository = cls(connection, usage_stats_provider)
        if init_schema:
            repository.init_schema()
        return repository

    def init_schema(self) -> None:
        self._execute("initialize database", SCHEMA_SQL, fetch=False)

    def _execute(self, operation: str, sql: str, params: Sequence | None = None, fetch: bool = True):
        try:
            with self._conn:
                with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(sql, params)
                    return cur.fetchall() if fetch else cur.rowcount
        except psycopg2.Error as e:
            logger.error("Failed to %s: %s", operation, e)
            raise PromptCraftError.storage(operation, str(e)) from e

    @staticmethod
    def _row_to_prompt(row) -> Prompt:
        return Prompt(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            content=row["content"],
            category=row["category"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            tags=row["tags"] or [],
            version=row["version"],
            author=row["author"],
            variables=row["variables"] or [],
            is_favorite=bool(row["is_favorite"]),
        )

    def _fetch(self, operation: str, sql: str, params: Sequence | None = None) -> list[Prompt]:
        return [self._row_to_prompt(row) for row in self._execute(operation, sql, params)]

    def find_by_id(self, prompt_id: str) -> Prompt | None:
        rows = self._fetch(
            f"find prompt with ID {prompt_id}",
            "SELECT * FROM prompts WHERE id = %s LIMIT 1",
            (prompt_id,),
        )
        return rows[0] if rows else None

    def find_all(self) -> list[Prompt]:
        prompts = self._fetch("retrieve prompts", "SELECT * FROM prompts ORDER BY updated_at DESC")
        return self._order(prompts)

    def search(self, criteria: PromptSearchCriteria) -> list[Prompt]:
        conditions: list[str] = []
        params: list = []

        if criteria.category is not None:
            conditions.append("category = %s")
            params.append(criteria.category.value)

        if criteria.tags:
            conditions.append("tags && %s::text[]")
            params.append(list(criteria.tags))

        if criteria.author:
            conditions.append("author ILIKE %s")
            params.append(f"%{escape_like(criteria.author)}%")

        if criteria.query:
            conditions.append(TEXT_MATCH_SQL)
            params.extend([f"%{escape_like(criteria.query)}%"] * 4)

        sql = "SELECT * FROM prompts"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY updated_at DESC"

        # Text queries keep recency order; otherwise usage ranking runs in Python
        reorder = self.usage_stats_provider is not None and not criteria.query
        limit = criteria.effective_limit
        if limit and not reorder:
            sql += " LIMIT %s"
            params.append(limit)

        results = self._fetch("search prompts", sql, params)
        if reorder:
            results = self._order(results)
            if limit:
                results = results[:limit]
        return results

    def save(self, prompt: Prompt) -> None:
        self._execute(
            f"save prompt with ID {prompt.id}",
            UPSERT_SQL,
            (
                prompt.id,
                prompt.name,
                prompt.description,
                prompt.content,
                prompt.category.value,
                list(prompt.tags),
                prompt.created_at,
                prompt.updated_at,
                prompt.version,
                prompt.author,
                Json([v.to_dict() for v in prompt.variables]) if prompt.variables else None,
                prompt.is_favorite,
            ),
            fetch=False,
        )

    def delete(self, prompt_id: str) -> bool:
        deleted = self._execute(
            f"delete prompt with ID {prompt_id}",
            "DELETE FROM prompts WHERE id = %s",
            (prompt_id,),
            fetch=False,
        )
        return deleted > 0

    def exists(self, prompt_id: str) -> bool:
        rows = self._execute(
            f"check existence of prompt with ID {prompt_id}",
            "SELECT COUNT(*) AS n FROM prompts WHERE id = %s",
            (prompt_id,),
        )
        return rows[0]["n"] > 0

    def find_by_category(self, category: PromptCategory) -> list[Prompt]:
        category = PromptCategory.parse(category)
        prompts = self._fetch(
            f"find prompts for category {category.value}",
            "SELECT * FROM prompts WHERE category = %s ORDER BY updated_at DESC",
            (category.value,),
        )
        return self._order(prompts)

    def find_by_tags(self, tags: Sequence[str]) -> list[Prompt]:
        if not tags:
            return []
        prompts = self._fetch(
            f"find prompts for tags {', '.join(tags)}",
            "SELECT * FROM prompts WHERE tags && %s::text[] ORDER BY updated_at DESC",
            (list(tags),),
        )
        return self._order(prompts)

    def count_by_category(self) -> dict[str, int]:
        rows = self._execute(
            "get category counts",
            "SELECT category, COUNT(*) AS n FROM prompts GROUP BY category",
        )
        counts = empty_category_counts()
        for row in rows:
            counts[row["category"]] = int(row["n"])
        return counts

    def close(self) -> None:
        self._conn.close()
