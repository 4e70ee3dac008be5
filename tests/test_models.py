from datetime import datetime, timedelta, timezone

import pytest

from promptcraft.errors import ErrorCode, PromptCraftError
from promptcraft.models import (
    Prompt,
    PromptCategory,
    PromptSearchCriteria,
    PromptVariable,
    UsageStats,
    VariableType,
    format_datetime,
    parse_datetime,
)

from conftest import BASE_TIME


@pytest.fixture
def email_prompt(make_prompt):
    return make_prompt(
        content="Write a {{tone}} email about {{topic}}. Urgent: {{urgent}}",
        variables=(
            PromptVariable(name="topic", description="Subject", required=True),
            PromptVariable(name="tone", description="Tone", default_value="formal"),
            PromptVariable(
                name="urgent", description="Urgency", type="boolean", default_value=False
            ),
        ),
    )


class TestPromptCategory:
    def test_parse_value(self):
        assert PromptCategory.parse("work") is PromptCategory.WORK
        assert PromptCategory.parse("SHARED") is PromptCategory.SHARED

    def test_parse_invalid(self):
        with pytest.raises(PromptCraftError) as exc_info:
            PromptCategory.parse("hobby")
        assert exc_info.value.code == ErrorCode.INVALID_CATEGORY

    def test_invalid_category_on_prompt(self, make_prompt):
        with pytest.raises(PromptCraftError) as exc_info:
            make_prompt(category="misc")
        assert exc_info.value.code == ErrorCode.INVALID_CATEGORY


class TestPromptVariable:
    def test_type_coerced(self):
        var = PromptVariable(name="n", description="d", type="number")
        assert var.type is VariableType.NUMBER

    def test_invalid_type(self):
        with pytest.raises(PromptCraftError) as exc_info:
            PromptVariable(name="n", description="d", type="date")
        assert exc_info.value.code == ErrorCode.INVALID_VARIABLE_TYPE

    def test_list_default_becomes_tuple(self):
        var = PromptVariable(name="n", description="d", type="array", default_value=["a", "b"])
        assert var.default_value == ("a", "b")
        assert var.to_dict()["defaultValue"] == ["a", "b"]

    def test_to_dict_omits_missing_default(self):
        data = PromptVariable(name="n", description="d").to_dict()
        assert data == {"name": "n", "description": "d", "type": "string", "required": False}

    def test_from_dict(self):
        var = PromptVariable.from_dict(
            {"name": "n", "description": "d", "type": "boolean", "required": True, "defaultValue": True}
        )
        assert var.type is VariableType.BOOLEAN
        assert var.required is True
        assert var.default_value is True


class TestRender:
    def test_defaults_applied(self, email_prompt):
        rendered = email_prompt.render_with_variables({"topic": "Q3 results"})
        assert rendered == "Write a formal email about Q3 results. Urgent: false"

    def test_provided_values(self, email_prompt):
        rendered = email_prompt.render_with_variables(
            {"topic": "launch", "tone": "casual", "urgent": True}
        )
        assert rendered == "Write a casual email about launch. Urgent: true"

    def test_empty_string_uses_default(self, email_prompt):
        rendered = email_prompt.render_with_variables({"topic": "x", "tone": ""})
        assert "a formal email" in rendered

    def test_missing_without_default_renders_empty(self, email_prompt):
        rendered = email_prompt.render_with_variables({})
        assert rendered == "Write a formal email about . Urgent: false"

    def test_undeclared_placeholder_left(self, make_prompt):
        prompt = make_prompt(content="Hi {{name}} from {{city}}")
        assert prompt.render_with_variables({"name": "Ann", "city": "Oslo"}) == "Hi Ann from {{city}}"

    def test_array_joined(self, make_prompt):
        prompt = make_prompt(
            content="Items: {{items}}",
            variables=[{"name": "items", "description": "List", "type": "array"}],
        )
        assert prompt.render_with_variables({"items": ["a", "b"]}) == "Items: a,b"

    def test_number_rendering(self, make_prompt):
        prompt = make_prompt(
            content="{{n}} words",
            variables=[{"name": "n", "description": "Count", "type": "number"}],
        )
        assert prompt.render_with_variables({"n": 200.0}) == "200 words"
        assert prompt.render_with_variables({"n": 2.5}) == "2.5 words"


class TestValidateVariables:
    def test_required_missing(self, email_prompt):
        errors = email_prompt.validate_variables({})
        assert errors == ["Variable 'topic' is required but not provided"]

    def test_required_empty_string(self, email_prompt):
        errors = email_prompt.validate_variables({"topic": ""})
        assert errors == ["Variable 'topic' is required but not provided"]

    def test_valid(self, email_prompt):
        assert email_prompt.validate_variables({"topic": "x", "urgent": "true"}) == []

    def test_boolean_type(self, email_prompt):
        errors = email_prompt.validate_variables({"topic": "x", "urgent": "yes"})
        assert errors == ["Variable 'urgent' must be a boolean"]

    def test_number_type(self, make_prompt):
        prompt = make_prompt(
            content="{{n}}",
            variables=[{"name": "n", "description": "Count", "type": "number"}],
        )
        assert prompt.validate_variables({"n": 3}) == []
        assert prompt.validate_variables({"n": "3.5"}) == []
        assert prompt.validate_variables({"n": "abc"}) == ["Variable 'n' must be a number"]
        assert prompt.validate_variables({"n": True}) == ["Variable 'n' must be a number"]
        assert prompt.validate_variables({"n": float("nan")}) == ["Variable 'n' must be a number"]

    def test_array_type(self, make_prompt):
        prompt = make_prompt(
            content="{{items}}",
            variables=[{"name": "items", "description": "List", "type": "array"}],
        )
        assert prompt.validate_variables({"items": ["a"]}) == []
        assert prompt.validate_variables({"items": "a,b"}) == []
        assert prompt.validate_variables({"items": 5}) == ["Variable 'items' must be an array or string"]

    def test_optional_missing_ok(self, make_prompt):
        prompt = make_prompt(
            content="{{x}}",
            variables=[{"name": "x", "description": "X", "type": "number"}],
        )
        assert prompt.validate_variables({}) == []


class TestImmutableUpdates:
    def test_with_updated_content(self, make_prompt):
        original = make_prompt()
        now = BASE_TIME + timedelta(days=5)
        updated = original.with_updated_content(name="Renamed", tags=["a", "b"], now=now)

        assert updated is not original
        assert updated.name == "Renamed"
        assert updated.tags == ("a", "b")
        assert updated.content == original.content
        assert updated.id == original.id
        assert updated.created_at == original.created_at
        assert updated.updated_at == now
        assert original.name == "Test Prompt"

    def test_updated_at_strictly_later(self, make_prompt):
        original = make_prompt()
        updated = original.with_updated_content(content="x", now=original.updated_at)
        assert updated.updated_at > original.updated_at

    def test_with_favorite_keeps_timestamp(self, make_prompt):
        original = make_prompt()
        favorite = original.with_favorite(True)
        assert favorite.is_favorite is True
        assert original.is_favorite is False
        assert favorite.updated_at == original.updated_at

    def test_frozen(self, make_prompt):
        prompt = make_prompt()
        with pytest.raises(AttributeError):
            prompt.name = "other"


class TestConsistency:
    def test_consistent(self, make_prompt):
        assert make_prompt().validate_consistency() == ([], [])

    def test_undeclared_and_unused(self, make_prompt):
        prompt = make_prompt(
            content="Hello {{who}}",
            variables=[{"name": "name", "description": "Unused"}],
        )
        errors, warnings = prompt.validate_consistency()
        assert errors == ["Placeholder '{{who}}' found in content but no variable declared"]
        assert warnings == ["Variable 'name' is declared but not used in prompt content"]


class TestSerialization:
    def test_to_dict_keys(self, make_prompt):
        data = make_prompt().to_dict()
        assert data["createdAt"] == "2024-01-01T00:00:00.000000Z"
        assert data["category"] == "work"
        assert data["tags"] == ["test"]
        assert data["isFavorite"] is False
        assert data["variables"][0]["name"] == "name"

    def test_optional_fields_omitted(self, make_prompt):
        data = make_prompt(author=None, variables=()).to_dict()
        assert "author" not in data
        assert "variables" not in data

    def test_from_dict_restores(self, make_prompt):
        original = make_prompt(is_favorite=True)
        assert Prompt.from_dict(original.to_dict()) == original

    def test_from_dict_missing_fields(self):
        with pytest.raises(PromptCraftError) as exc_info:
            Prompt.from_dict({"id": "x", "name": "n"})
        assert exc_info.value.code == ErrorCode.INVALID_PROMPT_DATA
        assert "content, category, createdAt, updatedAt" in exc_info.value.message

    def test_from_dict_defaults(self):
        prompt = Prompt.from_dict(
            {
                "id": "p1",
                "name": "Minimal",
                "content": "text",
                "category": "personal",
                "createdAt": "2024-02-01T10:00:00Z",
                "updatedAt": "2024-02-01T10:00:00Z",
            }
        )
        assert prompt.version == "1.0.0"
        assert prompt.tags == ()
        assert prompt.variables == ()
        assert prompt.author is None
        assert prompt.created_at.tzinfo is not None


class TestDatetimes:
    def test_parse_z_suffix(self):
        assert parse_datetime("2024-01-01T00:00:00Z") == BASE_TIME

    def test_naive_taken_as_utc(self):
        assert parse_datetime(datetime(2024, 1, 1)) == BASE_TIME

    def test_format_converts_to_utc(self):
        local = datetime(2024, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_datetime(local) == "2024-01-01T00:00:00.000000Z"


class TestSearchCriteria:
    def test_category_parsed(self):
        assert PromptSearchCriteria(category="work").category is PromptCategory.WORK

    def test_effective_limit(self):
        assert PromptSearchCriteria(limit=5).effective_limit == 5
        assert PromptSearchCriteria(limit=0).effective_limit is None
        assert PromptSearchCriteria().effective_limit is None


class TestUsageStats:
    def test_from_dict_accepts_both_id_keys(self):
        stats = UsageStats.from_dict(
            {
                "favorites": ["a"],
                "recents": [
                    {"id": "b", "usedAt": "2024-01-01T00:00:00Z"},
                    {"promptId": "c", "usedAt": "2024-01-02T00:00:00Z"},
                    {"id": "broken"},
                ],
            }
        )
        assert stats.favorites == frozenset({"a"})
        assert [r.prompt_id for r in stats.recents] == ["b", "c"]

    def test_coerce(self):
        stats = UsageStats()
        assert UsageStats.coerce(stats) is stats
        assert UsageStats.coerce(None) == UsageStats()
        assert UsageStats.coerce({"favorites": ["x"]}).favorites == frozenset({"x"})
