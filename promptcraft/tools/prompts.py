import json

from ..errors import PromptCraftError
from ..models import PromptCategory, PromptSearchCriteria
from ..usecases import PromptUseCases, RenderPromptDTO


def _summary(prompt) -> dict:
    return {
        "id": prompt.id,
        "name": prompt.name,
        "description": prompt.description,
        "category": prompt.category.value,
        "tags": list(prompt.tags),
    }


def register_tools(mcp, use_cases: PromptUseCases) -> None:
    @mcp.tool()
    def search_prompts(
        query: str | None = None,
        category: str | None = None,
        tags: list[str] | None = None,
        author: str | None = None,
        limit: int = 10,
    ) -> str:
        """Search prompts by query, category (work, personal, shared), tags or author."""
        criteria = PromptSearchCriteria(
            query=query,
            category=category,
            tags=tags or (),
            author=author,
            limit=limit,
        )
        results = use_cases.search_prompts(criteria)
        return json.dumps([_summary(p) for p in results])

    @mcp.tool()
    def list_prompts(category: str | None = None) -> str:
        """List prompts, optionally limited to one category."""
        if category:
            prompts = use_cases.get_prompts_by_category(category)
        else:
            prompts = use_cases.get_all_prompts()
        return json.dumps([_summary(p) for p in prompts])

    @mcp.tool()
    def list_categories() -> str:
        """List all prompt categories with counts."""
        stats = use_cases.get_category_statistics()
        result = [{"category": c.value, "count": stats[c.value]} for c in PromptCategory]
        return json.dumps(result)

    @mcp.tool()
    def get_prompt(id: str) -> str:
        """Get a prompt with its content and variable declarations."""
        prompt = use_cases.get_prompt_by_id(id)
        if prompt is None:
            raise PromptCraftError.prompt_not_found(id)
        return json.dumps(prompt.to_dict())

    @mcp.tool()
    def render_prompt(id: str, variables: dict | None = None) -> str:
        """Fill a prompt's {{variable}} placeholders and return the text.

        Validation errors are reported alongside the rendered text.
        """
        values = variables or {}
        result = use_cases.render_prompt(RenderPromptDTO(id=id, variable_values=values))
        prompt = use_cases.get_prompt_by_id(id)
        used_defaults = [
            v.name
            for v in prompt.variables
            if v.default_value is not None and values.get(v.name) in (None, "")
        ]
        return json.dumps({**result.to_dict(), "usedDefaults": used_defaults})
