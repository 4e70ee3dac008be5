from datetime import datetime, timedelta, timezone

import pytest

from promptcraft.models import Prompt, PromptVariable

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def build_prompt(**overrides) -> Prompt:
    defaults = {
        "id": "test-id",
        "name": "Test Prompt",
        "description": "A test prompt",
        "content": "Hello {{name}}",
        "category": "work",
        "created_at": BASE_TIME,
        "updated_at": BASE_TIME + timedelta(days=1),
        "tags": ("test",),
        "author": "Tester",
        "variables": (PromptVariable(name="name", description="User name", required=True),),
    }
    defaults.update(overrides)
    return Prompt(**defaults)


@pytest.fixture
def make_prompt():
    return build_prompt
