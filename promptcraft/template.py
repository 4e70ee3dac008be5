import math
import re
from collections.abc import Mapping

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^\s{}]+)\s*\}\}")


def extract_variables(template: str) -> list[str]:
    """Extract unique placeholder names from a template string, in order of first appearance."""
    seen: set[str] = set()
    result: list[str] = []
    for match in PLACEHOLDER_PATTERN.finditer(template):
        name = match.group(1)
        if name not in seen:
            seen.add(name)
            result.append(name)
    return result


def stringify_value(value: object) -> str:
    """Render a variable value the way it appears in the filled template.

    Booleans become ``true``/``false``, integral floats lose their
    fractional part and sequences are joined with ``,``.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(stringify_value(item) for item in value)
    return str(value)


def fill_template(template: str, variables: Mapping[str, str]) -> str:
    """Replace {{var}} placeholders with values from the variables mapping.

    Placeholders without an entry are left as they are. Substitution is a
    single pass, so placeholders inside substituted values are not expanded.
    """

    def replacer(match: re.Match) -> str:
        name = match.group(1)
        if name in variables:
            return variables[name]
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(replacer, template)
