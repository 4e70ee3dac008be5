def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text matches literally (escape char is backslash)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
