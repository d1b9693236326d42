import re

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(value: str) -> str:
    """Single spaces only, no leading/trailing whitespace, no null bytes."""
    return _WHITESPACE.sub(" ", value.replace("\0", "")).strip()


def derive_title(content: str, max_length: int) -> str:
    """
    Turn the first user message into a session title: whitespace collapsed,
    cut at `max_length` characters with "..." when something was dropped.
    """
    text = collapse_whitespace(content)
    if len(text) <= max_length:
        return text
    return text[:max_length].rstrip() + "..."
