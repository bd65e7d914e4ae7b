"""
Bounded placeholder expansion for generated template code.

Tokens look like ``[[kind:arg]]`` or ``[[kind]]``. A resolver maps
(kind, arg) to replacement text, or None to leave the token as written.
Replacement text is expanded again, up to max_depth passes; whatever is
still unexpanded at the cap stays verbatim.
"""

import re
from typing import Callable, Optional

PLACEHOLDER_RE = re.compile(r"\[\[([a-zA-Z][a-zA-Z0-9_-]*)(?::([^\[\]]*))?\]\]")

Resolver = Callable[[str, Optional[str]], Optional[str]]


def expand_placeholders(text: str, resolver: Resolver, max_depth: int = 5) -> str:
    """
    Expand placeholder tokens in text.

    Args:
        text: Text containing ``[[kind:arg]]`` tokens
        resolver: Called as resolver(kind, arg); returns the replacement or None
        max_depth: Maximum nesting of expansions

    Returns:
        The expanded text
    """
    if not text:
        return text
    return _expand(text, resolver, max_depth)


def _expand(text: str, resolver: Resolver, depth: int) -> str:
    if depth <= 0:
        return text

    def replace(match):
        kind = match.group(1)
        arg = match.group(2)
        replacement = resolver(kind, arg.strip() if arg is not None else None)
        if replacement is None:
            return match.group(0)
        return _expand(replacement, resolver, depth - 1)

    return PLACEHOLDER_RE.sub(replace, text)
