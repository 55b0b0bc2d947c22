"""Markup stripping and SQL-injection pattern detection for request data.

Both helpers walk nested JSON-like containers (dict / list / str). ``sanitize_value``
returns a new structure and never mutates its input. Keys listed in ``exempt`` are left
untouched and unscanned; they carry secrets (passwords, tokens) that are never rendered
or interpolated into SQL.
"""

import re
from collections.abc import Collection
from html.parser import HTMLParser
from typing import Any

# Elements whose whole body is dropped, not just the tags.
DROP_CONTENT_TAGS = frozenset({"script", "style"})

SQL_INJECTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"(%27)|(')|(--)|(%23)|(#)",
        r"((%3D)|(=))[^\n]*((%27)|(')|(--)|(%3B)|(;))",
        r"\w*((%27)|('))((%6F)|o|(%4F))((%72)|r|(%52))",
        r"((%27)|('))union",
        r"exec(\s|\+)+(s|x)p\w+",
        r"UNION(?:\s+ALL)?\s+SELECT",
        r"SELECT.*FROM.*WHERE",
        r"INSERT\s+INTO",
        r"DELETE\s+FROM",
        r"\bUPDATE\b.*\bSET\b",
        r"CREATE\s+(TABLE|DATABASE)",
        r"DROP\s+(TABLE|DATABASE)",
        r"ALTER\s+TABLE",
        r"TRUNCATE\s+TABLE",
    )
)


class _MarkupStripper(HTMLParser):
    """Collects text outside tags; entity references are kept verbatim."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=False)
        self._parts: list[str] = []
        self._drop_depth = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in DROP_CONTENT_TAGS:
            self._drop_depth += 1

    def handle_endtag(self, tag: str) -> None:
        if tag in DROP_CONTENT_TAGS and self._drop_depth:
            self._drop_depth -= 1

    def handle_data(self, data: str) -> None:
        if not self._drop_depth:
            self._parts.append(data)

    def handle_entityref(self, name: str) -> None:
        if not self._drop_depth:
            self._parts.append(f"&{name};")

    def handle_charref(self, name: str) -> None:
        if not self._drop_depth:
            self._parts.append(f"&#{name};")

    def text(self) -> str:
        return "".join(self._parts)


def strip_markup(value: str) -> str:
    """Remove all HTML tags; script and style elements are removed with their content."""
    if "<" not in value:
        return value
    parser = _MarkupStripper()
    parser.feed(value)
    parser.close()
    return parser.text()


def sanitize_value(value: Any, exempt: Collection[str] = ()) -> Any:
    """Return a copy of value with markup stripped from every string."""
    if isinstance(value, str):
        return strip_markup(value)
    if isinstance(value, dict):
        return {
            k: (v if k in exempt else sanitize_value(v, exempt))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [sanitize_value(v, exempt) for v in value]
    return value


def is_sql_injection(text: str) -> bool:
    return any(pattern.search(text) for pattern in SQL_INJECTION_PATTERNS)


def contains_sql_injection(value: Any, exempt: Collection[str] = ()) -> bool:
    """True if any string anywhere in value matches a suspicious SQL pattern."""
    if isinstance(value, str):
        return is_sql_injection(value)
    if isinstance(value, dict):
        return any(
            contains_sql_injection(v, exempt) for k, v in value.items() if k not in exempt
        )
    if isinstance(value, list):
        return any(contains_sql_injection(v, exempt) for v in value)
    return False
