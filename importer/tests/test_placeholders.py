"""
Tests for bounded placeholder expansion.
"""

from importer.services.placeholders import expand_placeholders


def test_known_tokens_replaced():
    values = {("region", "title"): "<h1>{{ content.title }}</h1>", ("assets", None): "<link>"}
    result = expand_placeholders(
        "[[assets]]<main>[[region:title]]</main>", lambda kind, arg: values.get((kind, arg))
    )
    assert result == "<link><main><h1>{{ content.title }}</h1></main>"


def test_unknown_token_left_verbatim():
    result = expand_placeholders("a [[widget:cart]] b", lambda kind, arg: None)
    assert result == "a [[widget:cart]] b"


def test_nested_expansion():
    values = {"outer": "<div>[[inner]]</div>", "inner": "x"}
    result = expand_placeholders("[[outer]]", lambda kind, arg: values.get(kind))
    assert result == "<div>x</div>"


def test_self_referencing_token_stops_at_depth_cap():
    result = expand_placeholders("[[loop]]", lambda kind, arg: "+[[loop]]", max_depth=3)
    assert result == "+++[[loop]]"


def test_argument_whitespace_trimmed():
    seen = []

    def resolver(kind, arg):
        seen.append((kind, arg))
        return ""

    expand_placeholders("[[region: price ]]", resolver)
    assert seen == [("region", "price")]


def test_empty_text():
    assert expand_placeholders("", lambda kind, arg: "x") == ""
