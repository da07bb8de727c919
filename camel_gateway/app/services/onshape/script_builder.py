"""
FeatureScript construction

Scripts posted to the featurescript endpoint must be a single function
literal taking the Part Studio context and a query map. Any string that did
not originate in this module is embedded through string_literal().
"""

from typing import Iterable

FUNCTION_TEMPLATE = "function (context is Context, queries is map) {{ {body} }}"


def escape(value: str) -> str:
    """
    Encode every character of value as a \\uXXXX escape

    Escaping everything, not just quotes and backslashes, leaves nothing in
    the result that FeatureScript could read as syntax. Characters outside
    the BMP are written as their UTF-16 surrogate pair.
    """
    encoded = value.encode("utf-16-be", "surrogatepass")
    return "".join(
        "\\u%04x" % int.from_bytes(encoded[i:i + 2], "big")
        for i in range(0, len(encoded), 2)
    )


def string_literal(value: str) -> str:
    """Quoted FeatureScript string literal for an arbitrary value"""
    return f'"{escape(value)}"'


def build_script(*body_fragments: str) -> str:
    """Wrap statements in the calling convention of the evaluation endpoint"""
    body = "\n".join(fragment.strip() for fragment in body_fragments if fragment.strip())
    return FUNCTION_TEMPLATE.format(body=body)


def map_literal(pairs: Iterable) -> str:
    """FeatureScript map literal from (key, value) string pairs, both escaped"""
    items = ", ".join(f"{string_literal(k)} : {string_literal(v)}" for k, v in pairs)
    return "{" + items + "}"
