"""Structural visitor over JSON-like values (dicts, lists, scalars)."""

from typing import Any, Callable, Optional, Tuple

# predicate(key, value) -> should the string be rewritten
StringPredicate = Callable[[Optional[str], str], bool]
# rewrite(key, value) -> replacement string (may be the same value)
StringRewrite = Callable[[Optional[str], str], str]


def rewrite_strings(
    value: Any,
    predicate: StringPredicate,
    rewrite: StringRewrite,
    key: Optional[str] = None,
    skip_keys: frozenset = frozenset(),
) -> Tuple[Any, int]:
    """
    Return a copy of value with matching strings replaced, recursing through dicts and lists.

    Strings inside a list are visited with the key of the enclosing field.
    skip_keys only applies at the top level of value.

    Returns:
        Tuple of (new_value, replacement_count)
    """
    if isinstance(value, dict):
        out = {}
        count = 0
        for k, v in value.items():
            if k in skip_keys:
                out[k] = v
                continue
            out[k], c = rewrite_strings(v, predicate, rewrite, key=k)
            count += c
        return out, count

    if isinstance(value, list):
        items = []
        count = 0
        for item in value:
            new_item, c = rewrite_strings(item, predicate, rewrite, key=key)
            items.append(new_item)
            count += c
        return items, count

    if isinstance(value, str) and predicate(key, value):
        new_value = rewrite(key, value)
        return new_value, int(new_value != value)

    return value, 0
