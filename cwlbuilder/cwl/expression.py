from __future__ import annotations

import json
import re
from collections.abc import MutableMapping, MutableSequence
from typing import Any

from cwl_utils.errors import SubstitutionError
from cwl_utils.expression import needs_parsing, scanner

from cwlbuilder.core.exception import ValidationError

_INPUT_REFERENCE = re.compile(
    r"inputs(?:\.([A-Za-z_][\w-]*)|\[\s*['\"]([^'\"]+)['\"]\s*\])"
)
_PARAMETER_REFERENCE = re.compile(
    r"^\$\((inputs|self|runtime)"
    r"(\.[A-Za-z_][\w-]*|\[\d+\]|\['[^']*'\]|\[\"[^\"]*\"\])*\)$"
)


def get_segments(text: str) -> MutableSequence[str]:
    segments = []
    remaining = text
    try:
        while (window := scanner(remaining)) is not None:
            # The scanner also reports backslash escapes, which are literal text
            if remaining[window[0]] == "$":
                segments.append(remaining[window[0] : window[1]])
            remaining = remaining[window[1] :]
    except SubstitutionError as e:
        raise ValidationError(f"Malformed expression `{text}`: {e}") from e
    return segments


class Expression(str):
    """
    A string payload interpolated by the CWL runner, e.g. ``$(inputs.x.path)`` or ``${ return 1; }``.

    Only the syntax of the ``$(...)``/``${...}`` blocks is checked: the text is never evaluated here.
    """

    __slots__ = ()

    def __new__(cls, text: str) -> Expression:
        if not isinstance(text, str):
            raise ValidationError(
                f"An expression must be a string, got {type(text).__name__}"
            )
        if not get_segments(text):
            raise ValidationError(
                f"`{text}` does not contain any `$(...)` or `${{...}}` block"
            )
        return super().__new__(cls, text)

    def __repr__(self) -> str:
        return f"Expression({str.__repr__(self)})"

    @property
    def dependencies(self) -> set[str]:
        deps = set()
        for segment in self.segments:
            for match in _INPUT_REFERENCE.finditer(segment):
                deps.add(match.group(1) or match.group(2))
        return deps

    @property
    def requires_javascript(self) -> bool:
        return any(not _PARAMETER_REFERENCE.match(s) for s in self.segments)

    @property
    def segments(self) -> MutableSequence[str]:
        return get_segments(str(self))


def as_expression(value: Any) -> Any:
    if isinstance(value, str) and not isinstance(value, Expression):
        if needs_parsing(value) and get_segments(value):
            return Expression(value)
    return value


def escape_literal(text: str) -> str:
    """Quote ``text`` so that the CWL runner's interpolation gives it back unchanged."""
    # Texts without `$(` or `${` are never interpolated, so backslashes only need doubling
    # when a reference marker is present
    if not needs_parsing(text):
        return text
    return text.replace("\\", "\\\\").replace("$(", "\\$(").replace("${", "\\${")


def get_dependencies(value: Any) -> set[str]:
    if isinstance(value, str):
        expression = as_expression(value)
        return expression.dependencies if isinstance(expression, Expression) else set()
    elif isinstance(value, MutableSequence):
        return set().union(*(get_dependencies(v) for v in value))
    elif isinstance(value, MutableMapping):
        return set().union(*(get_dependencies(v) for v in value.values()))
    else:
        return set()


def requires_javascript(value: Any) -> bool:
    if isinstance(value, str):
        expression = as_expression(value)
        return isinstance(expression, Expression) and expression.requires_javascript
    elif isinstance(value, MutableSequence):
        return any(requires_javascript(v) for v in value)
    elif isinstance(value, MutableMapping):
        return any(requires_javascript(v) for v in value.values())
    else:
        return False


def js_string(value: str) -> str:
    return json.dumps(value)
