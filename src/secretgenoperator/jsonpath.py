"""The ``$( )`` expression syntax of SecretTemplates.

Template values embed JSONPath expressions between ``$(`` and ``)``, for
example ``prefix-$(.creds.data.password)``. Because JSONPath filters
contain parentheses themselves (``$(.ports[?(@.protocol=='TCP')])``),
the delimiters are matched with a stack rather than a regular
expression. `to_canonical` rewrites the expression into the ``{ }``
delimited form used by kubectl, and `evaluate` renders that form with
jsonpath-ng.
"""

from __future__ import annotations

__all__ = ("evaluate", "split_canonical", "to_canonical")

import json
import re
from typing import Any

import jsonpath_ng.exceptions
from jsonpath_ng.ext import parse
from jsonpath_ng.jsonpath import Child, Fields, Index

from secretgenoperator.errors import JSONPathError

_OPEN_PREFIX = "$"
_OPEN = "("
_CLOSE = ")"

# A dotted field whose name contains an escaped dot, such as .tls\.crt
_ESCAPED_FIELD = re.compile(r"\.((?:[\w-]|\\.)*\\\.(?:[\w-]|\\.)*)")

_ESCAPE = re.compile(r"\\(.)")


def to_canonical(expression: str) -> str:
    """Rewrite ``$(`` ... ``)`` delimiters into ``{`` ... ``}``.

    Every ``(`` is pushed on a stack and every ``)`` closes the most
    recently opened one. A pair whose ``(`` is preceded by ``$`` is an
    expression and is rewritten; other pairs (filters, function calls)
    are left alone. Delimiters without a counterpart are kept as literal
    text.

    Examples
    --------
    >>> to_canonical("prefix-$(.value)-suffix")
    'prefix-{.value}-suffix'
    >>> to_canonical("$(.spec.ports[?(@.protocol=='TCP')])")
    "{.spec.ports[?(@.protocol=='TCP')]}"
    >>> to_canonical("foo$(")
    'foo$('
    """
    open_positions: list[int] = []
    rewritten_opens: set[int] = set()
    rewritten_closes: set[int] = set()

    for i, char in enumerate(expression):
        if char == _OPEN:
            open_positions.append(i)
        elif char == _CLOSE and open_positions:
            opened = open_positions.pop()
            if opened > 0 and expression[opened - 1] == _OPEN_PREFIX:
                rewritten_opens.add(opened - 1)
                rewritten_closes.add(i)

    pieces = []
    i = 0
    while i < len(expression):
        if i in rewritten_opens:
            pieces.append("{")
            i += 2
            continue
        if i in rewritten_closes:
            pieces.append("}")
        else:
            pieces.append(expression[i])
        i += 1
    return "".join(pieces)


def split_canonical(canonical: str) -> list[tuple[bool, str]]:
    """Split a canonical expression into literal text and ``{ }``
    actions.

    Returns
    -------
    pieces : `list` of `tuple`
        ``(is_action, text)`` pairs in order. For actions the text is the
        JSONPath expression without the braces.

    Raises
    ------
    secretgenoperator.errors.JSONPathError
        Raised if an action is not closed.
    """
    pieces: list[tuple[bool, str]] = []
    literal_start = 0
    i = 0
    while i < len(canonical):
        if canonical[i] != "{":
            i += 1
            continue
        depth = 0
        for j in range(i, len(canonical)):
            if canonical[j] == "{":
                depth += 1
            elif canonical[j] == "}":
                depth -= 1
                if depth == 0:
                    break
        else:
            raise JSONPathError(f"unclosed action in '{canonical}'")
        if i > literal_start:
            pieces.append((False, canonical[literal_start:i]))
        pieces.append((True, canonical[i + 1 : j]))
        i = j + 1
        literal_start = i
    if literal_start < len(canonical):
        pieces.append((False, canonical[literal_start:]))
    return pieces


def evaluate(expression: str, values: Any) -> str:
    """Evaluate a ``$( )`` expression against ``values``.

    Parameters
    ----------
    expression : `str`
        The template expression. Text outside ``$( )`` is copied as is.
    values : `dict`
        The data the expressions are evaluated against. For
        SecretTemplates this maps input resource aliases to resources.

    Returns
    -------
    result : `str`
        The rendered expression. Strings render as is and other values as
        compact JSON. Expressions with several results render them
        separated by a space.

    Raises
    ------
    secretgenoperator.errors.JSONPathError
        Raised if an expression cannot be parsed or if it refers to a
        field that does not exist.
    """
    rendered = []
    for is_action, text in split_canonical(to_canonical(expression)):
        if is_action:
            rendered.append(_evaluate_action(text, values))
        else:
            rendered.append(text)
    return "".join(rendered)


def _evaluate_action(action: str, values: Any) -> str:
    action = action.strip()
    if not action:
        raise JSONPathError("empty expression")
    if action.startswith("$"):
        path_text = action
    elif action.startswith((".", "[")):
        path_text = "$" + action
    else:
        path_text = "$." + action

    try:
        path = parse(_quote_escaped_fields(path_text))
    except (jsonpath_ng.exceptions.JSONPathError, ValueError) as e:
        raise JSONPathError(f"parsing '{action}': {e}") from e

    results = [match.value for match in path.find(values)]
    if not results:
        problem = _find_unresolved_segment(path, values)
        if problem is not None:
            raise JSONPathError(problem)
    return " ".join(_render(result) for result in results)


def _quote_escaped_fields(path_text: str) -> str:
    r"""Rewrite fields with escaped dots into quoted bracket fields.

    >>> _quote_escaped_fields(r"$.cm.data.tls\.crt")
    "$.cm.data['tls.crt']"
    """

    def quote(match: re.Match[str]) -> str:
        name = _ESCAPE.sub(r"\1", match.group(1))
        return "['" + name.replace("'", "\\'") + "']"

    return _ESCAPED_FIELD.sub(quote, path_text)


def _segments(path: Any) -> list[Any]:
    if isinstance(path, Child):
        return _segments(path.left) + _segments(path.right)
    return [path]


def _find_unresolved_segment(path: Any, values: Any) -> str | None:
    """Describe the first field or index of ``path`` that does not
    resolve.

    Returns `None` if the path stops matching for another reason, such as
    a filter that selects nothing.
    """
    matches = [values]
    for segment in _segments(path):
        found = []
        for match in matches:
            found.extend(datum.value for datum in segment.find(match))
        if not found:
            if isinstance(segment, Fields):
                return f"{'.'.join(segment.fields)} is not found"
            if isinstance(segment, Index):
                length = len(matches[0]) if isinstance(matches[0], list) else 0
                return (
                    f"array index out of bounds: index "
                    f"{segment.indices[0]}, length {length}"
                )
            return None
        matches = found
    return None


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))
