from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Any

from atomize.domain.errors import AtomizeError, ErrorKind
from atomize.schemas import WorkItem

logger = logging.getLogger(__name__)

_VARIABLE = re.compile(r"\$\{([^}]+)\}")
_QUOTES = ("'", '"')
_FALSY = {"", "false", "0", "null", "none", "undefined"}


class Comparator(str, Enum):
    NOT_CONTAINS = "NOT CONTAINS"
    CONTAINS = "CONTAINS"
    EQ = "=="
    NE = "!="
    GE = ">="
    LE = "<="
    GT = ">"
    LT = "<"

    @property
    def token(self) -> str:
        if self in (Comparator.CONTAINS, Comparator.NOT_CONTAINS):
            return f" {self.value} "
        return self.value


# Longer tokens first so ">=" is never read as ">".
_COMPARATOR_SCAN_ORDER = (
    Comparator.NOT_CONTAINS,
    Comparator.CONTAINS,
    Comparator.EQ,
    Comparator.NE,
    Comparator.GE,
    Comparator.LE,
    Comparator.GT,
    Comparator.LT,
)


def _malformed(message: str) -> AtomizeError:
    return AtomizeError(message, kind=ErrorKind.CONDITION_MALFORMED)


class ConditionEvaluator:
    """Evaluates task inclusion conditions against a story.

    Grammar: ``operand [comparator operand]`` clauses joined by ``AND``/``OR``
    (``OR`` binds looser). Operands are ``${story.<path>}`` references,
    quoted strings or bare literals. Anything that does not parse counts as
    "not met" so a broken condition never creates a task.
    """

    def evaluate(self, condition: str | None, story: WorkItem) -> bool:
        if condition is None or not condition.strip():
            return True
        try:
            expression = self._strip_outer_quotes(condition.strip())
            if expression.count("${") != len(_VARIABLE.findall(expression)):
                raise _malformed(f"Unterminated variable reference in {condition!r}")
            result = self._evaluate_expression(expression, story.field_values())
        except AtomizeError as exc:
            logger.warning("Condition %r is malformed and treated as not met: %s", condition, exc)
            return False
        logger.debug("Condition %r evaluated to %s for story %s", condition, result, story.id)
        return result

    @staticmethod
    def _strip_outer_quotes(expression: str) -> str:
        # Tolerates the YAML-escaped form: '${story.tags} CONTAINS "api"'
        if len(expression) >= 2 and expression[0] in _QUOTES and expression[-1] == expression[0]:
            inner = expression[1:-1]
            if expression[0] not in inner:
                return inner.strip()
        return expression

    def _evaluate_expression(self, expression: str, values: dict[str, Any]) -> bool:
        or_parts = _split_outside_quotes(expression, " OR ")
        if len(or_parts) > 1:
            return any(self._evaluate_expression(part, values) for part in or_parts)
        and_parts = _split_outside_quotes(expression, " AND ")
        if len(and_parts) > 1:
            return all(self._evaluate_expression(part, values) for part in and_parts)
        return self._evaluate_comparison(expression.strip(), values)

    def _evaluate_comparison(self, expression: str, values: dict[str, Any]) -> bool:
        if not expression:
            raise _malformed("Empty clause")
        for comparator in _COMPARATOR_SCAN_ORDER:
            position = _find_outside_quotes(expression, comparator.token)
            if position < 0:
                continue
            left_raw = expression[:position].strip()
            right_raw = expression[position + len(comparator.token):].strip()
            if not left_raw or not right_raw:
                raise _malformed(f"Comparator {comparator.value} needs two operands in {expression!r}")
            left = _resolve_operand(left_raw, values)
            right = _resolve_operand(right_raw, values)
            exact = _is_quoted(left_raw) or _is_quoted(right_raw)
            return _compare(comparator, left, right, exact=exact)
        return _to_text(_resolve_operand(expression, values)).strip().lower() not in _FALSY


def _split_outside_quotes(expression: str, separator: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    quote: str | None = None
    i = 0
    while i < len(expression):
        char = expression[i]
        if char in _QUOTES and (i == 0 or expression[i - 1] != "\\"):
            if quote is None:
                quote = char
            elif char == quote:
                quote = None
        if quote is None and expression.startswith(separator, i):
            parts.append("".join(current))
            current = []
            i += len(separator)
            continue
        current.append(char)
        i += 1
    parts.append("".join(current))
    return parts


def _find_outside_quotes(expression: str, token: str) -> int:
    quote: str | None = None
    depth = 0
    for i, char in enumerate(expression):
        if char in _QUOTES and depth == 0:
            if quote is None:
                quote = char
            elif char == quote:
                quote = None
            continue
        if quote is not None:
            continue
        if expression.startswith("${", i):
            depth += 1
        elif char == "}" and depth:
            depth -= 1
        elif depth == 0 and expression.startswith(token, i):
            return i
    return -1


def _lookup(path: str, values: dict[str, Any]) -> Any:
    parts = path.strip()
    if parts.startswith("story."):
        parts = parts[len("story."):]
    current: Any = values
    for part in parts.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return None
    return current


def _is_quoted(raw: str) -> bool:
    return len(raw) >= 2 and raw[0] in _QUOTES and raw[-1] == raw[0]


def _resolve_operand(raw: str, values: dict[str, Any]) -> Any:
    whole = _VARIABLE.fullmatch(raw)
    if whole:
        return _lookup(whole.group(1), values)
    if _is_quoted(raw):
        raw = raw[1:-1]
    return _VARIABLE.sub(lambda m: _to_text(_lookup(m.group(1), values)), raw)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple, set)):
        return ",".join(_to_text(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(_to_text(value).strip())
    except ValueError:
        return None


def _contains(left: Any, right: Any) -> bool:
    needle = _to_text(right).lower()
    if isinstance(left, (list, tuple, set)):
        return any(_to_text(item).lower() == needle for item in left)
    haystack = _to_text(left).lower()
    if not haystack:
        return False
    return needle in haystack


def _compare(comparator: Comparator, left: Any, right: Any, *, exact: bool = False) -> bool:
    if comparator is Comparator.CONTAINS:
        return _contains(left, right)
    if comparator is Comparator.NOT_CONTAINS:
        return not _contains(left, right)
    if comparator in (Comparator.EQ, Comparator.NE):
        # Bare numerals compare by value ("8.0" == 8); a quoted literal compares as text ("007" != "7").
        left_number, right_number = _to_number(left), _to_number(right)
        if not exact and left_number is not None and right_number is not None:
            equal = left_number == right_number
        else:
            equal = _to_text(left) == _to_text(right)
        return equal if comparator is Comparator.EQ else not equal

    left_number, right_number = _to_number(left), _to_number(right)
    if left_number is None or right_number is None:
        raise _malformed(f"Non-numeric operands for {comparator.value}: {left!r}, {right!r}")
    if comparator is Comparator.GT:
        return left_number > right_number
    if comparator is Comparator.LT:
        return left_number < right_number
    if comparator is Comparator.GE:
        return left_number >= right_number
    return left_number <= right_number
