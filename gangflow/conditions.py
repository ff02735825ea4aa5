"""Condition evaluation shared by condition steps and condition triggers.

Comparisons follow the storefront's original JavaScript semantics: equality
is strict (no type coercion), ordering coerces to numbers unless both sides
are strings, and the string operators work on the ``String()`` rendering of
the customer value.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Optional

from .contracts import Condition
from .customers.models import CustomerProfile, OrderStats

logger = logging.getLogger(__name__)

_FIELD_ALIASES = {
    "email": "email",
    "name": "name",
    "order_count": "order_count",
    "ordercount": "order_count",
    "total_spent": "total_spent",
    "totalspent": "total_spent",
}
_COMPUTED_FIELDS = {"order_count", "total_spent"}


def normalize_field(field: str) -> Optional[str]:
    """Map ``user.orderCount``/``order_count`` style names to a known field."""
    name = field.strip()
    if name.startswith("user."):
        name = name[len("user.") :]
    return _FIELD_ALIASES.get(name) or _FIELD_ALIASES.get(name.lower())


def needs_order_stats(field: str) -> bool:
    return normalize_field(field) in _COMPUTED_FIELDS


def resolve_field(
    field: str, user: CustomerProfile, stats: Optional[OrderStats] = None
) -> Any:
    """Return the customer value a condition compares against.

    Unknown fields resolve to ``None``.
    """
    name = normalize_field(field)
    if name is None:
        logger.debug(f"Unknown condition field {field!r}")
        return None
    if name in _COMPUTED_FIELDS:
        stats = stats or OrderStats()
        return getattr(stats, name)
    return getattr(user, name)


# ----------------------------------------------------------------------
# Coercion helpers


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def js_string(value: Any) -> str:
    """Render ``value`` the way JavaScript's ``String()`` would."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    return str(value)


def js_number(value: Any) -> float:
    """Coerce ``value`` to a number the way JavaScript's ``Number()`` would."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _compare(left: Any, right: Any, op: Callable[[Any, Any], bool]) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        return op(left, right)
    a, b = js_number(left), js_number(right)
    if math.isnan(a) or math.isnan(b):
        return False
    return op(a, b)


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": strict_equals,
    "not_equals": lambda left, right: not strict_equals(left, right),
    "greater_than": lambda left, right: _compare(left, right, lambda a, b: a > b),
    "less_than": lambda left, right: _compare(left, right, lambda a, b: a < b),
    "contains": lambda left, right: js_string(right) in js_string(left),
    "starts_with": lambda left, right: js_string(left).startswith(js_string(right)),
    "ends_with": lambda left, right: js_string(left).endswith(js_string(right)),
}


def evaluate(operator: str, value: Any, expected: Any) -> bool:
    """Apply ``operator`` to the resolved value; unknown operators are false."""
    fn = OPERATORS.get(operator)
    if fn is None:
        logger.warning(f"Unknown condition operator {operator!r}; treating as false")
        return False
    return fn(value, expected)


def evaluate_condition(
    condition: Condition, user: CustomerProfile, stats: Optional[OrderStats] = None
) -> bool:
    value = resolve_field(condition.field, user, stats)
    return evaluate(condition.operator, value, condition.value)
