"""
Condition language for tenant policies.

Policies carry conditions as small JSON-logic documents::

    {">=": [{"var": "payload.confidence"}, 0.8]}
    {"and": [{"==": [{"var": "type"}, "intent_detected"]}, {"var": "payload.vip"}]}

A document is parsed once into a tree of frozen nodes (``parse_condition``)
and evaluated against an event (``evaluate``). Evaluation never raises:
unresolvable paths produce ``UNDEFINED``, which equals only itself and
fails every numeric comparison.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from app.core.errors import ConditionParseError
from app.schemas.event import Event


class _Undefined:
    """Result of resolving a path that does not exist."""

    _instance = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


@dataclass(frozen=True)
class Var:
    path: str

    def to_document(self) -> dict[str, Any]:
        return {"var": self.path}


@dataclass(frozen=True)
class Eq:
    left: Any
    right: Any

    def to_document(self) -> dict[str, Any]:
        return {"==": [_operand_document(self.left), _operand_document(self.right)]}


@dataclass(frozen=True)
class Gte:
    left: Any
    right: Any

    def to_document(self) -> dict[str, Any]:
        return {">=": [_operand_document(self.left), _operand_document(self.right)]}


@dataclass(frozen=True)
class Lte:
    left: Any
    right: Any

    def to_document(self) -> dict[str, Any]:
        return {"<=": [_operand_document(self.left), _operand_document(self.right)]}


@dataclass(frozen=True)
class And:
    nodes: tuple["ConditionNode", ...] = ()

    def to_document(self) -> dict[str, Any]:
        return {"and": [n.to_document() for n in self.nodes]}


@dataclass(frozen=True)
class Or:
    nodes: tuple["ConditionNode", ...] = ()

    def to_document(self) -> dict[str, Any]:
        return {"or": [n.to_document() for n in self.nodes]}


@dataclass(frozen=True)
class InvalidCondition:
    """Stands in for a document that failed to parse. Always false."""

    reason: str
    raw: Any = None

    def to_document(self) -> Any:
        return self.raw


ConditionNode = Union[Var, Eq, Gte, Lte, And, Or, InvalidCondition]
CONDITION_NODE_TYPES = (Var, Eq, Gte, Lte, And, Or, InvalidCondition)

_COMPARISONS = {"==": Eq, ">=": Gte, "<=": Lte}
_GROUPS = {"and": And, "or": Or}


def _operand_document(operand: Any) -> Any:
    if isinstance(operand, Var):
        return operand.to_document()
    return operand


# --- parsing ---------------------------------------------------------------


def _parse_var(value: Any, raw: Any) -> Var:
    # JSON-logic also allows {"var": ["path"]}
    if isinstance(value, list) and len(value) == 1:
        value = value[0]
    if not isinstance(value, str):
        raise ConditionParseError("'var' expects a dot-separated path string", raw)
    return Var(value)


def _parse_operand(value: Any, raw: Any) -> Any:
    if isinstance(value, Var):
        return value
    if isinstance(value, Mapping):
        if set(value.keys()) == {"var"}:
            return _parse_var(value["var"], raw)
        raise ConditionParseError(
            "Comparison operands must be literals or {'var': path}", raw
        )
    return value


def parse_condition(raw: Any) -> ConditionNode:
    """
    Parse a JSON-logic condition document into a condition tree.

    Already-built nodes are returned unchanged. Raises ConditionParseError
    for anything that is not exactly one known operator.
    """
    if isinstance(raw, CONDITION_NODE_TYPES):
        return raw
    if not isinstance(raw, Mapping):
        raise ConditionParseError("Condition must be an object", raw)
    if len(raw) != 1:
        raise ConditionParseError("Condition must have exactly one operator", raw)

    op, args = next(iter(raw.items()))
    if op == "var":
        return _parse_var(args, raw)
    if op in _COMPARISONS:
        if not isinstance(args, (list, tuple)) or len(args) != 2:
            raise ConditionParseError(f"'{op}' expects two operands", raw)
        left, right = args
        return _COMPARISONS[op](_parse_operand(left, raw), _parse_operand(right, raw))
    if op in _GROUPS:
        if not isinstance(args, (list, tuple)):
            raise ConditionParseError(f"'{op}' expects a list of conditions", raw)
        return _GROUPS[op](tuple(parse_condition(child) for child in args))
    raise ConditionParseError(f"Unknown condition operator: {op}", raw)


# --- evaluation ------------------------------------------------------------


def event_root(event: Event) -> dict[str, Any]:
    """
    The object that variable paths are resolved against.

    ``timestamp`` is epoch milliseconds so it can be compared with ``>=``
    and ``<=``. ``event_type`` and ``contact_id`` are the legacy names of
    ``type`` and ``subject_id``.
    """
    return {
        "id": event.id,
        "tenant_id": event.tenant_id,
        "subject_id": event.subject_id,
        "contact_id": event.subject_id,
        "type": event.type,
        "event_type": event.type,
        "payload": event.payload,
        "timestamp": int(event.timestamp.timestamp() * 1000),
    }


def _step(current: Any, part: str) -> Any:
    if isinstance(current, Mapping):
        return current[part] if part in current else UNDEFINED
    if isinstance(current, (list, tuple)) and part.isascii() and part.isdigit():
        index = int(part)
        return current[index] if index < len(current) else UNDEFINED
    return UNDEFINED


def resolve_path(path: str, root: Any) -> Any:
    """Walk a dot-separated path through nested mappings and list indices."""
    current = root
    for part in path.split("."):
        current = _step(current, part)
        if current is UNDEFINED:
            return UNDEFINED
    return current


def _resolve_operand(operand: Any, root: Mapping[str, Any]) -> Any:
    if isinstance(operand, Var):
        return resolve_path(operand.path, root)
    return operand


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _values_equal(left: Any, right: Any) -> bool:
    if left is UNDEFINED or right is UNDEFINED:
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    try:
        return bool(left == right)
    except Exception:
        return False


def _evaluate(node: Any, root: Mapping[str, Any]) -> bool:
    if isinstance(node, Var):
        value = resolve_path(node.path, root)
        return value is not UNDEFINED and bool(value)
    if isinstance(node, Eq):
        return _values_equal(
            _resolve_operand(node.left, root), _resolve_operand(node.right, root)
        )
    if isinstance(node, (Gte, Lte)):
        left = _resolve_operand(node.left, root)
        right = _resolve_operand(node.right, root)
        if not (_is_number(left) and _is_number(right)):
            return False
        return left >= right if isinstance(node, Gte) else left <= right
    if isinstance(node, And):
        return all(_evaluate(child, root) for child in node.nodes)
    if isinstance(node, Or):
        return any(_evaluate(child, root) for child in node.nodes)
    return False


def evaluate(node: ConditionNode, event: Event) -> bool:
    """True when the event satisfies the condition; never raises."""
    try:
        return _evaluate(node, event_root(event))
    except Exception:
        return False
