"""Step condition expressions.

Conditions such as ``output.score > 0.8`` or
``outputs.review.status == 'approved' && !outputs.lint.blocked`` are parsed
once into a small tagged AST and evaluated against read-only prior outputs.

Supported syntax:

* literals: numbers, quoted strings, ``true``/``false``/``null`` (and the
  Python spellings), lists of literals
* path lookups: ``output.field``, ``outputs.step_id.field``,
  ``outputs["step id"].items[0]``
* comparisons: ``==  !=  <  <=  >  >=  in  not in`` (chaining allowed) and the
  ``===``/``!==`` spellings
* boolean combinators: ``and  or  not`` and ``&&  ||  !``

Evaluation fails closed: :func:`evaluate_condition` returns ``False`` for any
expression that cannot be evaluated against the supplied scope.
"""

from __future__ import annotations

import ast
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Annotated, Any, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConditionError

logger = logging.getLogger(__name__)

ROOT_NAMES = frozenset({"output", "outputs", "project"})

_LITERAL_NAMES = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "null": None,
    "None": None,
    "undefined": None,
}

_COMPARE_OPS = {
    ast.Eq: "==",
    ast.NotEq: "!=",
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">=",
    ast.In: "in",
    ast.NotIn: "not in",
}

# quoted strings are matched first so operators inside them are left alone
_JS_OPERATORS = re.compile(
    r"(\"(?:\\.|[^\"\\])*\"|'(?:\\.|[^'\\])*')|(===|!==|&&|\|\||!(?!=))"
)
_JS_REPLACEMENTS = {"===": "==", "!==": "!=", "&&": " and ", "||": " or ", "!": " not "}


class LiteralExpr(BaseModel):
    kind: Literal["literal"] = "literal"
    value: Any = None

    model_config = ConfigDict(frozen=True)


class PathExpr(BaseModel):
    kind: Literal["path"] = "path"
    root: str
    segments: Tuple[Union[int, str], ...] = ()

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return ".".join([self.root, *(str(s) for s in self.segments)])


class CompareExpr(BaseModel):
    kind: Literal["compare"] = "compare"
    left: "Expr"
    ops: Tuple[str, ...]
    comparators: Tuple["Expr", ...]

    model_config = ConfigDict(frozen=True)


class BoolExpr(BaseModel):
    kind: Literal["bool"] = "bool"
    op: Literal["and", "or"]
    operands: Tuple["Expr", ...]

    model_config = ConfigDict(frozen=True)


class NotExpr(BaseModel):
    kind: Literal["not"] = "not"
    operand: "Expr"

    model_config = ConfigDict(frozen=True)


Expr = Annotated[
    Union[LiteralExpr, PathExpr, CompareExpr, BoolExpr, NotExpr],
    Field(discriminator="kind"),
]

CompareExpr.model_rebuild()
BoolExpr.model_rebuild()
NotExpr.model_rebuild()


def _normalize(text: str) -> str:
    def _sub(match: re.Match) -> str:
        if match.group(1):
            return match.group(1)
        return _JS_REPLACEMENTS[match.group(2)]

    return _JS_OPERATORS.sub(_sub, text).strip()


def _convert(node: ast.AST) -> Expr:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, (str, int, float, bool)) or node.value is None:
            return LiteralExpr(value=node.value)
        raise ConditionError(f"Unsupported literal: {node.value!r}")
    if isinstance(node, ast.Name):
        if node.id in _LITERAL_NAMES:
            return LiteralExpr(value=_LITERAL_NAMES[node.id])
        if node.id not in ROOT_NAMES:
            raise ConditionError(
                f"Unknown name '{node.id}', expected one of {sorted(ROOT_NAMES)}"
            )
        return PathExpr(root=node.id)
    if isinstance(node, ast.Attribute):
        base = _convert(node.value)
        if not isinstance(base, PathExpr):
            raise ConditionError("Attribute access is only allowed on paths")
        return PathExpr(root=base.root, segments=base.segments + (node.attr,))
    if isinstance(node, ast.Subscript):
        base = _convert(node.value)
        key = node.slice
        if not isinstance(base, PathExpr) or not isinstance(key, ast.Constant):
            raise ConditionError("Subscripts must use a literal key on a path")
        if not isinstance(key.value, (int, str)) or isinstance(key.value, bool):
            raise ConditionError(f"Unsupported subscript key: {key.value!r}")
        return PathExpr(root=base.root, segments=base.segments + (key.value,))
    if isinstance(node, ast.UnaryOp):
        if isinstance(node.op, ast.Not):
            return NotExpr(operand=_convert(node.operand))
        if isinstance(node.op, (ast.USub, ast.UAdd)):
            operand = _convert(node.operand)
            if isinstance(operand, LiteralExpr) and isinstance(operand.value, (int, float)):
                value = -operand.value if isinstance(node.op, ast.USub) else operand.value
                return LiteralExpr(value=value)
        raise ConditionError("Unsupported unary operator")
    if isinstance(node, ast.BoolOp):
        op = "and" if isinstance(node.op, ast.And) else "or"
        return BoolExpr(op=op, operands=tuple(_convert(v) for v in node.values))
    if isinstance(node, ast.Compare):
        ops = []
        for op in node.ops:
            symbol = _COMPARE_OPS.get(type(op))
            if symbol is None:
                raise ConditionError(f"Unsupported comparison: {type(op).__name__}")
            ops.append(symbol)
        return CompareExpr(
            left=_convert(node.left),
            ops=tuple(ops),
            comparators=tuple(_convert(c) for c in node.comparators),
        )
    if isinstance(node, (ast.List, ast.Tuple)):
        items = [_convert(elt) for elt in node.elts]
        if not all(isinstance(item, LiteralExpr) for item in items):
            raise ConditionError("List literals may only contain literals")
        return LiteralExpr(value=[item.value for item in items])
    raise ConditionError(f"Unsupported expression: {type(node).__name__}")


def parse_condition(text: str) -> Expr:
    """Parse ``text`` into an expression tree.

    Raises:
        ConditionError: If the text is not a supported expression.
    """
    source = _normalize(text)
    if not source:
        raise ConditionError("Condition is empty")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise ConditionError(f"Invalid condition {text!r}: {exc.msg}") from exc
    return _convert(tree.body)


def _resolve(path: PathExpr, scope: Mapping[str, Any]) -> Any:
    if path.root not in scope:
        raise ConditionError(f"'{path.root}' is not available")
    value = scope[path.root]
    for segment in path.segments:
        if isinstance(value, Mapping):
            if segment not in value:
                raise ConditionError(f"'{path}' does not exist")
            value = value[segment]
        elif (
            isinstance(value, Sequence)
            and not isinstance(value, (str, bytes))
            and isinstance(segment, int)
        ):
            try:
                value = value[segment]
            except IndexError as exc:
                raise ConditionError(f"'{path}' is out of range") from exc
        else:
            raise ConditionError(f"'{path}' does not exist")
    return value


def _compare(op: str, left: Any, right: Any) -> bool:
    try:
        if op == "==":
            return left == right
        if op == "!=":
            return left != right
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
        if op == "in":
            return left in right
        if op == "not in":
            return left not in right
    except TypeError as exc:
        raise ConditionError(f"Cannot compare {left!r} {op} {right!r}") from exc
    raise ConditionError(f"Unknown operator {op}")


def evaluate(expr: Expr, scope: Mapping[str, Any]) -> Any:
    """Evaluate ``expr`` strictly, raising :class:`ConditionError` on failure."""
    if isinstance(expr, LiteralExpr):
        return expr.value
    if isinstance(expr, PathExpr):
        return _resolve(expr, scope)
    if isinstance(expr, NotExpr):
        return not evaluate(expr.operand, scope)
    if isinstance(expr, BoolExpr):
        if expr.op == "and":
            return all(evaluate(operand, scope) for operand in expr.operands)
        return any(evaluate(operand, scope) for operand in expr.operands)
    if isinstance(expr, CompareExpr):
        left = evaluate(expr.left, scope)
        for op, comparator in zip(expr.ops, expr.comparators):
            right = evaluate(comparator, scope)
            if not _compare(op, left, right):
                return False
            left = right
        return True
    raise ConditionError(f"Unknown expression node: {expr!r}")


def evaluate_condition(expr: Expr, scope: Mapping[str, Any]) -> bool:
    """Evaluate ``expr`` and fail closed on any evaluation error."""
    try:
        return bool(evaluate(expr, scope))
    except ConditionError as exc:
        logger.info(f"Condition evaluated to false: {exc}")
        return False
