"""Restricted formula expressions for formula-type components.

Formulas are arithmetic over a fixed set of employee variables, e.g.
``basic_salary * 0.1`` or ``max(0, overtime_hours - 10) * hourly_rate``.
Expressions are parsed with :mod:`ast` and evaluated node by node in
Decimal arithmetic; nothing is ever passed to ``eval``.

Allowed:
  - Numbers
  - Variables: basic_salary, overtime_hours, worked_days, hourly_rate
  - Operators: + - * / and unary minus
  - Functions: min(), max(), abs(), round()
"""

from __future__ import annotations

import ast
from collections.abc import Mapping
from decimal import Decimal, DivisionByZero, InvalidOperation

from payrun_engine.errors import CalculationError

FORMULA_VARIABLES: frozenset[str] = frozenset(
    {"basic_salary", "overtime_hours", "worked_days", "hourly_rate"}
)

# Allowed functions with their (min, max) positional argument counts
FUNCTION_ARITY: dict[str, tuple[int, int | None]] = {
    "min": (1, None),
    "max": (1, None),
    "abs": (1, 1),
    "round": (1, 2),
}
ALLOWED_FUNCTIONS: frozenset[str] = frozenset(FUNCTION_ARITY)


def validate_formula(expression: str) -> list[str]:
    """Validate a formula without evaluating it.

    Returns a list of error messages. Empty list means the formula is valid.
    """
    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError as e:
        return [f"Syntax error: {e.msg}"]

    errors: list[str] = []
    _validate_node(tree.body, errors)
    return errors


def _validate_node(node: ast.AST, errors: list[str]) -> None:
    if isinstance(node, ast.BinOp):
        if not isinstance(node.op, (ast.Add, ast.Sub, ast.Mult, ast.Div)):
            errors.append(f"Disallowed binary operator: {type(node.op).__name__}")
        _validate_node(node.left, errors)
        _validate_node(node.right, errors)

    elif isinstance(node, ast.UnaryOp):
        if not isinstance(node.op, (ast.USub, ast.UAdd)):
            errors.append(f"Disallowed unary operator: {type(node.op).__name__}")
        _validate_node(node.operand, errors)

    elif isinstance(node, ast.Call):
        if not (isinstance(node.func, ast.Name) and node.func.id in ALLOWED_FUNCTIONS):
            errors.append("Disallowed function call")
            return
        if node.keywords:
            errors.append(f"Keyword arguments not allowed in {node.func.id}()")
        low, high = FUNCTION_ARITY[node.func.id]
        if len(node.args) < low:
            errors.append(f"{node.func.id}() needs at least {low} argument")
        elif high is not None and len(node.args) > high:
            errors.append(f"{node.func.id}() takes at most {high} argument(s)")
        for arg in node.args:
            _validate_node(arg, errors)

    elif isinstance(node, ast.Name):
        if node.id not in FORMULA_VARIABLES:
            errors.append(f"Unknown variable: {node.id}")

    elif isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            errors.append(f"Disallowed constant: {node.value!r}")

    else:
        errors.append(f"Disallowed expression: {type(node).__name__}")


def evaluate_formula(expression: str, variables: Mapping[str, Decimal]) -> Decimal:
    """Evaluate a formula against the given variables.

    Raises:
        CalculationError: If the formula is invalid or cannot be evaluated
    """
    errors = validate_formula(expression)
    if errors:
        raise CalculationError(f"Invalid formula {expression!r}: {'; '.join(errors)}")

    tree = ast.parse(expression, mode="eval")
    try:
        return _eval(tree.body, variables)
    except (DivisionByZero, InvalidOperation, ZeroDivisionError) as e:
        raise CalculationError(f"Formula {expression!r} failed: {e}") from e


def _eval(node: ast.AST, variables: Mapping[str, Decimal]) -> Decimal:
    if isinstance(node, ast.Constant):
        # str() keeps 0.1 as Decimal("0.1") rather than the binary float
        return Decimal(str(node.value))

    if isinstance(node, ast.Name):
        if node.id not in variables:
            raise CalculationError(f"Formula variable {node.id!r} has no value")
        return Decimal(variables[node.id])

    if isinstance(node, ast.UnaryOp):
        operand = _eval(node.operand, variables)
        return -operand if isinstance(node.op, ast.USub) else operand

    if isinstance(node, ast.BinOp):
        left = _eval(node.left, variables)
        right = _eval(node.right, variables)
        if isinstance(node.op, ast.Add):
            return left + right
        if isinstance(node.op, ast.Sub):
            return left - right
        if isinstance(node.op, ast.Mult):
            return left * right
        if right == 0:
            raise CalculationError("Division by zero in formula")
        return left / right

    if isinstance(node, ast.Call):
        args = [_eval(arg, variables) for arg in node.args]
        name = node.func.id  # type: ignore[attr-defined]
        if name == "min":
            return min(args)
        if name == "max":
            return max(args)
        if name == "abs":
            return abs(args[0])
        # round(x) or round(x, places)
        places = int(args[1]) if len(args) > 1 else 0
        return args[0].quantize(Decimal(1).scaleb(-places))

    raise CalculationError(f"Cannot evaluate {type(node).__name__}")
