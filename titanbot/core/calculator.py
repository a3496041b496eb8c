from __future__ import annotations

import ast
import math
import operator
import re

from titanbot.core.errors import ValidationError

MAX_EXPRESSION_LENGTH = 200
MAX_EXPONENT = 1000

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}
FUNCTIONS = {
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "sqrt": math.sqrt,
    "abs": abs,
    "log": math.log,
    "log10": math.log10,
    "exp": math.exp,
    "round": round,
    "floor": math.floor,
    "ceil": math.ceil,
}
CONSTANTS = {
    "pi": math.pi,
    "e": math.e,
    "tau": math.tau,
}

_DEGREES = re.compile(r"(\d+(?:\.\d+)?)\s*deg\b", re.IGNORECASE)


def _invalid(reason: str) -> ValidationError:
    return ValidationError(f"calculator rejected expression: {reason}", user_message=reason)


def _prepare(expression: str) -> str:
    text = (expression or "").strip()
    if not text:
        raise _invalid("Please enter an expression.")
    if len(text) > MAX_EXPRESSION_LENGTH:
        raise _invalid(f"Expressions are limited to {MAX_EXPRESSION_LENGTH} characters.")
    text = text.replace("^", "**").replace("×", "*").replace("÷", "/").replace("π", "pi")
    return _DEGREES.sub(lambda match: f"({match.group(1)}*pi/180)", text)


def _eval(node: ast.AST) -> float | int:
    if isinstance(node, ast.Expression):
        return _eval(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.Name):
        if node.id in CONSTANTS:
            return CONSTANTS[node.id]
        raise _invalid(f"Unknown name `{node.id}`.")
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval(node.operand))
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval(node.left)
        right = _eval(node.right)
        if isinstance(node.op, ast.Pow):
            if abs(right) > MAX_EXPONENT:
                raise _invalid("That exponent is too large.")
            if abs(left) > 1 and math.log10(abs(left)) * abs(right) > 10 * MAX_EXPONENT:
                raise _invalid("That result is too large.")
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and not node.keywords:
        func = FUNCTIONS.get(node.func.id)
        if func is None:
            raise _invalid(f"Unknown function `{node.func.id}`.")
        return func(*[_eval(arg) for arg in node.args])
    raise _invalid("Only numbers, operators, functions and constants are allowed.")


def evaluate(expression: str) -> float | int:
    text = _prepare(expression)
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as exc:
        raise _invalid("That expression could not be parsed.") from exc
    try:
        result = _eval(tree)
    except ZeroDivisionError as exc:
        raise _invalid("Division by zero.") from exc
    except (OverflowError, ValueError, TypeError) as exc:
        raise _invalid(f"Math error: {exc}") from exc
    if isinstance(result, complex):
        raise _invalid("The result is not a real number.")
    if isinstance(result, float) and (math.isnan(result) or math.isinf(result)):
        raise _invalid("The result is not a finite number.")
    return result


def format_result(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
        value = int(value)
    if isinstance(value, int):
        return f"{value:,}"
    return f"{value:,.10g}"
