# enginecalc/core/expression.py
"""
Arithmetic expression engine used to evaluate prepared formulas.

Prepared formulas only contain identifiers, number literals, ``+ - * / ^ %``,
parentheses and calls to the functions of the engine's namespace. They are
parsed once with :mod:`ast`, checked against a whitelist of node types and
compiled; the resulting :class:`Expression` is then evaluated once per record
with a fresh set of variable values.

Values are computed with numpy float64 semantics: domain errors and overflow
produce NaN/inf instead of raising.
"""
from __future__ import annotations

import ast
from types import CodeType, MappingProxyType
from typing import Any, Mapping

import numpy as np

from .exceptions import FormulaSyntaxError


def _round(x: float) -> np.float64:
    # half away from zero
    x = np.float64(x)
    return np.copysign(np.floor(np.abs(x) + 0.5), x)


def _fract(x: float) -> np.float64:
    x = np.float64(x)
    return x - np.trunc(x)


def _signum(x: float) -> np.float64:
    x = np.float64(x)
    if np.isnan(x):
        return x
    return np.copysign(np.float64(1.0), x)


def _min(*args: float) -> np.float64:
    if not args:
        raise TypeError("min() expects at least one argument")
    return np.min(np.asarray(args, dtype=np.float64))


def _max(*args: float) -> np.float64:
    if not args:
        raise TypeError("max() expects at least one argument")
    return np.max(np.asarray(args, dtype=np.float64))


DEFAULT_FUNCTIONS: Mapping[str, Any] = MappingProxyType({
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "asin": np.arcsin,
    "acos": np.arccos,
    "atan": np.arctan,
    "atan2": np.arctan2,
    "sinh": np.sinh,
    "cosh": np.cosh,
    "tanh": np.tanh,
    "asinh": np.arcsinh,
    "acosh": np.arccosh,
    "atanh": np.arctanh,
    "sqrt": np.sqrt,
    "abs": np.abs,
    "exp": np.exp,
    "ln": np.log,
    "log": np.log10,
    "log2": np.log2,
    "log10": np.log10,
    "floor": np.floor,
    "ceil": np.ceil,
    "round": _round,
    "trunc": np.trunc,
    "fract": _fract,
    "signum": _signum,
    "min": _min,
    "max": _max,
    "pi": np.float64(np.pi),
    "e": np.float64(np.e),
    "tau": np.float64(2.0 * np.pi),
    "phi": np.float64((1.0 + np.sqrt(5.0)) / 2.0),
})

# Exceptions a single evaluation may raise for bad input values.
EVALUATION_ERRORS: tuple[type[BaseException], ...] = (
    ArithmeticError,
    ValueError,
    TypeError,
    NameError,
)

_ALLOWED_NODES: tuple[type[ast.AST], ...] = (
    ast.Expression,
    ast.BinOp,
    ast.UnaryOp,
    ast.Call,
    ast.Name,
    ast.Constant,
    ast.Load,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.Mod,
    ast.Pow,
    ast.UAdd,
    ast.USub,
)


class Expression:
    """A parsed, validated and compiled arithmetic expression."""

    __slots__ = ("source", "names", "_code", "_globals")

    def __init__(
        self,
        source: str,
        code: CodeType,
        names: frozenset[str],
        functions: Mapping[str, Any],
    ) -> None:
        self.source = source
        self.names = names
        self._code = code
        self._globals: dict[str, Any] = {"__builtins__": {}, **functions}

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"

    def evaluate(self, variables: Mapping[str, float]) -> float:
        """
        Evaluate with `variables` bound; raises one of EVALUATION_ERRORS.

        Callers evaluating many records should wrap the loop in
        ``np.errstate(all="ignore")``.
        """
        result = eval(self._code, self._globals, dict(variables))
        if isinstance(result, (bool, np.bool_)) or callable(result):
            raise TypeError(f"expression produced a non-numeric value: {result!r}")
        return float(result)


def _check_tree(tree: ast.AST, functions: Mapping[str, Any]) -> frozenset[str]:
    names: set[str] = set()
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise FormulaSyntaxError(f"Parse error: unsupported syntax '{type(node).__name__}'")

        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise FormulaSyntaxError(f"Parse error: unsupported literal {node.value!r}")

        elif isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name):
                raise FormulaSyntaxError("Parse error: only named functions can be called")
            if node.keywords:
                raise FormulaSyntaxError("Parse error: keyword arguments are not supported")
            func = functions.get(node.func.id)
            if not callable(func):
                raise FormulaSyntaxError(f"Parse error: unknown function '{node.func.id}'")

        elif isinstance(node, ast.Name) and node.id not in functions:
            names.add(node.id)

    return frozenset(names)


class _FloatLiterals(ast.NodeTransformer):
    """Turn integer literals into floats so ``9^9^9`` overflows instead of growing."""

    def visit_Constant(self, node: ast.Constant) -> ast.Constant:
        return ast.copy_location(ast.Constant(value=float(node.value)), node)


def compile_expression(
    text: str,
    functions: Mapping[str, Any] = DEFAULT_FUNCTIONS,
) -> Expression:
    """
    Parse `text` into a reusable Expression.

    ``^`` is the power operator. Raises FormulaSyntaxError with a
    ``Parse error:`` prefix when the text is not a supported expression.
    """
    source = " ".join(text.replace("^", "**").split())
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as e:
        raise FormulaSyntaxError(f"Parse error: {e.msg}") from e
    except (ValueError, RecursionError) as e:
        raise FormulaSyntaxError(f"Parse error: {e}") from e

    names = _check_tree(tree, functions)
    try:
        tree = ast.fix_missing_locations(_FloatLiterals().visit(tree))
        code = compile(tree, "<formula>", "eval")
    except OverflowError as e:
        raise FormulaSyntaxError(f"Parse error: number literal too large ({e})") from e
    except RecursionError as e:
        raise FormulaSyntaxError("Parse error: expression is nested too deeply") from e
    return Expression(text, code, names, functions)

