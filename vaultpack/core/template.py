"""Restricted expression evaluation for embedded ``{{ ... }}`` blocks."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence, cast
import ast
import operator
import re


_BLOCK_PATTERN = re.compile(r"\{\{(?P<expr>.+?)\}\}", re.DOTALL)

_ALLOWED_BIN_OPS: dict[type[ast.AST], Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: lambda left, right: _bounded_mul(left, right),
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: lambda base, exponent: _bounded_pow(base, exponent),
}

_ALLOWED_UNARY_OPS: dict[type[ast.AST], Any] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_ALLOWED_COMPARISONS: dict[type[ast.AST], Any] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


@dataclass(frozen=True)
class _AllowedCallSpec:
    func: Callable[..., Any]
    min_args: int = 1
    max_args: Optional[int] = 1


_ALLOWED_CALLS: dict[str, _AllowedCallSpec] = {
    "str": _AllowedCallSpec(str, 1, 1),
    "int": _AllowedCallSpec(int, 1, 1),
    "float": _AllowedCallSpec(float, 1, 1),
    "bool": _AllowedCallSpec(bool, 1, 1),
    "len": _AllowedCallSpec(len, 1, 1),
    "lower": _AllowedCallSpec(lambda value: str(value).lower(), 1, 1),
    "upper": _AllowedCallSpec(lambda value: str(value).upper(), 1, 1),
    "min": _AllowedCallSpec(min, 1, None),
    "max": _AllowedCallSpec(max, 1, None),
    "abs": _AllowedCallSpec(abs, 1, 1),
    "round": _AllowedCallSpec(round, 1, 2),
}

_CONSTANT_NAMES = {"True": True, "False": False, "None": None}

_MAX_EXPONENT = 256
_MAX_REPEAT_LENGTH = 65536


class TemplateError(ValueError):
    """Raised when an embedded expression cannot be evaluated."""


def validate_expression_syntax(expression: str) -> None:
    """Ensure *expression* parses and uses only supported constructs.

    Names are not checked against a context, so this only catches syntax
    errors and disallowed nodes.
    """

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as exc:
        raise TemplateError(f"Invalid expression syntax: {exc.msg}") from exc
    _ExpressionEvaluator(context=None).visit(tree)


def extract_expressions(text: str) -> list[str]:
    """Return the stripped source of every ``{{ ... }}`` block in *text*."""

    return [match.group("expr").strip() for match in _BLOCK_PATTERN.finditer(text)]


@dataclass(slots=True)
class TemplateRenderer:
    """Renders text by evaluating ``{{ expression }}`` blocks against *context*.

    The context is a fixed mapping of names. Attribute access (``a.b``) and
    subscripts (``a['b']``) walk nested mappings and sequences only, so an
    expression can never reach anything outside the values it was given.
    """

    context: Mapping[str, Any]
    _cache: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def render(self, text: str) -> str:
        if "{{" not in text:
            return text
        return _BLOCK_PATTERN.sub(self._replace, text)

    def evaluate(self, expression: str) -> Any:
        source = expression.strip()
        if source in self._cache:
            return self._cache[source]
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as exc:
            raise TemplateError(f"Invalid expression syntax in '{source}': {exc.msg}") from exc
        value = _ExpressionEvaluator(context=self.context).visit(tree)
        self._cache[source] = value
        return value

    def _replace(self, match: re.Match[str]) -> str:
        return render_value(self.evaluate(match.group("expr")))


def render_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class _ExpressionEvaluator(ast.NodeVisitor):
    """Evaluates a parsed expression; with ``context=None`` it only validates."""

    def __init__(self, *, context: Mapping[str, Any] | None) -> None:
        self._context = context

    @property
    def _checking(self) -> bool:
        return self._context is None

    def visit(self, node: ast.AST) -> Any:  # type: ignore[override]
        if isinstance(node, ast.Expression):
            return self.visit(node.body)
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            return self._lookup_name(node.id)
        if isinstance(node, ast.Attribute):
            if node.attr.startswith("_"):
                raise TemplateError(f"Attribute '{node.attr}' is not allowed in expressions")
            target = self.visit(node.value)
            if self._checking:
                return None
            return _member(target, node.attr, label=f"attribute '{node.attr}'")
        if isinstance(node, ast.Subscript):
            target = self.visit(node.value)
            key = self.visit(node.slice)
            if self._checking:
                return None
            return _member(target, key, label=f"key {key!r}")
        if isinstance(node, ast.BinOp):
            op_type = type(node.op)
            if op_type not in _ALLOWED_BIN_OPS:
                raise TemplateError(f"Operator '{op_type.__name__}' is not allowed")
            left = self.visit(node.left)
            right = self.visit(node.right)
            if self._checking:
                return None
            try:
                return _ALLOWED_BIN_OPS[op_type](left, right)
            except (TypeError, ValueError, ArithmeticError) as exc:
                raise TemplateError(f"Operator '{op_type.__name__}' failed: {exc}") from exc
        if isinstance(node, ast.UnaryOp):
            op_type = type(node.op)
            if op_type not in _ALLOWED_UNARY_OPS:
                raise TemplateError(f"Unary operator '{op_type.__name__}' is not allowed")
            operand = self.visit(node.operand)
            if self._checking:
                return None
            try:
                return _ALLOWED_UNARY_OPS[op_type](operand)
            except (TypeError, ArithmeticError) as exc:
                raise TemplateError(f"Unary operator '{op_type.__name__}' failed: {exc}") from exc
        if isinstance(node, ast.BoolOp):
            if self._checking:
                for value in node.values:
                    self.visit(value)
                return None
            result: Any = None
            for value in node.values:
                result = self.visit(value)
                if isinstance(node.op, ast.And) and not result:
                    return result
                if isinstance(node.op, ast.Or) and result:
                    return result
            return result
        if isinstance(node, ast.Compare):
            left = self.visit(node.left)
            for op, comparator in zip(node.ops, node.comparators):
                op_type = type(op)
                if op_type not in _ALLOWED_COMPARISONS:
                    raise TemplateError(f"Comparison operator '{op_type.__name__}' is not allowed")
                right = self.visit(comparator)
                if self._checking:
                    continue
                try:
                    if not _ALLOWED_COMPARISONS[op_type](left, right):
                        return False
                except TypeError as exc:
                    raise TemplateError(f"Comparison '{op_type.__name__}' failed: {exc}") from exc
                left = right
            return None if self._checking else True
        if isinstance(node, ast.IfExp):
            condition = self.visit(node.test)
            if self._checking:
                self.visit(node.body)
                self.visit(node.orelse)
                return None
            return self.visit(node.body if condition else node.orelse)
        if isinstance(node, ast.List):
            return [self.visit(element) for element in node.elts]
        if isinstance(node, ast.Tuple):
            return tuple(self.visit(element) for element in node.elts)
        if isinstance(node, ast.Call):
            return self._call(node)
        raise TemplateError(f"Expression node '{type(node).__name__}' is not allowed")

    def _lookup_name(self, name: str) -> Any:
        if name in _CONSTANT_NAMES:
            return _CONSTANT_NAMES[name]
        if self._checking:
            return None
        context = cast(Mapping[str, Any], self._context)
        if name not in context:
            available = ", ".join(sorted(context)) or "<none>"
            raise TemplateError(f"Name '{name}' is not bound. Available: {available}")
        return context[name]

    def _call(self, node: ast.Call) -> Any:
        if not isinstance(node.func, ast.Name):
            raise TemplateError("Only simple function names are allowed in expressions")
        func_name = node.func.id
        if func_name not in _ALLOWED_CALLS:
            raise TemplateError(f"Function '{func_name}' is not allowed in expressions")
        if node.keywords:
            raise TemplateError(f"Keyword arguments are not allowed for function '{func_name}'")
        spec = _ALLOWED_CALLS[func_name]
        args = [self.visit(arg) for arg in node.args]
        if len(args) < spec.min_args:
            raise TemplateError(
                f"Function '{func_name}' expects at least {spec.min_args} argument{'s' if spec.min_args != 1 else ''}"
            )
        if spec.max_args is not None and len(args) > spec.max_args:
            raise TemplateError(
                f"Function '{func_name}' expects at most {spec.max_args} argument{'s' if spec.max_args != 1 else ''}"
            )
        if self._checking:
            return None
        try:
            return spec.func(*args)
        except (TypeError, ValueError, ArithmeticError) as exc:
            raise TemplateError(f"Function '{func_name}' failed: {exc}") from exc


def _bounded_pow(base: Any, exponent: Any) -> Any:
    if isinstance(exponent, (int, float)) and abs(exponent) > _MAX_EXPONENT:
        raise TemplateError(f"Exponent {exponent} exceeds the limit of {_MAX_EXPONENT}")
    return operator.pow(base, exponent)


def _bounded_mul(left: Any, right: Any) -> Any:
    for sequence, count in ((left, right), (right, left)):
        if isinstance(sequence, (str, list, tuple)) and isinstance(count, int):
            if len(sequence) * count > _MAX_REPEAT_LENGTH:
                raise TemplateError(f"Repeated value would exceed {_MAX_REPEAT_LENGTH} items")
    return operator.mul(left, right)


def _member(target: Any, key: Any, *, label: str) -> Any:
    if isinstance(target, Mapping):
        try:
            found = key in target
        except TypeError as exc:
            raise TemplateError(f"Invalid {label}: {exc}") from exc
        if found:
            return target[key]
        raise TemplateError(f"Unknown {label}")
    if isinstance(target, Sequence) and not isinstance(target, (str, bytes, bytearray)):
        if isinstance(key, int) and not isinstance(key, bool):
            try:
                return target[key]
            except IndexError as exc:
                raise TemplateError(f"Index {key} out of range") from exc
    raise TemplateError(f"Cannot look up {label} on value of type '{type(target).__name__}'")


__all__ = [
    "TemplateError",
    "TemplateRenderer",
    "extract_expressions",
    "render_value",
    "validate_expression_syntax",
]
