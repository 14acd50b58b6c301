"""Restricted boolean filter expressions evaluated against media items.

Rules are written in a small Python-flavoured expression language, e.g.::

    Year < 2000
    "Animation" in Genres or Runtime < 60
    Network == "Netflix" and Date > Now()

Only the constructs whitelisted below are accepted; anything else (attribute
access outside dates, subscripts, lambdas, imports, unknown names) fails at
compile time. ``&&``, ``||`` and ``!`` are accepted as aliases of ``and``,
``or`` and ``not``.
"""

from __future__ import annotations

import ast
import operator
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Sequence

from .errors import ExpressionError
from .models import MediaItem

NUMBER = "number"
STRING = "string"
BOOL = "bool"
DATETIME = "datetime"
LIST = "list"

SCHEMA: Mapping[str, str] = MappingProxyType(
    {
        "Provider": STRING,
        "TvdbId": STRING,
        "TmdbId": STRING,
        "ImdbId": STRING,
        "TraktId": STRING,
        "Slug": STRING,
        "Title": STRING,
        "Country": STRING,
        "Countries": LIST,
        "Network": STRING,
        "Date": DATETIME,
        "Year": NUMBER,
        "Runtime": NUMBER,
        "Status": STRING,
        "Genres": LIST,
        "Languages": LIST,
        "Summary": STRING,
        "Character": STRING,
    }
)

LITERAL_NAMES: Mapping[str, bool] = MappingProxyType({"true": True, "false": False})

DATE_ATTRIBUTES: Mapping[str, str] = MappingProxyType(
    {
        "Year": "year",
        "Month": "month",
        "Day": "day",
        "year": "year",
        "month": "month",
        "day": "day",
    }
)

# name -> (argument types, result type)
FUNCTIONS: Mapping[str, tuple[tuple[frozenset[str], ...], str]] = MappingProxyType(
    {
        "Now": ((), DATETIME),
        "len": ((frozenset({LIST, STRING}),), NUMBER),
        "lower": ((frozenset({STRING}),), STRING),
        "upper": ((frozenset({STRING}),), STRING),
    }
)

_BINARY_OPERATORS: Mapping[type, Callable[[Any, Any], Any]] = MappingProxyType(
    {
        ast.Add: operator.add,
        ast.Sub: operator.sub,
        ast.Mult: operator.mul,
        ast.Div: operator.truediv,
        ast.Mod: operator.mod,
    }
)

_COMPARISONS: Mapping[type, Callable[[Any, Any], bool]] = MappingProxyType(
    {
        ast.Eq: operator.eq,
        ast.NotEq: operator.ne,
        ast.Lt: operator.lt,
        ast.LtE: operator.le,
        ast.Gt: operator.gt,
        ast.GtE: operator.ge,
        ast.In: lambda left, right: left in right,
        ast.NotIn: lambda left, right: left not in right,
    }
)

_ORDERINGS = (ast.Lt, ast.LtE, ast.Gt, ast.GtE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _normalise_operators(source: str) -> str:
    """Rewrite ``&&``/``||``/``!`` outside string literals to Python keywords."""

    result: list[str] = []
    quote: str | None = None
    index = 0
    while index < len(source):
        char = source[index]
        pair = source[index : index + 2]
        if quote is not None:
            result.append(char)
            if char == "\\" and index + 1 < len(source):
                result.append(source[index + 1])
                index += 2
                continue
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
            result.append(char)
        elif pair == "&&":
            result.append(" and ")
            index += 2
            continue
        elif pair == "||":
            result.append(" or ")
            index += 2
            continue
        elif char == "!" and pair != "!=":
            result.append(" not ")
        else:
            result.append(char)
        index += 1
    return "".join(result).strip()


def item_environment(item: MediaItem) -> Mapping[str, Any]:
    """Return the read-only attribute view rules are evaluated against."""

    return MappingProxyType(
        {
            "Provider": item.provider,
            "TvdbId": item.tvdb_id,
            "TmdbId": item.tmdb_id,
            "ImdbId": item.imdb_id,
            "TraktId": item.trakt_id,
            "Slug": item.slug,
            "Title": item.title,
            "Country": item.countries[0] if item.countries else "",
            "Countries": item.countries,
            "Network": item.network,
            "Date": datetime.combine(item.release_date, time.min),
            "Year": item.year,
            "Runtime": item.runtime,
            "Status": item.status,
            "Genres": item.genres,
            "Languages": item.languages,
            "Summary": item.summary,
            "Character": item.character or "",
        }
    )


class _TypeChecker:
    """Walks a parsed rule, rejecting unsupported syntax and inferring types."""

    def __init__(self, source: str):
        self._source = source

    def fail(self, message: str) -> ExpressionError:
        return ExpressionError(f"{message} in {self._source!r}", expression=self._source)

    def check(self, node: ast.AST) -> str:
        method = getattr(self, f"_check_{type(node).__name__}", None)
        if method is None:
            raise self.fail(f"Unsupported syntax {type(node).__name__}")
        return method(node)

    def _check_Expression(self, node: ast.Expression) -> str:
        return self.check(node.body)

    def _check_BoolOp(self, node: ast.BoolOp) -> str:
        for value in node.values:
            if self.check(value) != BOOL:
                raise self.fail("Operands of 'and'/'or' must be boolean")
        return BOOL

    def _check_UnaryOp(self, node: ast.UnaryOp) -> str:
        operand = self.check(node.operand)
        if isinstance(node.op, ast.Not):
            if operand != BOOL:
                raise self.fail("Operand of 'not' must be boolean")
            return BOOL
        if isinstance(node.op, (ast.USub, ast.UAdd)) and operand == NUMBER:
            return NUMBER
        raise self.fail("Unsupported unary operator")

    def _check_BinOp(self, node: ast.BinOp) -> str:
        if type(node.op) not in _BINARY_OPERATORS:
            raise self.fail(f"Unsupported operator {type(node.op).__name__}")
        left = self.check(node.left)
        right = self.check(node.right)
        if left == right == NUMBER:
            return NUMBER
        if isinstance(node.op, ast.Add) and left == right == STRING:
            return STRING
        raise self.fail(f"Cannot apply {type(node.op).__name__} to {left} and {right}")

    def _check_Compare(self, node: ast.Compare) -> str:
        left = self.check(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            if type(op) not in _COMPARISONS:
                raise self.fail(f"Unsupported comparison {type(op).__name__}")
            right = self.check(comparator)
            if isinstance(op, _ORDERINGS) and not (left == right and left in (NUMBER, STRING, DATETIME)):
                raise self.fail(f"Cannot order {left} against {right}")
            if isinstance(op, (ast.In, ast.NotIn)):
                if right not in (LIST, STRING):
                    raise self.fail(f"Right side of 'in' must be a list or string, not {right}")
                if right == STRING and left != STRING:
                    raise self.fail("Only strings can be searched for inside a string")
            left = right
        return BOOL

    def _check_Name(self, node: ast.Name) -> str:
        if node.id in SCHEMA:
            return SCHEMA[node.id]
        if node.id in LITERAL_NAMES:
            return BOOL
        raise self.fail(f"Unknown name {node.id!r}")

    def _check_Constant(self, node: ast.Constant) -> str:
        value = node.value
        if isinstance(value, bool):
            return BOOL
        if isinstance(value, (int, float)):
            return NUMBER
        if isinstance(value, str):
            return STRING
        raise self.fail(f"Unsupported literal {value!r}")

    def _check_List(self, node: ast.List) -> str:
        for element in node.elts:
            self.check(element)
        return LIST

    _check_Tuple = _check_List

    def _check_Call(self, node: ast.Call) -> str:
        if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
            raise self.fail("Only Now(), len(), lower() and upper() may be called")
        if node.keywords:
            raise self.fail("Keyword arguments are not supported")
        argument_types, result = FUNCTIONS[node.func.id]
        if len(node.args) != len(argument_types):
            raise self.fail(
                f"{node.func.id}() takes {len(argument_types)} argument(s), got {len(node.args)}"
            )
        for argument, allowed in zip(node.args, argument_types):
            observed = self.check(argument)
            if observed not in allowed:
                raise self.fail(f"{node.func.id}() does not accept a {observed}")
        return result

    def _check_Attribute(self, node: ast.Attribute) -> str:
        if self.check(node.value) != DATETIME or node.attr not in DATE_ATTRIBUTES:
            raise self.fail(f"Unsupported attribute {node.attr!r}")
        return NUMBER


@dataclass(frozen=True, slots=True)
class CompiledRule:
    """One validated rule ready for evaluation."""

    source: str
    tree: ast.Expression

    def evaluate(self, environment: Mapping[str, Any], now: Callable[[], datetime]) -> bool:
        try:
            result = _evaluate(self.tree.body, environment, now)
        except (TypeError, ValueError, ArithmeticError, AttributeError) as exc:
            raise ExpressionError(
                f"Failed evaluating {self.source!r}: {exc}", expression=self.source
            ) from exc
        if not isinstance(result, bool):
            raise ExpressionError(
                f"Expression {self.source!r} produced {type(result).__name__}, not bool",
                expression=self.source,
            )
        return result


def _evaluate(node: ast.AST, env: Mapping[str, Any], now: Callable[[], datetime]) -> Any:
    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            return all(_evaluate(value, env, now) for value in node.values)
        return any(_evaluate(value, env, now) for value in node.values)
    if isinstance(node, ast.UnaryOp):
        operand = _evaluate(node.operand, env, now)
        if isinstance(node.op, ast.Not):
            return not operand
        return -operand if isinstance(node.op, ast.USub) else +operand
    if isinstance(node, ast.BinOp):
        return _BINARY_OPERATORS[type(node.op)](
            _evaluate(node.left, env, now), _evaluate(node.right, env, now)
        )
    if isinstance(node, ast.Compare):
        left = _evaluate(node.left, env, now)
        for op, comparator in zip(node.ops, node.comparators):
            right = _evaluate(comparator, env, now)
            if not _COMPARISONS[type(op)](left, right):
                return False
            left = right
        return True
    if isinstance(node, ast.Name):
        if node.id in LITERAL_NAMES:
            return LITERAL_NAMES[node.id]
        return env[node.id]
    if isinstance(node, ast.Constant):
        return node.value
    if isinstance(node, (ast.List, ast.Tuple)):
        return tuple(_evaluate(element, env, now) for element in node.elts)
    if isinstance(node, ast.Call):
        name = node.func.id  # type: ignore[attr-defined]
        if name == "Now":
            return now()
        argument = _evaluate(node.args[0], env, now)
        if name == "len":
            return len(argument)
        return argument.lower() if name == "lower" else argument.upper()
    if isinstance(node, ast.Attribute):
        return getattr(_evaluate(node.value, env, now), DATE_ATTRIBUTES[node.attr])
    raise TypeError(f"unsupported node {type(node).__name__}")


def compile_rule(expression: str) -> CompiledRule:
    """Parse and type-check a single rule, raising :class:`ExpressionError`."""

    source = (expression or "").strip()
    if not source:
        raise ExpressionError("Empty filter expression", expression=expression)
    try:
        tree = ast.parse(_normalise_operators(source), mode="eval")
    except SyntaxError as exc:
        raise ExpressionError(
            f"Invalid syntax in {source!r}: {exc.msg}", expression=source
        ) from exc

    result_type = _TypeChecker(source).check(tree)
    if result_type != BOOL:
        raise ExpressionError(
            f"Expression {source!r} must evaluate to a boolean, not {result_type}",
            expression=source,
        )
    return CompiledRule(source=source, tree=tree)


@dataclass(frozen=True)
class RuleSet:
    """Ordered compiled rules; ``matches`` is true on the first rule that holds."""

    rules: tuple[CompiledRule, ...] = ()
    clock: Callable[[], datetime] = field(default=_utcnow, compare=False)

    def __len__(self) -> int:
        return len(self.rules)

    @property
    def expressions(self) -> list[str]:
        return [rule.source for rule in self.rules]

    def matches(self, item: MediaItem) -> bool:
        """Return True if any rule holds for ``item``.

        Raises :class:`ExpressionError` when a rule cannot be evaluated; callers
        must treat that as a match so a broken rule never lets items through.
        """

        if not self.rules:
            return False
        environment = item_environment(item)
        for rule in self.rules:
            if rule.evaluate(environment, self.clock):
                return True
        return False


def compile_rules(
    expressions: Iterable[str],
    *,
    clock: Callable[[], datetime] = _utcnow,
) -> RuleSet:
    """Compile ``expressions`` in order; the first invalid one aborts compilation."""

    compiled: Sequence[CompiledRule] = [compile_rule(expression) for expression in expressions]
    return RuleSet(rules=tuple(compiled), clock=clock)
