"""
Sandboxed expression evaluation for apiflow.

Flows embed expressions in two ways:

- Templates: any string inside a node's configuration may contain
  `{{ expr }}` spans. Containers are walked recursively and each span is
  evaluated on its own. A string that is exactly one span yields the
  native value; otherwise values are interpolated into the text.
- Scalars: a bare expression evaluated straight to a value (condition
  checks, transform scripts).

Expressions run on simpleeval, never on Python's eval. The only names
in scope are:

    vars / $        accumulated variables (snapshot)
    req / request   the original request (snapshot)
    result          the most recent node result
    true/false/null/undefined

plus the pure helpers in SAFE_FUNCTIONS. Snapshots are deep copies, so
an expression cannot change execution state. Each evaluation has its
own time box, checked on every AST node visited and never extending past
the execution deadline; a box cut short by the deadline raises
DeadlineExceeded rather than ExpressionTimeout.

Flows authored in the visual editor use JavaScript-style operators;
`===`, `!==`, `&&`, `||` and `!` are rewritten to their Python
equivalents outside string literals.
"""

from __future__ import annotations

import copy
import json
import logging
import math
import re
import time
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable

from simpleeval import EvalWithCompoundTypes

from .errors import DeadlineExceeded, EvaluationError, ExpressionTimeout

if TYPE_CHECKING:
    from .context import ExecutionContext
    from .governor import Deadline

logger = logging.getLogger(__name__)

_SPAN_RE = re.compile(r"\{\{(.+?)\}\}", re.DOTALL)

# String literals are matched first so operators inside them survive
_DIALECT_RE = re.compile(
    r"""("(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')|(===|!==|&&|\|\||!(?!=)|\$)"""
)
_DIALECT_REPLACEMENTS = {
    "===": "==",
    "!==": "!=",
    "&&": " and ",
    "||": " or ",
    "!": " not ",
    "$": "vars",
}


# =============================================================================
# Sandbox built-ins
# =============================================================================


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def _json_dumps(value: Any) -> str:
    return json.dumps(value, default=str)


def _get_path(value: Any, path: str, default: Any = None) -> Any:
    """Dotted lookup that tolerates missing keys: get(vars, "user.name")."""
    current = value
    for part in str(path).split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
    return current


SAFE_FUNCTIONS: dict[str, Callable[..., Any]] = {
    # String / number primitives
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "len": len,
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "sum": sum,
    "sorted": sorted,
    "any": any,
    "all": all,
    "list": list,
    "dict": dict,
    "lower": lambda value: str(value).lower(),
    "upper": lambda value: str(value).upper(),
    "trim": lambda value: str(value).strip(),
    # Math
    "floor": math.floor,
    "ceil": math.ceil,
    "sqrt": math.sqrt,
    # Structured data
    "json_dumps": _json_dumps,
    "json_loads": json.loads,
    "keys": lambda mapping: list(mapping),
    "get": _get_path,
    # Date / time
    "now": _now,
    "today": lambda: date.today().isoformat(),
    "timestamp": _timestamp_ms,
    "parse_datetime": datetime.fromisoformat,
    "timedelta": timedelta,
}


class _TimeBoxedEval(EvalWithCompoundTypes):
    """simpleeval interpreter that stops once its time box is spent."""

    def __init__(self, *, expires_at: float, **kwargs: Any):
        super().__init__(**kwargs)
        self._expires_at = expires_at

    def _eval(self, node: Any) -> Any:
        if time.monotonic() > self._expires_at:
            raise TimeoutError("expression time box exceeded")
        return super()._eval(node)

    def _eval_attribute(self, node: Any) -> Any:
        # Keys win over dict methods: `$.items` is the variable, not dict.items
        if not node.attr.startswith("_"):
            value = self._eval(node.value)
            if isinstance(value, dict) and node.attr in value:
                return value[node.attr]
        return super()._eval_attribute(node)


def normalize_dialect(expression: str) -> str:
    """Rewrite JavaScript-style operators and `$` into the Python dialect."""

    def replace(match: re.Match[str]) -> str:
        if match.group(1):
            return match.group(1)
        return _DIALECT_REPLACEMENTS[match.group(2)]

    return _DIALECT_RE.sub(replace, expression).strip()


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if value is None or isinstance(value, (bool, int, float, list, dict)):
        return json.dumps(value, default=str)
    return str(value)


def _whole_span(value: str) -> str | None:
    """Inner expression when the string is exactly one `{{ }}` span."""
    matches = list(_SPAN_RE.finditer(value))
    if len(matches) == 1 and matches[0].group(0) == value.strip():
        return matches[0].group(1)
    return None


# =============================================================================
# Evaluator
# =============================================================================


class ExpressionEvaluator:
    """
    Evaluates templates and scalar expressions against one execution.

    Args:
        timeout_ms: Default time box per expression
        functions: Override the sandbox helper set (defaults to SAFE_FUNCTIONS)
    """

    def __init__(
        self,
        timeout_ms: int = 1000,
        *,
        functions: dict[str, Callable[..., Any]] | None = None,
    ):
        self.timeout_ms = timeout_ms
        self._functions = dict(SAFE_FUNCTIONS if functions is None else functions)

    # Public API ---------------------------------------------------------------

    def evaluate(self, template: Any, ctx: ExecutionContext) -> Any:
        """
        Structural evaluation of a configuration value.

        Failed spans are recorded in ctx.errors and substituted with None.
        Only deadline expiry propagates (DeadlineExceeded).
        """
        if not self._has_spans(template):
            return copy.deepcopy(template)
        return self._render(template, self._names(ctx), ctx)

    def evaluate_scalar(
        self,
        expression: Any,
        ctx: ExecutionContext,
        *,
        timeout_ms: int | None = None,
    ) -> Any:
        """
        Evaluate a bare expression to a native value.

        Raises:
            EvaluationError: on any failure (also recorded in ctx.errors)
            DeadlineExceeded: when the execution deadline expires mid-evaluation
        """
        if not isinstance(expression, str):
            return expression
        inner = _whole_span(expression)
        source = inner if inner is not None else expression
        try:
            return self._run(source, self._names(ctx), timeout_ms or self.timeout_ms, ctx.deadline)
        except EvaluationError as exc:
            ctx.record_error(str(exc))
            raise

    # Internals ----------------------------------------------------------------

    def _names(self, ctx: ExecutionContext) -> dict[str, Any]:
        variables = copy.deepcopy(ctx.variables)
        request = copy.deepcopy(ctx.request)
        return {
            "vars": variables,
            "req": request,
            "request": request,
            "result": copy.deepcopy(ctx.last_result),
            "true": True,
            "false": False,
            "null": None,
            "undefined": None,
        }

    def _has_spans(self, value: Any) -> bool:
        if isinstance(value, str):
            return "{{" in value
        if isinstance(value, dict):
            return any(self._has_spans(item) for item in value.values())
        if isinstance(value, (list, tuple)):
            return any(self._has_spans(item) for item in value)
        return False

    def _render(self, value: Any, names: dict[str, Any], ctx: ExecutionContext) -> Any:
        if isinstance(value, str):
            return self._render_string(value, names, ctx)
        if isinstance(value, dict):
            return {key: self._render(item, names, ctx) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._render(item, names, ctx) for item in value]
        return copy.deepcopy(value)

    def _render_string(self, value: str, names: dict[str, Any], ctx: ExecutionContext) -> Any:
        inner = _whole_span(value)
        if inner is not None:
            return self._safe_run(inner, names, ctx)

        def substitute(match: re.Match[str]) -> str:
            return _stringify(self._safe_run(match.group(1), names, ctx))

        return _SPAN_RE.sub(substitute, value)

    def _safe_run(self, expression: str, names: dict[str, Any], ctx: ExecutionContext) -> Any:
        try:
            return self._run(expression, names, self.timeout_ms, ctx.deadline)
        except EvaluationError as exc:
            ctx.record_error(str(exc))
            logger.debug(f"Template expression substituted with null: {exc}")
            return None

    def _run(
        self,
        expression: str,
        names: dict[str, Any],
        timeout_ms: int,
        deadline: Deadline | None = None,
    ) -> Any:
        source = normalize_dialect(expression)
        now = time.monotonic()
        expires_at = now + timeout_ms / 1000
        # The execution deadline wins when it comes first
        cut_by_deadline = deadline is not None and now + deadline.remaining_s < expires_at
        if cut_by_deadline:
            expires_at = now + deadline.remaining_s
        interpreter = _TimeBoxedEval(
            expires_at=expires_at,
            names=names,
            functions=self._functions,
        )
        try:
            return interpreter.eval(source)
        except TimeoutError:
            if cut_by_deadline:
                raise DeadlineExceeded(deadline.budget_ms) from None
            raise ExpressionTimeout(expression.strip(), f"timed out after {timeout_ms} ms") from None
        except Exception as exc:
            raise EvaluationError(expression.strip(), f"{type(exc).__name__}: {exc}") from exc
