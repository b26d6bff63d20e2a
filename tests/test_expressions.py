"""
Tests for the sandboxed expression evaluator.
"""

import pytest

from apiflow.engine import DeadlineExceeded, EvaluationError, ExpressionEvaluator, ExpressionTimeout
from apiflow.engine.expressions import normalize_dialect


@pytest.fixture
def evaluator():
    return ExpressionEvaluator(timeout_ms=1000)


@pytest.fixture
def ctx(make_context):
    return make_context(
        variables={
            "count": 3,
            "flag": False,
            "user": {"name": "Ada", "tags": ["admin", "ops"]},
            "numbers": [1, 2, 3],
        },
        request={
            "method": "POST",
            "path": "/orders",
            "body": {"qty": 2},
            "query": {"page": "1"},
        },
    )


# =============================================================================
# Structural Mode
# =============================================================================


class TestStructuralEvaluation:
    """Tests for {{ }} template substitution."""

    def test_string_without_spans_is_unchanged(self, evaluator, ctx):
        assert evaluator.evaluate("plain text", ctx) == "plain text"

    def test_substitution_is_idempotent(self, evaluator, ctx):
        once = evaluator.evaluate("Hello {{ vars.user.name }}", ctx)
        twice = evaluator.evaluate(once, ctx)

        assert once == "Hello Ada"
        assert twice == once

    def test_whole_span_returns_native_value(self, evaluator, ctx):
        assert evaluator.evaluate("{{ vars.count }}", ctx) == 3
        assert evaluator.evaluate("{{ vars.user.tags }}", ctx) == ["admin", "ops"]

    def test_whole_span_tolerates_surrounding_whitespace(self, evaluator, ctx):
        assert evaluator.evaluate("  {{ vars.count + 1 }} ", ctx) == 4

    def test_interpolates_strings_verbatim(self, evaluator, ctx):
        assert evaluator.evaluate("User {{ vars.user.name }}!", ctx) == "User Ada!"

    def test_interpolates_other_values_as_json(self, evaluator, ctx):
        result = evaluator.evaluate("n={{ vars.count }} ok={{ vars.flag }} tags={{ vars.user.tags }}", ctx)
        assert result == 'n=3 ok=false tags=["admin", "ops"]'

    def test_each_span_evaluated_independently(self, evaluator, ctx):
        result = evaluator.evaluate("{{ vars.missing }}-{{ vars.count }}", ctx)

        assert result == "null-3"
        assert len(ctx.errors) == 1

    def test_walks_containers_recursively(self, evaluator, ctx):
        template = {
            "qty": "{{ req.body.qty * 2 }}",
            "items": ["{{ vars.count }}", "static", 7],
            "nested": {"name": "{{ vars.user.name }}"},
            "flag": True,
        }

        assert evaluator.evaluate(template, ctx) == {
            "qty": 4,
            "items": [3, "static", 7],
            "nested": {"name": "Ada"},
            "flag": True,
        }

    def test_keys_are_not_evaluated(self, evaluator, ctx):
        result = evaluator.evaluate({"{{ vars.count }}": "{{ vars.count }}"}, ctx)
        assert result == {"{{ vars.count }}": 3}

    def test_non_string_leaves_pass_through(self, evaluator, ctx):
        assert evaluator.evaluate(42, ctx) == 42
        assert evaluator.evaluate(None, ctx) is None

    def test_request_aliases(self, evaluator, ctx):
        assert evaluator.evaluate("{{ req.method }}", ctx) == "POST"
        assert evaluator.evaluate("{{ request.query.page }}", ctx) == "1"

    def test_dollar_alias_for_variables(self, evaluator, ctx):
        assert evaluator.evaluate("{{ $.count }}", ctx) == 3
        assert evaluator.evaluate("{{ $['user']['name'] }}", ctx) == "Ada"

    def test_result_is_last_bound_value(self, evaluator, ctx):
        assert evaluator.evaluate("{{ result }}", ctx) is None

        ctx.bind_result("find", [{"_id": "1"}])
        assert evaluator.evaluate("{{ result[0]['_id'] }}", ctx) == "1"

    def test_javascript_literals(self, evaluator, ctx):
        assert evaluator.evaluate("{{ [true, false, null, undefined] }}", ctx) == [True, False, None, None]

    def test_failure_records_error_and_substitutes_none(self, evaluator, ctx):
        assert evaluator.evaluate("{{ vars.user.missing }}", ctx) is None
        assert ctx.errors[0].startswith("Expression error: vars.user.missing")

    def test_failure_inside_text_renders_null(self, evaluator, ctx):
        assert evaluator.evaluate("value={{ 1 / 0 }}", ctx) == "value=null"
        assert "ZeroDivisionError" in ctx.errors[0]


# =============================================================================
# Scalar Mode
# =============================================================================


class TestScalarEvaluation:
    """Tests for bare expressions (conditions, transforms)."""

    def test_bare_expression(self, evaluator, ctx):
        assert evaluator.evaluate_scalar("vars.count > 2", ctx) is True

    def test_wrapped_expression(self, evaluator, ctx):
        assert evaluator.evaluate_scalar("{{ vars.count }}", ctx) == 3

    def test_non_string_passes_through(self, evaluator, ctx):
        assert evaluator.evaluate_scalar(True, ctx) is True
        assert evaluator.evaluate_scalar(0, ctx) == 0

    def test_failure_raises_and_records(self, evaluator, ctx):
        with pytest.raises(EvaluationError) as exc_info:
            evaluator.evaluate_scalar("vars.nope > 1", ctx)

        assert exc_info.value.expression == "vars.nope > 1"
        assert ctx.errors == [str(exc_info.value)]

    def test_syntax_error_is_evaluation_error(self, evaluator, ctx):
        with pytest.raises(EvaluationError):
            evaluator.evaluate_scalar("vars.count >", ctx)

    def test_custom_timeout(self, evaluator, make_context):
        ctx = make_context(variables={"big": list(range(90))})

        with pytest.raises(ExpressionTimeout):
            evaluator.evaluate_scalar(
                "[x * y for x in vars.big for y in vars.big]",
                ctx,
                timeout_ms=1,
            )


# =============================================================================
# JavaScript Dialect
# =============================================================================


class TestDialect:
    """Tests for editor-style operators."""

    def test_strict_equality(self, evaluator, ctx):
        assert evaluator.evaluate_scalar("vars.count === 3", ctx) is True
        assert evaluator.evaluate_scalar("vars.count !== 3", ctx) is False

    def test_logical_operators(self, evaluator, ctx):
        assert evaluator.evaluate_scalar("vars.count === 3 && !vars.flag", ctx) is True
        assert evaluator.evaluate_scalar("vars.flag || vars.count < 0", ctx) is False

    def test_negation_of_empty_result(self, evaluator, ctx):
        ctx.bind_result("find", [])
        assert evaluator.evaluate_scalar("!result", ctx) is True

    def test_python_not_equal_is_preserved(self, evaluator, ctx):
        assert evaluator.evaluate_scalar("vars.count != 4", ctx) is True

    def test_operators_inside_strings_untouched(self, evaluator, ctx):
        assert evaluator.evaluate("{{ 'a && b || !c' }}", ctx) == "a && b || !c"
        assert evaluator.evaluate('{{ "$5" }}', ctx) == "$5"

    def test_normalize_dialect(self):
        assert normalize_dialect("!a && b === c").split() == ["not", "a", "and", "b", "==", "c"]
        assert normalize_dialect("$.x !== 'y'") == "vars.x != 'y'"


# =============================================================================
# Sandbox
# =============================================================================


class TestSandbox:
    """Tests for the restricted evaluation scope."""

    @pytest.mark.parametrize(
        "expression",
        [
            "__import__('os').getcwd()",
            "open('/etc/passwd').read()",
            "vars.__class__",
            "vars.user.__class__.__mro__",
            "eval('1 + 1')",
            "globals()",
        ],
    )
    def test_host_access_is_rejected(self, evaluator, ctx, expression):
        with pytest.raises(EvaluationError):
            evaluator.evaluate_scalar(expression, ctx)

    def test_expressions_cannot_mutate_variables(self, evaluator, ctx):
        evaluator.evaluate("{{ vars.numbers.append(4) }}", ctx)
        evaluator.evaluate("{{ req.body.update({'qty': 99}) }}", ctx)

        assert ctx.variables["numbers"] == [1, 2, 3]
        assert ctx.request["body"] == {"qty": 2}

    def test_safe_functions(self, evaluator, ctx):
        assert evaluator.evaluate("{{ len(vars.numbers) }}", ctx) == 3
        assert evaluator.evaluate("{{ upper(vars.user.name) }}", ctx) == "ADA"
        assert evaluator.evaluate("{{ get(vars, 'user.tags.1') }}", ctx) == "ops"
        assert evaluator.evaluate("{{ get(vars, 'user.age', 30) }}", ctx) == 30
        assert evaluator.evaluate("{{ json_loads('[1, 2]') }}", ctx) == [1, 2]
        assert evaluator.evaluate("{{ floor(7 / 2) }}", ctx) == 3
        assert evaluator.evaluate("{{ sum(vars.numbers) }}", ctx) == 6

    def test_comprehensions(self, evaluator, ctx):
        assert evaluator.evaluate("{{ [n * 2 for n in vars.numbers if n > 1] }}", ctx) == [4, 6]

    def test_time_box_applies_per_evaluation(self, make_context):
        evaluator = ExpressionEvaluator(timeout_ms=1)
        ctx = make_context(variables={"big": list(range(90))})

        assert evaluator.evaluate("{{ [x * y for x in vars.big for y in vars.big] }}", ctx) is None
        assert "timed out" in ctx.errors[0]

    def test_deadline_caps_time_box(self, evaluator, make_context):
        ctx = make_context(budget_ms=50)

        with pytest.raises(DeadlineExceeded):
            evaluator.evaluate_scalar("[sorted(list('ab' * 40000)) for x in 'a' * 9000]", ctx)

        assert ctx.errors == []

    def test_expired_deadline_is_not_substituted(self, evaluator, make_context):
        ctx = make_context(variables={"count": 3}, budget_ms=1)
        ctx.deadline.started -= 1

        with pytest.raises(DeadlineExceeded):
            evaluator.evaluate("{{ vars.count + 1 }}", ctx)

    def test_own_time_box_still_applies_within_deadline(self, make_context):
        evaluator = ExpressionEvaluator(timeout_ms=1)
        ctx = make_context(variables={"big": list(range(90))}, budget_ms=60000)

        with pytest.raises(ExpressionTimeout):
            evaluator.evaluate_scalar("[x * y for x in vars.big for y in vars.big]", ctx)

    def test_keys_shadow_dict_methods(self, evaluator, make_context):
        ctx = make_context(variables={"items": [1, 2], "count": 0})

        assert evaluator.evaluate("{{ $.items }}", ctx) == [1, 2]
        assert evaluator.evaluate_scalar("vars.count", ctx) == 0
