"""
ExpressionEvaluator Unit Tests

Tests sandboxing, caching, template substitution and value semantics
"""

import math

import pytest

from vschema.exceptions.errors import (
    EvaluationError,
    ExpressionSyntaxError,
    SecurityViolation,
)
from vschema.expression.evaluator import (
    EvaluationContext,
    ExpressionEvaluator,
    LRUCache,
    is_template_expression,
    parse_template,
)


@pytest.fixture
def evaluator():
    return ExpressionEvaluator()


class TestTemplateHelpers:
    """Test template detection and extraction"""

    def test_is_template_expression(self):
        """Test span detection"""
        assert is_template_expression("{{ a }}")
        assert is_template_expression("Hello {{name}}!")
        assert not is_template_expression("plain text")
        assert not is_template_expression(42)

    def test_parse_template(self):
        """Test ordered, trimmed sources"""
        assert parse_template("{{ a }} and {{b + 1 }}") == ["a", "b + 1"]
        assert parse_template("none") == []


class TestSecurity:
    """Test the deny-list runs before compilation"""

    @pytest.mark.parametrize(
        "expression",
        [
            "window.location",
            "eval('1')",
            "a.__proto__",
            "a['constructor']",
            "this.count",
            "globalThis",
            "setTimeout(x, 1)",
            "a.__class__",
        ],
    )
    def test_denied_expressions_never_compile(self, evaluator, expression):
        """Test violation returned without compiling"""
        before = evaluator.get_stats()["compilations"]
        result = evaluator.evaluate(expression, {"a": {}, "x": 1})
        assert not result.success
        assert isinstance(result.error, SecurityViolation)
        assert evaluator.get_stats()["compilations"] == before

    def test_word_boundary_matching(self, evaluator):
        """Test identifiers containing denied words are allowed"""
        result = evaluator.evaluate("windowSize + fetchCount", {"windowSize": 2, "fetchCount": 3})
        assert result.success
        assert result.value == 5

    def test_violation_names_identifier(self, evaluator):
        """Test error details"""
        result = evaluator.evaluate("window", {})
        assert result.error.details["identifier"] == "window"

    def test_denied_state_keys_not_exposed(self, evaluator):
        """Test denied keys dropped from the record"""
        record = evaluator.build_record(EvaluationContext(state={"window": 1, "ok": 2}))
        assert "window" not in record
        assert record["ok"] == 2

    def test_template_security_is_hard_failure(self, evaluator):
        """Test templates re-raise violations"""
        with pytest.raises(SecurityViolation):
            evaluator.evaluate_template("Hi {{ window }}", {})

    def test_validate_reports_security_first(self, evaluator):
        """Test validate with a denied identifier"""
        result = evaluator.validate("eval(1 +")
        assert not result.valid
        assert "Security violation" in result.errors[0]


class TestEvaluate:
    """Test single expression evaluation"""

    @pytest.mark.parametrize("a,b", [(0, 0), (1, 2), (-5, 3), (123456, 654321)])
    def test_integer_addition(self, evaluator, a, b):
        """Test a + b over integers"""
        result = evaluator.evaluate("a+b", {"a": a, "b": b})
        assert result.success
        assert result.value == a + b

    def test_blank_expression(self, evaluator):
        """Test empty input evaluates to None"""
        result = evaluator.evaluate("   ", {})
        assert result.success
        assert result.value is None

    def test_undefined_identifier(self, evaluator):
        """Test unknown names fail with a message"""
        result = evaluator.evaluate("missing + 1", {})
        assert not result.success
        assert isinstance(result.error, EvaluationError)
        assert "missing is not defined" in str(result.error)

    def test_syntax_error_result(self, evaluator):
        """Test malformed expression"""
        result = evaluator.evaluate("a +", {"a": 1})
        assert not result.success
        assert isinstance(result.error, ExpressionSyntaxError)

    def test_idempotent(self, evaluator):
        """Test pure expression evaluated twice"""
        state = {"items": [1, 2, 3], "n": 4}
        first = evaluator.evaluate("items.length * n", state)
        second = evaluator.evaluate("items.length * n", state)
        assert first.value == second.value == 12

    def test_member_and_index_access(self, evaluator):
        """Test nested reads"""
        state = {"user": {"tags": ["a", "b"]}, "i": 1}
        assert evaluator.evaluate("user.tags[i]", state).value == "b"

    def test_optional_chaining(self, evaluator):
        """Test ?. short-circuits on None"""
        assert evaluator.evaluate("user?.profile?.name", {"user": None}).value is None

    def test_member_of_undefined_fails(self, evaluator):
        """Test reading a property of None"""
        assert not evaluator.evaluate("user.name", {"user": None}).success

    def test_ternary_and_logical(self, evaluator):
        """Test operand-returning logical operators"""
        state = {"a": 0, "b": "x", "c": None}
        assert evaluator.evaluate("a || b", state).value == "x"
        assert evaluator.evaluate("a && b", state).value == 0
        assert evaluator.evaluate("c ?? 'd'", state).value == "d"
        assert evaluator.evaluate("b ? 1 : 2", state).value == 1

    def test_reserved_variables(self, evaluator):
        """Test $event / $item binding"""
        context = EvaluationContext(state={"n": 1}, event={"value": 5}, item={"id": 9}, index=2)
        assert evaluator.evaluate("$event.value + $item.id + $index + n", context).value == 17

    def test_variables_shadow_state(self, evaluator):
        """Test extra bindings win over state keys"""
        context = EvaluationContext(state={"item": 1}, variables={"item": 2})
        assert evaluator.evaluate("item", context).value == 2

    def test_builtins(self, evaluator):
        """Test safe built-ins"""
        state = {"a": 3, "b": 7, "price": 3.14159, "name": "vue"}
        assert evaluator.evaluate("Math.max(a, b)", state).value == 7
        assert evaluator.evaluate("price.toFixed(2)", state).value == "3.14"
        assert evaluator.evaluate("name.toUpperCase()", state).value == "VUE"
        assert evaluator.evaluate("parseInt('42px')", state).value == 42
        assert evaluator.evaluate("JSON.stringify([1, 2])", state).value == "[1,2]"

    def test_python_attributes_unreachable(self, evaluator):
        """Test host methods are not callable from expressions"""
        result = evaluator.evaluate("name.upper()", {"name": "x"})
        assert not result.success


class TestValueSemantics:
    """Test JavaScript-like operators"""

    def test_string_concatenation(self, evaluator):
        """Test + with a string operand"""
        assert evaluator.evaluate("'a' + 1", {}).value == "a1"
        assert evaluator.evaluate("1 + 2 + 'x'", {}).value == "3x"

    def test_division(self, evaluator):
        """Test IEEE-754 division"""
        assert evaluator.evaluate("7 / 2", {}).value == 3.5
        assert evaluator.evaluate("6 / 3", {}).value == 2
        assert evaluator.evaluate("1 / 0", {}).value == math.inf
        assert math.isnan(evaluator.evaluate("0 / 0", {}).value)

    def test_float_addition(self, evaluator):
        """Test double precision"""
        assert evaluator.evaluate("0.1 + 0.2", {}).value == 0.1 + 0.2

    def test_integer_overflow(self, evaluator):
        """Test integer results beyond double range become Infinity"""
        assert evaluator.evaluate("2 ** 1024", {}).value == math.inf
        assert evaluator.evaluate("-(2 ** 1024)", {}).value == -math.inf
        assert evaluator.evaluate("(2 ** 1000) * (2 ** 100)", {}).value == math.inf

    def test_double_rounding(self, evaluator):
        """Test integers past 2**53 lose precision like doubles"""
        assert evaluator.evaluate("2 ** 53 + 1", {}).value == 9007199254740992
        assert evaluator.evaluate("9007199254740993", {}).value == 9007199254740992
        assert evaluator.evaluate("big + 1", {"big": 2**60}).value == float(2**60)

    def test_power_tower_is_bounded(self, evaluator):
        """Test huge exponents finish immediately"""
        result = evaluator.evaluate("9 ** 9 ** 8", {})
        assert result.success
        assert result.value == math.inf

    def test_exponent_formatting(self, evaluator):
        """Test string forms of very large and very small numbers"""
        assert evaluator.evaluate("'' + 10 ** 21", {}).value == "1e+21"
        assert evaluator.evaluate("'' + 10 ** 20", {}).value == "100000000000000000000"
        assert evaluator.evaluate("'' + 1.5e-7", {}).value == "1.5e-7"
        assert evaluator.evaluate("'' + 0.00001", {}).value == "0.00001"

    def test_equality(self, evaluator):
        """Test loose and strict equality"""
        assert evaluator.evaluate("'1' == 1", {}).value is True
        assert evaluator.evaluate("'1' === 1", {}).value is False
        assert evaluator.evaluate("true == 1", {}).value is True
        assert evaluator.evaluate("true === 1", {}).value is False
        assert evaluator.evaluate("null == undefined", {}).value is True

    def test_truthiness(self, evaluator):
        """Test empty containers are truthy"""
        assert evaluator.evaluate("[] ? 1 : 2", {}).value == 1
        assert evaluator.evaluate("'' ? 1 : 2", {}).value == 2
        assert evaluator.evaluate("!0", {}).value is True

    def test_typeof(self, evaluator):
        """Test typeof tolerates undefined names"""
        assert evaluator.evaluate("typeof missing", {}).value == "undefined"
        assert evaluator.evaluate("typeof 'x'", {}).value == "string"


class TestTemplates:
    """Test template evaluation"""

    def test_pure_template_preserves_type(self, evaluator):
        """Test single span returns the raw value"""
        state = {"count": 5, "items": [1, 2]}
        assert evaluator.evaluate_template("{{ count * 2 }}", state) == 10
        assert evaluator.evaluate_template("  {{ items }}  ", state) == [1, 2]
        assert evaluator.evaluate_template("{{ count > 1 }}", state) is True

    def test_mixed_template(self, evaluator):
        """Test substitution with surrounding text"""
        state = {"name": "Ada", "n": 2}
        assert evaluator.evaluate_template("Hi {{ name }}, you have {{ n }} items", state) == (
            "Hi Ada, you have 2 items"
        )

    def test_two_spans_is_mixed(self, evaluator):
        """Test two adjacent spans concatenate as text"""
        assert evaluator.evaluate_template("{{ a }}{{ b }}", {"a": 1, "b": 2}) == "12"

    def test_failed_span_substitutes_empty(self, evaluator):
        """Test read-path resilience"""
        assert evaluator.evaluate_template("[{{ missing }}]", {}) == "[]"
        assert evaluator.evaluate_template("[{{ nothing }}]", {"nothing": None}) == "[]"
        assert evaluator.evaluate_template("{{ missing }}", {}) is None

    def test_canonical_string_forms(self, evaluator):
        """Test string conversion of substituted values"""
        state = {"flag": True, "ratio": 2.0, "list": [1, 2]}
        assert evaluator.evaluate_template("{{flag}}/{{ratio}}/{{list}}", state) == "true/2/1,2"

    def test_non_template_passthrough(self, evaluator):
        """Test values without spans are returned unchanged"""
        assert evaluator.evaluate_template("plain", {}) == "plain"
        assert evaluator.evaluate_template(5, {}) == 5

    def test_evaluate_deep(self, evaluator):
        """Test nested structures"""
        value = {"id": "{{ id }}", "tags": ["{{ tag }}", "x"], "n": 1}
        assert evaluator.evaluate_deep(value, {"id": 7, "tag": "t"}) == {
            "id": 7,
            "tags": ["t", "x"],
            "n": 1,
        }

    def test_evaluate_with_default(self, evaluator):
        """Test fallback on failure"""
        assert evaluator.evaluate_with_default("missing", {}, "d") == "d"
        assert evaluator.evaluate_with_default("a", {"a": 1}, "d") == 1


class TestCache:
    """Test the compiled-expression cache"""

    def test_cache_hit_same_params(self, evaluator):
        """Test repeated evaluation compiles once"""
        evaluator.evaluate("a+b", {"a": 1, "b": 2})
        evaluator.evaluate("a+b", {"a": 3, "b": 4})
        stats = evaluator.get_stats()
        assert stats["compilations"] == 1
        assert stats["cache_hits"] == 1

    def test_cached_reference_identity(self, evaluator):
        """Test the same compiled object is returned"""
        first = evaluator.get_compiled("a+b", ("a", "b"))
        second = evaluator.get_compiled("a+b", ("a", "b"))
        assert first is second

    def test_different_params_compile_separately(self, evaluator):
        """Test cache key includes parameter names"""
        evaluator.evaluate("a", {"a": 1})
        evaluator.evaluate("a", {"a": 1, "b": 2})
        assert evaluator.get_stats()["compilations"] == 2

    def test_clear_cache(self, evaluator):
        """Test clearing"""
        evaluator.evaluate("a", {"a": 1})
        evaluator.clear_cache()
        assert evaluator.get_stats()["cache_size"] == 0

    def test_lru_eviction(self):
        """Test least recently used entry is evicted"""
        cache = LRUCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2

    def test_evaluator_cache_capacity(self):
        """Test evaluator-owned bounded cache"""
        evaluator = ExpressionEvaluator(cache_size=2)
        for source in ("a", "a + 1", "a + 2"):
            evaluator.evaluate(source, {"a": 1})
        assert evaluator.get_stats()["cache_size"] == 2


class TestStaticChecks:
    """Test validation and dependency analysis"""

    def test_validate_ok(self, evaluator):
        """Test valid expression"""
        assert evaluator.validate("a.b + c[0]").valid

    def test_validate_syntax_error(self, evaluator):
        """Test syntax errors are reported, not raised"""
        result = evaluator.validate("a +* b")
        assert not result.valid
        assert result.errors[0].startswith("Syntax error")

    def test_validate_deep_nesting(self, evaluator):
        """Test nesting beyond the parser's depth is reported, not raised"""
        source = "(" * 3000 + "1" + ")" * 3000
        result = evaluator.validate(source)
        assert not result.valid
        assert "Maximum expression depth exceeded" in result.errors[0]
        assert not evaluator.evaluate(source, {}).success

    def test_analyze_dependencies_deep_nesting(self, evaluator):
        """Test excessive nesting surfaces as a syntax error"""
        with pytest.raises(ExpressionSyntaxError, match="depth"):
            evaluator.analyze_dependencies("(" * 3000 + "a" + ")" * 3000)

    def test_validate_does_not_compile(self, evaluator):
        """Test validate leaves the cache untouched"""
        evaluator.validate("a + b")
        assert evaluator.get_stats()["compilations"] == 0

    @pytest.mark.parametrize("expression", ["a = 1", "new Date()", "x => x", "a; b"])
    def test_statements_rejected(self, evaluator, expression):
        """Test constructs outside the grammar"""
        assert not evaluator.validate(expression).valid

    def test_analyze_dependencies(self, evaluator):
        """Test static read-set"""
        reads = evaluator.analyze_dependencies("user.name + count * items[0]")
        assert reads == {"user.name", "count", "items[0]"}

    def test_analyze_dependencies_security(self, evaluator):
        """Test denied expression raises"""
        with pytest.raises(SecurityViolation):
            evaluator.analyze_dependencies("window.x")
