"""
Node Directive Unit Tests
"""

import pytest

from vschema.core.state import ReactiveStore
from vschema.exceptions.errors import ValidationError
from vschema.executor.types import ExecutionContext
from vschema.runtime.directives import (
    ModelBinding,
    expand_for,
    is_visible,
    parse_for_expression,
    parse_model,
    read_model,
    should_render,
    write_model,
)


def make_context(data):
    store = ReactiveStore()
    state = store.create_state(data)
    return ExecutionContext(state=state, evaluator=store.evaluator, store=store, computed=store.computed)


class TestForExpression:
    """Test for directive parsing"""

    def test_simple(self):
        """Test `item in list`"""
        parsed = parse_for_expression("user in users")
        assert (parsed.item_name, parsed.index_name, parsed.list_expression) == ("user", None, "users")

    def test_tuple(self):
        """Test `(item, index) of list`"""
        parsed = parse_for_expression("(row, i) of table.rows")
        assert (parsed.item_name, parsed.index_name, parsed.list_expression) == ("row", "i", "table.rows")

    @pytest.mark.parametrize("expression", ["users", "in users", "(a b) in c", ""])
    def test_invalid(self, expression):
        """Test malformed directives"""
        with pytest.raises(ValidationError):
            parse_for_expression(expression)


class TestExpandFor:
    """Test loop expansion"""

    def test_frames_bind_loop_variables(self):
        """Test item, index and reserved aliases"""
        context = make_context({"users": [{"name": "a"}, {"name": "b"}]})
        frames = expand_for("(user, i) in users", context)
        assert [f.index for f in frames] == [0, 1]
        assert [f.key for f in frames] == [0, 1]
        evaluator = context.evaluator
        assert evaluator.evaluate_template("{{ i }}:{{ user.name }}:{{ $index }}", frames[1].context) == "1:b:1"
        assert evaluator.evaluate("$item.name", frames[0].context).value == "a"

    def test_key_expression(self):
        """Test per-item keys"""
        context = make_context({"users": [{"id": 7}, {"id": 9}]})
        frames = expand_for("user in users", context, key="{{ user.id }}")
        assert [f.key for f in frames] == [7, 9]

    def test_condition_filters_after_expansion(self):
        """Test `if` sees loop variables"""
        context = make_context({"nums": [1, 2, 3, 4]})
        frames = expand_for("n in nums", context, condition="n % 2 == 0")
        assert [f.item for f in frames] == [2, 4]
        assert [f.index for f in frames] == [1, 3]

    def test_braced_list_expression(self):
        """Test `{{ }}` around the list"""
        context = make_context({"nums": [1]})
        assert len(expand_for("n in {{ nums }}", context)) == 1

    def test_non_array_yields_nothing(self):
        """Test missing or non-list sources"""
        context = make_context({"count": 3})
        assert expand_for("n in count", context) == []
        assert expand_for("n in missing", context) == []


class TestConditions:
    """Test if / show"""

    def test_absent_condition(self):
        """Test None renders"""
        context = make_context({})
        assert should_render(None, context)
        assert is_visible(None, context)

    def test_expression_and_template(self):
        """Test both condition forms"""
        context = make_context({"n": 0, "items": []})
        assert not should_render("n > 0", context)
        assert not is_visible("{{ n }}", context)
        assert should_render("{{ items }}", context)
        assert should_render(True, context)


class TestModel:
    """Test two-way binding"""

    def test_parse_string_modifiers(self):
        """Test trailing modifier segments"""
        assert parse_model("form.age.number.trim") == ModelBinding("form.age", trim=True, number=True)
        assert parse_model("trim") == ModelBinding("trim")

    def test_parse_mapping(self):
        """Test mapping form"""
        binding = parse_model({"path": "{{ form.name }}", "modifiers": "lazy"})
        assert binding == ModelBinding("form.name", lazy=True)

    def test_parse_empty(self):
        """Test missing path"""
        with pytest.raises(ValidationError):
            parse_model({"modifiers": "trim"})

    def test_read_unset(self):
        """Test unset values read as empty string"""
        context = make_context({"form": {}})
        assert read_model(parse_model("form.name"), context) == ""

    def test_write_event_value(self):
        """Test host event shape"""
        context = make_context({"form": {}})
        assert write_model(parse_model("form.name.trim"), context, {"target": {"value": "  Ada "}})
        assert read_model(parse_model("form.name"), context) == "Ada"

    def test_write_checkbox(self):
        """Test checkbox targets write booleans"""
        context = make_context({"agree": False})
        write_model(parse_model("agree"), context, {"target": {"type": "checkbox", "checked": True, "value": "on"}})
        assert context.get_state_value("agree") is True

    def test_write_number(self):
        """Test numeric conversion with fallback"""
        context = make_context({})
        binding = parse_model("age.number")
        write_model(binding, context, "42")
        assert context.get_state_value("age") == 42
        write_model(binding, context, "abc")
        assert context.get_state_value("age") == "abc"

    def test_lazy_waits_for_change(self):
        """Test lazy bindings ignore input"""
        context = make_context({"q": ""})
        binding = parse_model("q.lazy")
        assert write_model(binding, context, "a") is False
        assert context.get_state_value("q") == ""
        assert write_model(binding, context, "a", trigger="change") is True
        assert context.get_state_value("q") == "a"
