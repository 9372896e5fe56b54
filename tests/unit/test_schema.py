"""
Action and Node Schema Unit Tests
"""

import pytest

from vschema.core.schema import (
    CallAction,
    FetchAction,
    IfAction,
    NodeSchema,
    ScriptAction,
    SetAction,
    WatchConfig,
    WebSocketAction,
    parse_action,
    parse_actions,
)
from vschema.exceptions.errors import ValidationError


class TestParseAction:
    """Test action kind dispatch"""

    def test_set_action(self):
        """Test set with alias"""
        action = parse_action({"set": "form.name", "value": "{{ $event }}"})
        assert isinstance(action, SetAction)
        assert action.target == "form.name"
        assert action.kind == "set"

    def test_fetch_defaults(self):
        """Test fetch defaults and method normalization"""
        action = parse_action({"fetch": "/api/users", "method": "post", "responseType": "text"})
        assert isinstance(action, FetchAction)
        assert action.method == "POST"
        assert action.response_type == "text"
        assert action.ignore_base_url is False

    def test_if_requires_branch(self):
        """Test a bare `if` key is not an action"""
        action = parse_action({"if": "ok", "then": {"call": "a"}, "else": [{"call": "b"}]})
        assert isinstance(action, IfAction)
        assert isinstance(action.then[0], CallAction)
        assert action.else_[0].call == "b"
        with pytest.raises(ValidationError):
            parse_action({"if": "ok"})

    def test_if_with_only_else(self):
        """Test an `if` carrying just an `else` branch"""
        action = parse_action({"if": "ok", "else": [{"call": "b"}]})
        assert isinstance(action, IfAction)
        assert action.then is None
        assert action.else_[0].call == "b"

    def test_continuations_parsed(self):
        """Test then/catch/finally on any kind"""
        action = parse_action(
            {
                "call": "load",
                "then": [{"set": "a", "value": 1}],
                "catch": {"script": "return 1"},
                "finally": [{"emit": "done"}],
            }
        )
        assert isinstance(action.catch[0], ScriptAction)
        assert action.finally_[0].emit == "done"

    def test_ws_key(self):
        """Test registry key prefers explicit id"""
        assert parse_action({"ws": "wss://host/feed"}).key == "wss://host/feed"
        action = parse_action({"ws": "wss://host/feed", "id": "feed", "op": "connect"})
        assert isinstance(action, WebSocketAction)
        assert action.key == "feed"

    @pytest.mark.parametrize(
        "data",
        [
            "not an action",
            {"unknown": 1},
            {"ws": "x", "op": "reopen"},
            {"fetch": "/x", "responseType": "xml"},
            {"call": "a", "then": [{"bogus": True}]},
        ],
    )
    def test_invalid_actions(self, data):
        """Test rejected definitions"""
        with pytest.raises(ValidationError):
            parse_action(data)

    def test_parse_actions_normalizes(self):
        """Test single action and None"""
        assert parse_actions(None) == []
        assert len(parse_actions({"call": "a"})) == 1
        assert len(parse_actions([{"call": "a"}, {"emit": "b"}])) == 2


class TestWatchConfig:
    """Test watch entry normalization"""

    def test_action_list(self):
        """Test bare actions become the handler"""
        config = WatchConfig.from_value([{"call": "reload"}])
        assert isinstance(config.handler[0], CallAction)
        assert config.immediate is False

    def test_full_form(self):
        """Test handler with flags"""
        config = WatchConfig.from_value({"handler": {"call": "a"}, "immediate": True, "deep": True})
        assert config.immediate and config.deep

    def test_callable_handler(self):
        """Test Python callables are kept"""

        def handler(new, old):
            return None

        assert WatchConfig.from_value(handler).handler is handler


class TestNodeSchema:
    """Test node parsing"""

    def test_from_dict(self):
        """Test aliases and nested action parsing"""
        node = NodeSchema.from_dict(
            {
                "component": "Button",
                "data": {"count": 0},
                "computed": {"double": "count * 2"},
                "methods": {"inc": {"set": "count", "value": "{{ count + 1 }}"}},
                "events": {"click.stop": [{"call": "inc"}]},
                "onMounted": {"call": "inc"},
                "if": "{{ count >= 0 }}",
                "for": "item in items",
            }
        )
        assert node.data == {"count": 0}
        assert isinstance(node.methods["inc"][0], SetAction)
        assert "click.stop" in node.events
        assert node.on_mounted[0].call == "inc"
        assert node.if_ == "{{ count >= 0 }}"
        assert node.for_ == "item in items"

    def test_empty_node(self):
        """Test all fields optional"""
        node = NodeSchema.from_dict({})
        assert node.methods == {}
        assert node.on_mounted is None

    def test_invalid_node(self):
        """Test invalid nested action"""
        with pytest.raises(ValidationError):
            NodeSchema.from_dict({"methods": {"a": [{"nope": 1}]}})

    def test_invalid_field_type(self):
        """Test pydantic errors are converted"""
        with pytest.raises(ValidationError):
            NodeSchema.from_dict({"data": [1, 2]})
