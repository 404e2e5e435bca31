"""Unit tests for message role normalization."""
import pytest

from mylocalai.agent import RoleMessage, normalize_message, normalize_messages, resolve_role


class HumanMessage:
    def __init__(self, content):
        self.content = content


class AIMessage:
    def __init__(self, content):
        self.content = content


class GetTypeMessage:
    """Carries a conflicting role attribute; _getType wins."""

    role = "user"

    def __init__(self, content):
        self.content = content

    def _getType(self):
        return "ai"


class TestResolveRole:
    """Tests for resolve_role."""

    @pytest.mark.parametrize("raw, expected", [
        ("human", "user"),
        ("user", "user"),
        ("ai", "assistant"),
        ("assistant", "assistant"),
        ("AI", "assistant"),
        ("system", "system"),
        ("function", "tool"),
        ("HumanMessage", "user"),
        ("banana", None),
    ])
    def test_type_key(self, raw, expected):
        """Test aliases accepted in the type field."""
        assert resolve_role({"type": raw}) == expected

    def test_get_type_takes_priority(self):
        """Test that _getType() beats the role attribute."""
        assert resolve_role(GetTypeMessage("hi")) == "assistant"

    def test_type_beats_role(self):
        """Test that type is consulted before role."""
        assert resolve_role({"type": "human", "role": "assistant"}) == "user"

    def test_class_name_fallback(self):
        """Test role inferred from the class name."""
        assert resolve_role(HumanMessage("hi")) == "user"
        assert resolve_role(AIMessage("hi")) == "assistant"

    def test_unknown_shape(self):
        """Test that unrecognized objects have no role."""
        assert resolve_role(object()) is None
        assert resolve_role({"content": "x"}) is None


class TestNormalizeMessage:
    """Tests for normalize_message and normalize_messages."""

    def test_dict_with_role(self):
        """Test a plain role/content dict."""
        assert normalize_message({"role": "user", "content": "hi"}) == RoleMessage(role="user", content="hi")

    def test_list_content_flattened(self):
        """Test that multi-part content keeps only text parts."""
        message = normalize_message({
            "type": "ai",
            "content": ["Hello", {"type": "text", "text": ", world"}, {"type": "image_url", "image_url": "x"}],
        })
        assert message == RoleMessage(role="assistant", content="Hello, world")

    @pytest.mark.parametrize("obj", [
        {"role": "system", "content": "rules"},
        {"role": "tool", "content": "42"},
        {"role": "user", "content": "   "},
        {"role": "user", "content": None},
        {"content": "no role"},
    ])
    def test_dropped(self, obj):
        """Test that system, tool, blank and unknown messages are dropped."""
        assert normalize_message(obj) is None

    def test_normalize_sequence(self):
        """Test that order is kept and dropped entries are skipped."""
        messages = normalize_messages([
            {"role": "system", "content": "rules"},
            HumanMessage("question"),
            GetTypeMessage("answer"),
            {"role": "assistant", "content": ""},
        ])
        assert messages == [
            RoleMessage(role="user", content="question"),
            RoleMessage(role="assistant", content="answer"),
        ]
